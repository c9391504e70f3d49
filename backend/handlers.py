"""Keeps the diagram (nodes + edges) and the schema in lockstep.

The UI sends structural events (table created, edge drawn, ...) to a single
GraphSync dispatcher, which applies each one to the SchemaStore and then
re-derives the view from the resulting snapshot. View records carry ids only;
no callbacks are stored in them.
"""
import logging
from typing import Annotated, Literal, Optional, Union
from pydantic import Field as PydanticField, TypeAdapter, ValidationError as PydanticValidationError

from codec import decode, encode
from ddl import schema_to_sql
from diagram import schema_to_mermaid
from exceptions import NotFoundError, ValidationError
from models import RELATION_SYMBOLS, Field, Position, RelationType, Schema, SchemaModel
from store import SchemaStore

logger = logging.getLogger("handlers")

# Fields expose a source handle on the right and a target handle on the left
SOURCE_SIDE = "right"
TARGET_SIDE = "left"


def field_handle(field_id: str, side: str) -> str:
    return f"{field_id}-{side}"


def parse_handle(handle: Optional[str]) -> str:
    """Return the field id encoded in '<fieldId>-left' / '<fieldId>-right'"""
    field_id, sep, side = (handle or "").rpartition("-")
    if not sep or not field_id or side not in (SOURCE_SIDE, TARGET_SIDE):
        raise ValidationError(f"Malformed handle id: {handle!r}", details={"handle": handle})
    return field_id


# ---------------------------------------------------------------------------
# View projection
# ---------------------------------------------------------------------------

class ViewNodeData(SchemaModel):
    name: str
    fields: tuple[Field, ...]


class ViewNode(SchemaModel):
    id: str
    type: Literal["table"] = "table"
    position: Position
    data: ViewNodeData


class ViewEdgeData(SchemaModel):
    relation_type: RelationType
    label: str


class ViewEdge(SchemaModel):
    id: str
    source: str
    target: str
    source_handle: str
    target_handle: str
    type: Literal["relationship"] = "relationship"
    data: ViewEdgeData


class ViewGraph(SchemaModel):
    nodes: tuple[ViewNode, ...] = ()
    edges: tuple[ViewEdge, ...] = ()


def to_view_projection(schema: Schema) -> ViewGraph:
    """One node per table and one edge per resolvable relationship, in insertion order"""
    nodes = tuple(
        ViewNode(
            id=table.id,
            position=table.position,
            data=ViewNodeData(name=table.name, fields=table.fields),
        )
        for table in schema.tables
    )
    edges = tuple(
        ViewEdge(
            id=rel.id,
            source=rel.source_table_id,
            target=rel.target_table_id,
            source_handle=field_handle(rel.source_field_id, SOURCE_SIDE),
            target_handle=field_handle(rel.target_field_id, TARGET_SIDE),
            data=ViewEdgeData(relation_type=rel.type, label=RELATION_SYMBOLS[rel.type]),
        )
        for rel in schema.relationships
        if schema.resolve(rel) is not None
    )
    return ViewGraph(nodes=nodes, edges=edges)


# ---------------------------------------------------------------------------
# Structural events
# ---------------------------------------------------------------------------

class TableCreated(SchemaModel):
    kind: Literal["table_created"] = "table_created"
    name: str = ""
    fields: list[Union[Field, dict]] = []
    position: Optional[Position] = None


class TableUpdated(SchemaModel):
    kind: Literal["table_updated"] = "table_updated"
    table_id: str
    name: Optional[str] = None
    fields: Optional[list[Union[Field, dict]]] = None


class TableMoved(SchemaModel):
    kind: Literal["table_moved"] = "table_moved"
    table_id: str
    position: Position


class TableDeleted(SchemaModel):
    kind: Literal["table_deleted"] = "table_deleted"
    table_id: str


class FieldAdded(SchemaModel):
    kind: Literal["field_added"] = "field_added"
    table_id: str
    field: dict


class FieldUpdated(SchemaModel):
    kind: Literal["field_updated"] = "field_updated"
    table_id: str
    field_id: str
    changes: dict


class FieldRemoved(SchemaModel):
    kind: Literal["field_removed"] = "field_removed"
    table_id: str
    field_id: str


class Connected(SchemaModel):
    """An edge drawn between two field handles; node ids are optional"""
    kind: Literal["connected"] = "connected"
    source: Optional[str] = None
    source_handle: str
    target: Optional[str] = None
    target_handle: str
    type: RelationType = RelationType.ONE_TO_MANY


class Disconnected(SchemaModel):
    kind: Literal["disconnected"] = "disconnected"
    edge_id: str


class RelationshipTypeChanged(SchemaModel):
    kind: Literal["relationship_type_changed"] = "relationship_type_changed"
    edge_id: str
    type: RelationType


GraphEvent = Annotated[
    Union[
        TableCreated,
        TableUpdated,
        TableMoved,
        TableDeleted,
        FieldAdded,
        FieldUpdated,
        FieldRemoved,
        Connected,
        Disconnected,
        RelationshipTypeChanged,
    ],
    PydanticField(discriminator="kind"),
]

_event_adapter = TypeAdapter(GraphEvent)


def parse_event(data: dict):
    try:
        return _event_adapter.validate_python(data)
    except PydanticValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ValidationError("Invalid editor event", details={"errors": errors}) from None


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class GraphSync:
    """Routes editor events to the store and keeps `view` in step with it"""

    def __init__(self, store: Optional[SchemaStore] = None):
        self.store = store or SchemaStore()
        self.view = to_view_projection(self.store.to_snapshot())
        self._handlers = {
            TableCreated: self.handle_table_created,
            TableUpdated: self.handle_table_updated,
            TableMoved: self.handle_table_moved,
            TableDeleted: self.handle_table_deleted,
            FieldAdded: self.handle_field_added,
            FieldUpdated: self.handle_field_updated,
            FieldRemoved: self.handle_field_removed,
            Connected: self.handle_connected,
            Disconnected: self.handle_disconnected,
            RelationshipTypeChanged: self.handle_relationship_type_changed,
        }

    def dispatch(self, event):
        """Apply one event. On error neither the schema nor the view changes."""
        if isinstance(event, dict):
            event = parse_event(event)
        handler = self._handlers.get(type(event))
        if handler is None:
            raise ValidationError(f"Unknown event: {type(event).__name__}")
        result = handler(event)
        self._refresh()
        return result

    def _refresh(self):
        self.view = to_view_projection(self.store.to_snapshot())

    # -- event handlers ------------------------------------------------

    def handle_table_created(self, event: TableCreated):
        return self.store.add_table(event.name, event.fields, event.position)

    def handle_table_updated(self, event: TableUpdated):
        return self.store.update_table(event.table_id, name=event.name, fields=event.fields)

    def handle_table_moved(self, event: TableMoved):
        return self.store.move_table(event.table_id, event.position)

    def handle_table_deleted(self, event: TableDeleted):
        self.store.remove_table(event.table_id)

    def handle_field_added(self, event: FieldAdded):
        return self.store.add_field(event.table_id, event.field)

    def handle_field_updated(self, event: FieldUpdated):
        return self.store.update_field(event.table_id, event.field_id, **event.changes)

    def handle_field_removed(self, event: FieldRemoved):
        self.store.remove_field(event.table_id, event.field_id)

    def handle_connected(self, event: Connected):
        source_table_id, source_field_id = self.resolve_endpoint(event.source, event.source_handle)
        target_table_id, target_field_id = self.resolve_endpoint(event.target, event.target_handle)
        return self.store.add_relationship(
            source_table_id, source_field_id, target_table_id, target_field_id, event.type
        )

    def handle_disconnected(self, event: Disconnected):
        self.store.remove_relationship(event.edge_id)

    def handle_relationship_type_changed(self, event: RelationshipTypeChanged):
        return self.store.update_relationship_type(event.edge_id, event.type)

    def resolve_endpoint(self, node_id: Optional[str], handle: str) -> tuple[str, str]:
        """Turn (node id, handle id) into (table id, field id) against the current schema"""
        field_id = parse_handle(handle)
        schema = self.store.to_snapshot()
        if node_id:
            table = schema.get_table(node_id)
            if table is not None and table.get_field(field_id) is not None:
                return table.id, field_id
        else:
            owners = schema.tables_with_field(field_id)
            if len(owners) == 1:
                return owners[0].id, field_id
            if len(owners) > 1:
                raise ValidationError(
                    f"Handle '{handle}' matches fields in several tables; the node id is required",
                    details={"handle": handle, "table_ids": [t.id for t in owners]},
                )
        logger.warning(f"Rejected connection to stale handle {handle!r} on node {node_id!r}")
        raise NotFoundError(
            f"Handle '{handle}' does not match any field",
            details={"node_id": node_id, "handle": handle},
        )

    # -- whole document ------------------------------------------------

    def export_json(self) -> bytes:
        return encode(self.store.to_snapshot())

    def import_json(self, data: bytes) -> ViewGraph:
        schema = decode(data)
        self.store.load(schema)
        self._refresh()
        return self.view

    def export_sql(self) -> str:
        return schema_to_sql(self.store.to_snapshot())

    def export_mermaid(self) -> str:
        return schema_to_mermaid(self.store.to_snapshot())

    def reset(self):
        self.store.reset()
        self._refresh()
