import logging
from typing import Optional, Union
from pydantic import ValidationError as PydanticValidationError

from exceptions import NotFoundError, ValidationError
from ids import IdGenerator, uuid_ids
from models import Field, FieldType, Position, Relationship, RelationType, Schema, Table

logger = logging.getLogger("store")

FieldInput = Union[Field, dict]
PositionInput = Union[Position, dict, None]

# camelCase wire keys -> attribute names, so partial updates accept either
_FIELD_NAMES = {info.alias: name for name, info in Field.model_fields.items() if info.alias}
_FIELD_NAMES.update({name: name for name in Field.model_fields})

# Give up when an id generator keeps returning ids that are already taken
MAX_ID_ATTEMPTS = 1000


def _error_messages(exc: PydanticValidationError) -> list[str]:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]


def _check_name(name, what: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{what} name cannot be empty")
    # Lone surrogates cannot be written out as UTF-8
    if any(0xD800 <= ord(ch) <= 0xDFFF for ch in name):
        raise ValidationError(f"{what} name contains invalid characters", details={"name": repr(name)})
    return name.strip()


def _check_relation_type(value) -> RelationType:
    try:
        return RelationType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid relationship type: {value!r}",
            details={"allowed": [t.value for t in RelationType]},
        ) from None


class SchemaStore:
    """Holds the current schema and applies invariant-preserving mutations.

    Every mutation builds a complete new Schema value and only then swaps it
    in, so a failed call leaves the store untouched and snapshots handed out
    earlier never change.
    """

    def __init__(self, new_id: IdGenerator = uuid_ids, schema: Optional[Schema] = None):
        self.new_id = new_id
        self._schema = schema or Schema()

    # -- reads ---------------------------------------------------------

    def to_snapshot(self) -> Schema:
        return self._schema

    def get_table(self, table_id: str) -> Table:
        table = self._schema.get_table(table_id)
        if table is None:
            raise NotFoundError(f"Table '{table_id}' not found", details={"table_id": table_id})
        return table

    def get_relationship(self, relationship_id: str) -> Relationship:
        rel = self._schema.get_relationship(relationship_id)
        if rel is None:
            raise NotFoundError(
                f"Relationship '{relationship_id}' not found",
                details={"relationship_id": relationship_id},
            )
        return rel

    # -- building blocks -----------------------------------------------

    def _fresh_id(self, kind: str, taken) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            new_id = self.new_id(kind)
            if new_id not in taken:
                return new_id
        raise ValidationError(f"Could not generate an unused {kind} id", details={"kind": kind})

    def _build_field(self, data: FieldInput, taken: Optional[set] = None) -> Field:
        """Validate one field; a missing id is generated so it avoids `taken`"""
        raw = data.model_dump() if isinstance(data, Field) else dict(data)
        raw["name"] = _check_name(raw.get("name"), "Field")
        if not raw.get("id"):
            raw["id"] = self._fresh_id("field", taken if taken is not None else set())
            if taken is not None:
                taken.add(raw["id"])
        try:
            return Field.model_validate(raw)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid field '{raw['name']}'",
                details={"errors": _error_messages(e), "allowed_types": [t.value for t in FieldType]},
            ) from None

    def _build_table(self, table_id: str, name, fields: list, position: PositionInput) -> Table:
        name = _check_name(name, "Table")
        taken = {
            f.id if isinstance(f, Field) else f.get("id")
            for f in fields
        }
        taken -= {None, ""}
        built = [self._build_field(f, taken) for f in fields]
        try:
            return Table(
                id=table_id,
                name=name,
                fields=tuple(built),
                position=Position.model_validate(position) if position is not None else Position(),
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid table '{name}'", details={"errors": _error_messages(e)}) from None

    def _commit(self, tables=None, relationships=None):
        """Validate the complete new schema, then swap it in"""
        try:
            schema = Schema(
                tables=tuple(self._schema.tables if tables is None else tables),
                relationships=tuple(self._schema.relationships if relationships is None else relationships),
            )
        except PydanticValidationError as e:
            raise ValidationError("Change would break the schema", details={"errors": _error_messages(e)}) from None
        self._schema = schema

    def _replace_table(self, table: Table, dropped_field_ids: set = frozenset()):
        tables = [table if t.id == table.id else t for t in self._schema.tables]
        relationships = [
            r for r in self._schema.relationships
            if not any(r.touches_field(table.id, fid) for fid in dropped_field_ids)
        ]
        removed = len(self._schema.relationships) - len(relationships)
        if removed:
            logger.info(f"Dropped {removed} relationship(s) attached to removed fields of '{table.name}'")
        self._commit(tables=tables, relationships=relationships)

    # -- tables --------------------------------------------------------

    def add_table(self, name: str, fields: list[FieldInput], position: PositionInput = None) -> Table:
        table_id = self._fresh_id("table", {t.id for t in self._schema.tables})
        table = self._build_table(table_id, name, fields, position)
        self._commit(tables=[*self._schema.tables, table])
        logger.info(f"Added table '{table.name}' ({table.id}) with {len(table.fields)} fields")
        return table

    def update_table(
        self,
        table_id: str,
        name: Optional[str] = None,
        fields: Optional[list[FieldInput]] = None,
        position: PositionInput = None,
    ) -> Table:
        current = self.get_table(table_id)
        table = self._build_table(
            table_id,
            current.name if name is None else name,
            list(current.fields) if fields is None else fields,
            current.position if position is None else position,
        )
        dropped = {f.id for f in current.fields} - {f.id for f in table.fields}
        self._replace_table(table, dropped)
        logger.info(f"Updated table '{table.name}' ({table_id})")
        return table

    def move_table(self, table_id: str, position: PositionInput) -> Table:
        current = self.get_table(table_id)
        try:
            table = current.model_copy(update={"position": Position.model_validate(position)})
        except PydanticValidationError as e:
            raise ValidationError("Invalid position", details={"errors": _error_messages(e)}) from None
        self._replace_table(table)
        return table

    def remove_table(self, table_id: str):
        if self._schema.get_table(table_id) is None:
            return
        tables = [t for t in self._schema.tables if t.id != table_id]
        relationships = [r for r in self._schema.relationships if not r.touches_table(table_id)]
        removed = len(self._schema.relationships) - len(relationships)
        self._commit(tables=tables, relationships=relationships)
        logger.info(f"Removed table {table_id} and {removed} relationship(s)")

    # -- fields --------------------------------------------------------

    def add_field(self, table_id: str, field: FieldInput) -> Field:
        current = self.get_table(table_id)
        new_field = self._build_field(field, {f.id for f in current.fields})
        table =self._build_table(table_id, current.name, [*current.fields, new_field], current.position)
        self._replace_table(table)
        logger.info(f"Added field '{new_field.name}' to '{table.name}'")
        return new_field

    def update_field(self, table_id: str, field_id: str, **changes) -> Field:
        current = self.get_table(table_id)
        old = current.get_field(field_id)
        if old is None:
            raise NotFoundError(
                f"Field '{field_id}' not found in table '{current.name}'",
                details={"table_id": table_id, "field_id": field_id},
            )
        unknown = sorted(key for key in changes if key not in _FIELD_NAMES)
        if unknown:
            raise ValidationError(f"Unknown field attribute(s): {', '.join(unknown)}", details={"unknown": unknown})
        raw = old.model_dump()
        raw.update({_FIELD_NAMES[key]: value for key, value in changes.items()})
        raw["id"] = field_id
        updated = self._build_field(raw)
        fields = [updated if f.id == field_id else f for f in current.fields]
        self._replace_table(current.model_copy(update={"fields": tuple(fields)}))
        return updated

    def remove_field(self, table_id: str, field_id: str):
        current = self.get_table(table_id)
        if current.get_field(field_id) is None:
            return
        fields = tuple(f for f in current.fields if f.id != field_id)
        self._replace_table(current.model_copy(update={"fields": fields}), {field_id})
        logger.info(f"Removed field {field_id} from '{current.name}'")

    # -- relationships -------------------------------------------------

    def add_relationship(
        self,
        source_table_id: str,
        source_field_id: str,
        target_table_id: str,
        target_field_id: str,
        type: RelationType = RelationType.ONE_TO_MANY,
    ) -> Relationship:
        for table_id, field_id in ((source_table_id, source_field_id), (target_table_id, target_field_id)):
            table = self.get_table(table_id)
            if table.get_field(field_id) is None:
                raise NotFoundError(
                    f"Field '{field_id}' not found in table '{table.name}'",
                    details={"table_id": table_id, "field_id": field_id},
                )
        rel = Relationship(
            id=self._fresh_id("relationship", {r.id for r in self._schema.relationships}),
            source_table_id=source_table_id,
            source_field_id=source_field_id,
            target_table_id=target_table_id,
            target_field_id=target_field_id,
            type=_check_relation_type(type),
        )
        self._commit(relationships=[*self._schema.relationships, rel])
        logger.info(f"Added {rel.type.value} relationship {rel.id}")
        return rel

    def update_relationship_type(self, relationship_id: str, type) -> Relationship:
        current = self.get_relationship(relationship_id)
        rel = current.model_copy(update={"type": _check_relation_type(type)})
        self._commit(relationships=[rel if r.id == relationship_id else r for r in self._schema.relationships])
        return rel

    def remove_relationship(self, relationship_id: str):
        relationships = [r for r in self._schema.relationships if r.id != relationship_id]
        if len(relationships) != len(self._schema.relationships):
            self._commit(relationships=relationships)
            logger.info(f"Removed relationship {relationship_id}")

    # -- whole document ------------------------------------------------

    def load(self, schema: Schema):
        self._schema = schema
        logger.info(f"Loaded schema with {len(schema.tables)} tables and {len(schema.relationships)} relationships")

    def reset(self):
        self._schema = Schema()
