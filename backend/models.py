from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class FieldType(str, Enum):
    INTEGER = "INTEGER"
    TEXT = "TEXT"
    VARCHAR = "VARCHAR"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"
    TIMESTAMP = "TIMESTAMP"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"


class RelationType(str, Enum):
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"
    MANY_TO_MANY = "many-to-many"


# Short labels shown on relationship edges
RELATION_SYMBOLS = {
    RelationType.ONE_TO_ONE: "1:1",
    RelationType.ONE_TO_MANY: "1:N",
    RelationType.MANY_TO_ONE: "N:1",
    RelationType.MANY_TO_MANY: "N:N",
}


class SchemaModel(BaseModel):
    """Immutable value; camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# Where a table sits on the canvas
class Position(SchemaModel):
    x: float = 0
    y: float = 0


# Weak pointer from a field to another table's field
class FieldReference(SchemaModel):
    table_id: str
    field_id: str


# A single column in a table
class Field(SchemaModel):
    id: str
    name: str
    type: FieldType
    is_primary: bool = False
    is_foreign: bool = False
    is_unique: bool = False
    is_nullable: bool = True
    references: Optional[FieldReference] = None


# A table
class Table(SchemaModel):
    id: str
    name: str
    fields: tuple[Field, ...] = ()
    position: Position = Position()

    @model_validator(mode="after")
    def check_unique_field_ids(self):
        ids = [f.id for f in self.fields]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate field id in table '{self.id}'")
        return self

    def get_field(self, field_id: str) -> Optional[Field]:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None


# A directed connection between two fields
class Relationship(SchemaModel):
    id: str
    source_table_id: str
    source_field_id: str
    target_table_id: str
    target_field_id: str
    type: RelationType = RelationType.ONE_TO_MANY

    def touches_table(self, table_id: str) -> bool:
        return self.source_table_id == table_id or self.target_table_id == table_id

    def touches_field(self, table_id: str, field_id: str) -> bool:
        return (
            (self.source_table_id == table_id and self.source_field_id == field_id)
            or (self.target_table_id == table_id and self.target_field_id == field_id)
        )


# The full schema
class Schema(SchemaModel):
    tables: tuple[Table, ...] = ()
    relationships: tuple[Relationship, ...] = ()

    @model_validator(mode="after")
    def check_unique_ids(self):
        table_ids = [t.id for t in self.tables]
        if len(table_ids) != len(set(table_ids)):
            raise ValueError("Duplicate table id")
        rel_ids = [r.id for r in self.relationships]
        if len(rel_ids) != len(set(rel_ids)):
            raise ValueError("Duplicate relationship id")
        return self

    def get_table(self, table_id: str) -> Optional[Table]:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None

    def get_relationship(self, relationship_id: str) -> Optional[Relationship]:
        for rel in self.relationships:
            if rel.id == relationship_id:
                return rel
        return None

    def tables_with_field(self, field_id: str) -> list[Table]:
        """Every table holding a field with this id; field ids are only unique per table"""
        return [table for table in self.tables if table.get_field(field_id) is not None]

    def resolve(self, rel: Relationship) -> Optional[tuple[Table, Field, Table, Field]]:
        """Source table/field and target table/field, or None if any is gone"""
        source_table = self.get_table(rel.source_table_id)
        target_table = self.get_table(rel.target_table_id)
        if source_table is None or target_table is None:
            return None
        source_field = source_table.get_field(rel.source_field_id)
        target_field = target_table.get_field(rel.target_field_id)
        if source_field is None or target_field is None:
            return None
        return source_table, source_field, target_table, target_field
