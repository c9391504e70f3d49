import logging

from models import Field, Schema, Table

logger = logging.getLogger("ddl")


def column_definition(field: Field) -> str:
    """One column line, e.g. 'email VARCHAR UNIQUE NOT NULL'"""
    parts = [field.name, field.type.value]
    if field.is_primary:
        parts.append("PRIMARY KEY")
    if field.is_unique:
        parts.append("UNIQUE")
    if not field.is_nullable:
        parts.append("NOT NULL")
    return " ".join(parts)


def create_table_statement(table: Table) -> str:
    columns = ",\n".join(f"  {column_definition(f)}" for f in table.fields)
    lines = [f"CREATE TABLE {table.name} ("]
    if columns:
        lines.append(columns)
    lines.append(");")
    return "\n".join(lines)


def schema_to_sql(schema: Schema) -> str:
    """Compile a schema snapshot into CREATE TABLE and ALTER TABLE statements.

    All tables come first, then all foreign key constraints, so a constraint
    may point at a table defined after its source. Relationships whose tables
    or fields no longer exist are skipped. Identifiers are emitted verbatim.
    """
    statements = [create_table_statement(table) for table in schema.tables]

    for rel in schema.relationships:
        resolved = schema.resolve(rel)
        if resolved is None:
            logger.debug(f"Skipping unresolved relationship {rel.id}")
            continue
        source_table, source_field, target_table, target_field = resolved
        statements.append(
            f"ALTER TABLE {source_table.name} "
            f"ADD CONSTRAINT fk_{source_table.name}_{target_table.name} "
            f"FOREIGN KEY ({source_field.name}) "
            f"REFERENCES {target_table.name}({target_field.name});"
        )

    return "".join(f"{statement}\n\n" for statement in statements)
