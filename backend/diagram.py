from models import RelationType, Schema

# Words that conflict with Mermaid syntax
RESERVED_WORDS = ["class", "entity", "relationship"]

# Crow's foot connectors per relationship type
CONNECTORS = {
    RelationType.ONE_TO_ONE: "||--||",
    RelationType.ONE_TO_MANY: "||--o{",
    RelationType.MANY_TO_ONE: "}o--||",
    RelationType.MANY_TO_MANY: "}o--o{",
}


def safe_name(name: str) -> str:
    """Make table names safe for Mermaid"""
    name = name.replace(" ", "_")
    if name.lower() in RESERVED_WORDS:
        return f"{name}Entity"
    return name


def schema_to_mermaid(schema: Schema) -> str:
    """Convert a schema snapshot to Mermaid ERD syntax"""
    lines = ["erDiagram"]

    # Add tables with their fields
    for table in schema.tables:
        lines.append(f"    {safe_name(table.name)} {{")
        for field in table.fields:
            keys = []
            if field.is_primary:
                keys.append("PK")
            if field.is_foreign:
                keys.append("FK")
            if field.is_unique and not field.is_primary:
                keys.append("UK")

            row = f"        {field.type.value} {field.name.replace(' ', '_')}"
            if keys:
                row += " " + ", ".join(keys)
            lines.append(row)
        lines.append("    }")

    lines.append("")

    # Add relationships, skipping ones that point at removed tables/fields
    for rel in schema.relationships:
        resolved = schema.resolve(rel)
        if resolved is None:
            continue
        source_table, source_field, target_table, _ = resolved
        lines.append(
            f"    {safe_name(source_table.name)} {CONNECTORS[rel.type]} "
            f"{safe_name(target_table.name)} : {safe_name(source_field.name)}"
        )

    return "\n".join(lines)
