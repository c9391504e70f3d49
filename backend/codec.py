"""JSON interchange format used for save/load.

    {
      "tables": [{"id", "name", "fields": [...], "position": {"x", "y"}}],
      "relationships": [{"id", "sourceTableId", "sourceFieldId",
                         "targetTableId", "targetFieldId", "type"}]
    }

Referential integrity is not checked on decode: a relationship pointing at a
missing table or field is kept as-is and skipped later by the SQL generator
and by rendering.
"""
import json
import logging
from typing import Union
from pydantic import ValidationError as PydanticValidationError

from exceptions import ParseError
from models import Schema

logger = logging.getLogger("codec")


def schema_to_dict(schema: Schema) -> dict:
    return schema.model_dump(mode="json", by_alias=True, exclude_none=True)


def encode(schema: Schema) -> bytes:
    """Serialize a schema snapshot to UTF-8 JSON bytes"""
    return json.dumps(schema_to_dict(schema), indent=2).encode("utf-8")


def decode(data: Union[bytes, str]) -> Schema:
    """Parse JSON bytes back into a Schema"""
    try:
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
        doc = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"Not a valid JSON document: {e}") from None

    if not isinstance(doc, dict):
        raise ParseError("Schema document must be a JSON object")
    for key in ("tables", "relationships"):
        if not isinstance(doc.get(key), list):
            raise ParseError(f"Schema document must contain a '{key}' array", details={"missing": key})

    try:
        schema = Schema.model_validate({"tables": doc["tables"], "relationships": doc["relationships"]})
    except PydanticValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ParseError("Schema document has invalid entries", details={"errors": errors}) from None

    dangling = sum(1 for rel in schema.relationships if schema.resolve(rel) is None)
    if dangling:
        logger.warning(f"Decoded schema contains {dangling} unresolved relationship(s)")
    return schema
