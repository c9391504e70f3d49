"""Errors raised by the schema editor core"""


class SchemaEditorError(Exception):
    """Base error"""
    code = "schema_error"

    def __init__(self, message: str, code: str = None, details: dict = None):
        self.message = message
        self.code = code or self.code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(SchemaEditorError):
    """Empty or invalid name, invalid type value, malformed handle"""
    code = "validation_error"


class NotFoundError(SchemaEditorError):
    """A table, field or relationship id is not in the schema"""
    code = "not_found"


class ParseError(SchemaEditorError):
    """Malformed or structurally incomplete JSON document"""
    code = "parse_error"
