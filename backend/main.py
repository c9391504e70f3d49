import logging
from typing import Optional
from fastapi import Body, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel

from config import ALLOWED_ORIGINS, EXPORT_FILENAME, HOST, LOG_LEVEL, PORT
from exceptions import NotFoundError, ParseError, SchemaEditorError, ValidationError
from handlers import (
    Connected,
    Disconnected,
    FieldAdded,
    FieldRemoved,
    FieldUpdated,
    GraphSync,
    RelationshipTypeChanged,
    TableCreated,
    TableDeleted,
    TableMoved,
    TableUpdated,
)
from models import Position, RelationType
from store import SchemaStore

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
logger = logging.getLogger("main")

app = FastAPI(title="Schema Designer API")

# CORS for the diagram frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# The document being edited (one per process)
editor = GraphSync(SchemaStore())

STATUS_CODES = {
    ValidationError: 422,
    NotFoundError: 404,
    ParseError: 400,
}


@app.exception_handler(SchemaEditorError)
async def schema_error_handler(request: Request, exc: SchemaEditorError):
    status = STATUS_CODES.get(type(exc), 400)
    logger.info(f"{request.method} {request.url.path} -> {status}: {exc.message}")
    return JSONResponse(
        status_code=status,
        content={"error": exc.message, "code": exc.code, "details": exc.details},
    )


def dump(value) -> Optional[dict]:
    return value.model_dump(mode="json", by_alias=True) if value is not None else None


class TableRequest(BaseModel):
    name: str = ""
    fields: list[dict] = []
    position: Optional[Position] = None


class TableUpdateRequest(BaseModel):
    name: Optional[str] = None
    fields: Optional[list[dict]] = None


class RelationshipTypeRequest(BaseModel):
    type: RelationType


@app.get("/view")
async def get_view():
    return dump(editor.view)


@app.post("/events")
async def post_event(event: dict = Body(...)):
    """Generic entry point: any editor event as {"kind": ..., ...}"""
    result = editor.dispatch(event)
    return {"result": dump(result), "view": dump(editor.view)}


@app.post("/tables", status_code=201)
async def create_table(request: TableRequest):
    table = editor.dispatch(TableCreated(name=request.name, fields=request.fields, position=request.position))
    return dump(table)


@app.patch("/tables/{table_id}")
async def update_table(table_id: str, request: TableUpdateRequest):
    table = editor.dispatch(TableUpdated(table_id=table_id, name=request.name, fields=request.fields))
    return dump(table)


@app.put("/tables/{table_id}/position")
async def move_table(table_id: str, position: Position):
    return dump(editor.dispatch(TableMoved(table_id=table_id, position=position)))


@app.delete("/tables/{table_id}")
async def delete_table(table_id: str):
    editor.dispatch(TableDeleted(table_id=table_id))
    return {"status": "ok"}


@app.post("/tables/{table_id}/fields", status_code=201)
async def add_field(table_id: str, field: dict = Body(...)):
    return dump(editor.dispatch(FieldAdded(table_id=table_id, field=field)))


@app.patch("/tables/{table_id}/fields/{field_id}")
async def update_field(table_id: str, field_id: str, changes: dict = Body(...)):
    return dump(editor.dispatch(FieldUpdated(table_id=table_id, field_id=field_id, changes=changes)))


@app.delete("/tables/{table_id}/fields/{field_id}")
async def remove_field(table_id: str, field_id: str):
    editor.dispatch(FieldRemoved(table_id=table_id, field_id=field_id))
    return {"status": "ok"}


@app.post("/connections", status_code=201)
async def connect(connection: Connected):
    return dump(editor.dispatch(connection))


@app.patch("/relationships/{relationship_id}")
async def change_relationship_type(relationship_id: str, request: RelationshipTypeRequest):
    return dump(editor.dispatch(RelationshipTypeChanged(edge_id=relationship_id, type=request.type)))


@app.delete("/relationships/{relationship_id}")
async def delete_relationship(relationship_id: str):
    editor.dispatch(Disconnected(edge_id=relationship_id))
    return {"status": "ok"}


@app.get("/schema/export")
async def export_schema():
    return Response(
        content=editor.export_json(),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@app.post("/schema/import")
async def import_schema(request: Request):
    view = editor.import_json(await request.body())
    return dump(view)


@app.get("/schema/sql", response_class=PlainTextResponse)
async def get_sql():
    return editor.export_sql()


@app.get("/schema/mermaid", response_class=PlainTextResponse)
async def get_mermaid():
    return editor.export_mermaid()


@app.post("/reset")
async def reset_schema():
    editor.reset()
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
