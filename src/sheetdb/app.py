"""
HTTP surface of the demo shop: one route per `Database` call.

Every route answers with the engine's envelope and uses its ``status`` as the
HTTP status code.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import Settings, configure_logging, logger
from .core.record import Response
from .errors import UnknownTableError
from .runtime import Database
from .shop import register_shop_schema


def get_db(request: Request) -> Database:
    return request.app.state.db


def envelope(response: Response) -> JSONResponse:
    return JSONResponse(status_code=response.status, content=response.to_dict())


def _options(page, page_size, sort_by, sort_order) -> dict[str, Any]:
    return {"page": page, "pageSize": page_size, "sortBy": sort_by, "sortOrder": sort_order}


router = APIRouter(prefix="/api/v1")


@router.get("/health")
def health(db: Database = Depends(get_db)):
    return envelope(
        Response(
            status=200,
            message="running",
            data={"database": db.name, "tables": db.schema.names()},
        )
    )


@router.get("/tables/{table}")
def get_all(
    table: str,
    page: Optional[int] = None,
    page_size: Optional[int] = Query(None, alias="pageSize"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    use_cache: bool = Query(False, alias="useCache"),
    db: Database = Depends(get_db),
):
    return envelope(db.get_all(table, _options(page, page_size, sort_by, sort_order), use_cache))


@router.post("/tables/{table}")
def create(
    table: str,
    record: dict[str, Any] = Body(...),
    logs: bool = False,
    db: Database = Depends(get_db),
):
    allowed = list(db.config(table).fields)
    if logs:
        return envelope(db.create_with_logs(table, record, allowed))
    return envelope(db.create(table, record, allowed))


@router.post("/tables/{table}/bulk")
def read_id_list(
    table: str,
    ids: list[int] = Body(..., embed=True),
    db: Database = Depends(get_db),
):
    return envelope(db.read_id_list(table, ids))


@router.get("/tables/{table}/{record_id}")
def read(table: str, record_id: int, db: Database = Depends(get_db)):
    return envelope(db.read(table, record_id))


@router.put("/tables/{table}/{record_id}")
def update(
    table: str,
    record_id: int,
    patch: dict[str, Any] = Body(...),
    logs: bool = False,
    db: Database = Depends(get_db),
):
    allowed = list(db.config(table).fields)
    if logs:
        return envelope(db.update_with_logs(table, record_id, patch, allowed))
    return envelope(db.update(table, record_id, patch, allowed))


@router.delete("/tables/{table}/{record_id}")
def remove(
    table: str,
    record_id: int,
    cascade: Optional[bool] = None,
    db: Database = Depends(get_db),
):
    if cascade is None:
        cascade = bool(db.schema.junctions_for(db.config(table).table_name))
    if cascade:
        return envelope(db.remove_with_cascade(table, record_id))
    return envelope(db.remove(table, record_id))


@router.get("/tables/{table}/{record_id}/history")
def read_history(table: str, record_id: int, db: Database = Depends(get_db)):
    return envelope(db.read_history(table, record_id))


@router.post("/tables/{table}/{record_id}/restore")
def restore(table: str, record_id: int, db: Database = Depends(get_db)):
    return envelope(db.restore(table, record_id))


@router.get("/tables/{child_table}/related/{fk_field}/{fk_value}")
def related(
    child_table: str,
    fk_field: str,
    fk_value: str,
    page: Optional[int] = None,
    page_size: Optional[int] = Query(None, alias="pageSize"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    use_cache: bool = Query(False, alias="useCache"),
    db: Database = Depends(get_db),
):
    options = _options(page, page_size, sort_by, sort_order)
    return envelope(db.get_related_records(fk_value, child_table, fk_field, options, use_cache))


@router.get("/junctions/{junction}/{source}/{source_id}/{target}")
def junction_records(
    junction: str,
    source: str,
    source_id: int,
    target: str,
    page: Optional[int] = None,
    page_size: Optional[int] = Query(None, alias="pageSize"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    db: Database = Depends(get_db),
):
    options = _options(page, page_size, sort_by, sort_order)
    return envelope(db.get_junction_records(junction, source, target, source_id, options))


@router.post("/junctions/{junction}/integrity")
def integrity(junction: str, db: Database = Depends(get_db)):
    return envelope(db.check_table_integrity(junction))


async def unknown_table_handler(request: Request, exc: UnknownTableError) -> JSONResponse:
    logger.error("Unknown table requested: %s", exc.table)
    return envelope(Response(status=404, message=str(exc)))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"location": ".".join(str(loc) for loc in error.get("loc", [])), "error": error.get("msg", "")}
        for error in exc.errors()
    ]
    logger.error("Request validation error: %s", errors)
    return envelope(Response(status=400, message="Validation Error", data=errors))


def create_app(db: Optional[Database] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    One-liner for the shop server:
        app = create_app(settings=Settings.from_env())
    Pass ``db`` to serve an already initialised handle (it is left open).
    """
    settings = settings or (db.settings if db is not None else Settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        owned = db is None
        handle = db if db is not None else Database.init(settings)
        app.state.db = register_shop_schema(handle)
        yield
        if owned:
            handle.close()

    app = FastAPI(lifespan=lifespan, title="sheetdb shop", summary="Spreadsheet-backed CRUD demo")
    app.include_router(router)
    app.add_exception_handler(UnknownTableError, unknown_table_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    return app
