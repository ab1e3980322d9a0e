from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles

from .api_models import ErrorResponse, EventResponse, ReloadResponse, StatusResponse
from .db import ResourcePool
from .errors import DatabaseUnavailable, QueryError
from .mock_data import MOCK_DATA
from .reconciler import Reconciler
from .render import PageRenderer, RenderFn
from .runtime import ProcessState, iso_now
from .settings import Settings, options

log = logging.getLogger(__name__)

# Resource name -> table name. Only these names ever reach SQL.
RESOURCES = {name: name for name in MOCK_DATA}

DB_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    404: {"description": "Unknown resource or id"},
    500: {"model": ErrorResponse, "description": "Database error"},
    503: {"model": ErrorResponse, "description": "Database not connected"},
}


def get_process_state(request: Request) -> ProcessState:
    return request.app.state.process


def get_pool(request: Request) -> ResourcePool:
    return request.app.state.pool


def get_reconciler(request: Request) -> Reconciler:
    return request.app.state.reconciler


def _singular(resource: str) -> str:
    return resource[:-1].capitalize() if resource.endswith("s") else resource.capitalize()


def _resource_table(resource: str) -> str:
    table = RESOURCES.get(resource)
    if table is None:
        raise HTTPException(status_code=404, detail=f"Unknown resource '{resource}'")
    return table


def create_app(
    settings: Settings,
    state: ProcessState,
    pool: ResourcePool,
    reconciler: Reconciler,
    *,
    root: str | Path = ".",
    render: RenderFn | None = None,
    mock_fallback: bool | None = None,
) -> FastAPI:
    """Build the ASGI app for one listener generation.

    The app is rebuilt on every listener restart so mode-dependent behaviour
    (docs, static assets, template location) follows the new settings. Data
    that may change without a restart (port, connected flag) is read from
    ``state`` per request.
    """
    app = FastAPI(
        title="Hot-Reload Server",
        debug=not settings.is_production,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        openapi_url=None if settings.is_production else "/openapi.json",
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.state.process = state
    app.state.pool = pool
    app.state.reconciler = reconciler
    use_mock = options.mock_fallback if mock_fallback is None else mock_fallback
    renderer = PageRenderer(settings, root=root, render=render)

    @app.exception_handler(DatabaseUnavailable)
    async def _db_unavailable(request: Request, exc: DatabaseUnavailable) -> JSONResponse:
        body = ErrorResponse(message="Database not connected")
        return JSONResponse(status_code=503, content=body.model_dump(exclude_none=True))

    @app.exception_handler(QueryError)
    async def _query_error(request: Request, exc: QueryError) -> JSONResponse:
        body = ErrorResponse(error="Database error", message=str(exc))
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))

    @app.get("/api/status", response_model=StatusResponse)
    def status(st: ProcessState = Depends(get_process_state)) -> StatusResponse:
        current = st.settings
        return StatusResponse(
            db_connected=st.db_connected,
            server_time=iso_now(),
            port=current.port,
            node_env=current.mode.value,
            listening_port=st.listening_port,
            generation=st.generation,
        )

    @app.post("/api/reload-env", response_model=ReloadResponse)
    async def reload_env(
        st: ProcessState = Depends(get_process_state),
        rec: Reconciler = Depends(get_reconciler),
    ) -> ReloadResponse:
        outcome = await rec.reload()
        return ReloadResponse(
            success=outcome.success,
            message=outcome.message,
            port=outcome.settings.port,
            node_env=outcome.settings.mode.value,
            db_connected=st.db_connected,
            database_url_changed=outcome.database_url_changed,
            server_restarting=outcome.server_restarting,
            generation=outcome.generation,
        )

    @app.get("/api/events", response_model=list[EventResponse])
    def events(
        limit: int = Query(100, ge=1, le=1000),
        st: ProcessState = Depends(get_process_state),
    ) -> list[EventResponse]:
        return [EventResponse(ts=e.ts, level=e.level, message=e.message) for e in st.latest_events(limit)]

    @app.get("/api/{resource}", responses=DB_ERROR_RESPONSES)
    async def list_items(resource: str, db: ResourcePool = Depends(get_pool)) -> list[dict[str, Any]]:
        table = _resource_table(resource)
        if use_mock and not db.connected:
            return MOCK_DATA[resource]
        return await db.fetch(f"SELECT * FROM {table}")

    @app.get("/api/{resource}/{item_id}", responses=DB_ERROR_RESPONSES)
    async def get_item(resource: str, item_id: int, db: ResourcePool = Depends(get_pool)) -> dict[str, Any]:
        table = _resource_table(resource)
        if use_mock and not db.connected:
            row = next((item for item in MOCK_DATA[resource] if item["id"] == item_id), None)
        else:
            row = await db.fetchrow(f"SELECT * FROM {table} WHERE id = $1", item_id)
        if row is None:
            raise HTTPException(status_code=404, detail=f"{_singular(resource)} not found")
        return row

    if settings.is_production and renderer.assets_dir.is_dir():
        app.mount("/assets", StaticFiles(directory=str(renderer.assets_dir)), name="assets")

    @app.get("/{full_path:path}", response_class=HTMLResponse, include_in_schema=False)
    def page(request: Request, full_path: str) -> Any:
        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"
        try:
            return HTMLResponse(renderer.render(url))
        except Exception as e:
            log.exception("Rendering %s failed", url)
            return PlainTextResponse(f"{type(e).__name__}: {e}", status_code=500)

    return app
