"""Control-plane endpoints for hostgate.

Provides:
  POST /api/rpc        — route CRUD + reload, dispatched on the body's `action`
  GET  /reload-config  — legacy no-op; kept for existing tooling
  *    /api/{path}     — any other API path → 404 "API endpoint not found"
                         (plain text); non-POST /api/rpc → static fallback

Every successful mutation is followed by reload_routes(), which rebuilds the
routing table from the store's full snapshot. A reload failure after a
committed mutation does not fail the call: the previous table stays live and
the response carries ``"reloaded": false``.

These routes are only reached for requests whose Host has no route;
HostDispatchMiddleware proxies everything else before routing happens.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, ValidationError

from hostgate.constants import LEGACY_RELOAD_MESSAGE
from hostgate.fallback import fallback
from hostgate.routing.dispatch import DynamicProxy
from hostgate.routing.records import InvalidRouteRecord
from hostgate.routing.table import RoutingTable
from hostgate.store.protocol import DuplicateDomainError, RouteStore
from hostgate.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["control"])


# ─── Request Models ───────────────────────────────────────────────────────────


class RpcRequest(BaseModel):
    """Request body for POST /api/rpc."""

    action: str
    """One of getConfig, addConfig, updateConfig, deleteConfig, reloadConfig."""
    id: Optional[str] = None
    """Target record id for updateConfig / deleteConfig."""
    data: Optional[dict[str, Any]] = None
    """Record fields for addConfig (full) / updateConfig (partial)."""


# ─── Reload helper ────────────────────────────────────────────────────────────


async def reload_routes(app: FastAPI) -> RoutingTable:
    """Rebuild the routing table from the store's current snapshot.

    Raises whatever list_routes() or update_config() raises; the live table is
    untouched in that case.
    """
    store: RouteStore = app.state.route_store
    dynamic_proxy: DynamicProxy = app.state.dynamic_proxy
    records = await store.list_routes()
    return dynamic_proxy.update_config(records)


async def _reload_after_mutation(app: FastAPI, action: str) -> bool:
    try:
        await reload_routes(app)
    except Exception as exc:  # noqa: BLE001
        logger.error(
            "routes_reload_failed",
            action=action,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return False
    return True


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


# ─── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/api/rpc")
async def rpc(request: Request) -> JSONResponse:
    """Single RPC entry point for route management.

    Body: {"action": str, "id": str?, "data": object?}

    Responses:
        getConfig    → {"success": true, "data": [record, ...]}
        addConfig    → {"success": true, "data": record, "reloaded": bool}
        updateConfig → {"success": true, "data": record, "reloaded": bool} | 404
        deleteConfig → {"success": true, "message": ..., "reloaded": bool} | 404
        reloadConfig → {"success": true, "message": ...}

    Errors: 400 malformed body / unknown action / invalid record data,
    409 duplicate domain, 500 "Server error" for store or reload failures.
    Error bodies never carry internal detail.
    """
    try:
        body = RpcRequest.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
        logger.warning("rpc_invalid_body", error_type=type(exc).__name__)
        return _failure(400, "Invalid request body")

    store: RouteStore = request.app.state.route_store
    logger.info("rpc_request", action=body.action, id=body.id)

    try:
        if body.action == "getConfig":
            records = await store.list_routes()
            return JSONResponse({"success": True, "data": [r.to_dict() for r in records]})

        if body.action == "addConfig":
            record = await store.create_route(body.data or {})
            reloaded = await _reload_after_mutation(request.app, body.action)
            return JSONResponse(
                {"success": True, "data": record.to_dict(), "reloaded": reloaded}
            )

        if body.action == "updateConfig":
            if not body.id:
                return _failure(400, "Missing id")
            record = await store.update_route(body.id, body.data or {})
            if record is None:
                return _failure(404, "Config not found")
            reloaded = await _reload_after_mutation(request.app, body.action)
            return JSONResponse(
                {"success": True, "data": record.to_dict(), "reloaded": reloaded}
            )

        if body.action == "deleteConfig":
            if not body.id:
                return _failure(400, "Missing id")
            removed = await store.delete_route(body.id)
            if removed is None:
                return _failure(404, "Config not found")
            reloaded = await _reload_after_mutation(request.app, body.action)
            return JSONResponse(
                {"success": True, "message": "Config deleted successfully", "reloaded": reloaded}
            )

        if body.action == "reloadConfig":
            await reload_routes(request.app)
            return JSONResponse({"success": True, "message": LEGACY_RELOAD_MESSAGE})

        return _failure(400, "Unknown action")

    except InvalidRouteRecord as exc:
        return _failure(400, str(exc))
    except DuplicateDomainError as exc:
        return _failure(409, str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.error(
            "rpc_failed",
            action=body.action,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return _failure(500, "Server error")


@router.get("/reload-config")
async def legacy_reload_config() -> PlainTextResponse:
    """Legacy endpoint. Reports success without touching the routing table."""
    logger.info("legacy_reload_config")
    return PlainTextResponse(LEGACY_RELOAD_MESSAGE)


@router.api_route(
    "/api/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
    include_in_schema=False,
)
async def unknown_api_endpoint(request: Request, path: str) -> Response:
    # Only POST is handled on /api/rpc; other methods get the fallback.
    if path == "rpc":
        return await fallback(request, path)
    return PlainTextResponse("API endpoint not found", status_code=404)
