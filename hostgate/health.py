"""Health endpoint for hostgate.

  GET /health — 503 before ``app.state.ready`` is set, 200 with routing status after.

Only reached for hosts without a route; a proxied domain's /health goes to its
backend.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "proxy": "running",
          "store": "healthy" | "error",
          "routes": 2,
          "table_version": 3
        }

    "degraded" means the route store failed its health check; the live
    routing table keeps serving either way.
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "hostgate is starting up"},
        )

    store_ok: bool = await request.app.state.route_store.health_check()
    table = request.app.state.dynamic_proxy.table

    return {
        "status": "ok" if store_ok else "degraded",
        "proxy": "running",
        "store": "healthy" if store_ok else "error",
        "routes": len(table),
        "table_version": table.version,
    }
