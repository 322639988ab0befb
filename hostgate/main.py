"""hostgate FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()          → app.state.config
  2. create_route_store()   → app.state.route_store   (failure is fatal)
  3. create_http_client()   → app.state.http_client
  4. DynamicProxy()         → app.state.dynamic_proxy
  5. initial update_config(store snapshot)           (failure is fatal)
  6. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → close HTTP client → close route store

Request path:
  HostDispatchMiddleware (outermost) proxies any request whose Host matches a
  route. Everything else reaches the routers in this order:
    /health → /api/rpc, /reload-config, /api/* → static fallback (catch-all)
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from hostgate.config import Config, load_config
from hostgate.control import reload_routes
from hostgate.control import router as control_router
from hostgate.fallback import router as fallback_router
from hostgate.health import router as health_router
from hostgate.routing.dispatch import DynamicProxy, HostDispatchMiddleware
from hostgate.routing.forwarder import build_forward_timeout, create_http_client
from hostgate.store import RouteStore, create_route_store
from hostgate.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence.

    Any exception before ``yield`` propagates out of the lifespan, so uvicorn
    exits without ever serving traffic. load_config() raises SystemExit on
    config errors; store open, schema guard and initial snapshot failures
    raise their own exceptions.
    """
    logger.info("hostgate starting up...")

    # ── Step 1: Load configuration ────────────────────────────────────────────
    config: Config = load_config()
    app.state.config = config

    # ── Step 2: Open route store ──────────────────────────────────────────────
    route_store: RouteStore = await create_route_store(config)
    app.state.route_store = route_store

    # ── Step 3: Shared HTTP client ────────────────────────────────────────────
    # One pooled client for every forwarder of every table.
    http_client: httpx.AsyncClient = create_http_client()
    app.state.http_client = http_client

    # ── Step 4: Routing table owner ───────────────────────────────────────────
    dynamic_proxy = DynamicProxy(
        http_client,
        timeout=build_forward_timeout(
            config.forwarder.timeout_s, config.forwarder.connect_timeout_s
        ),
    )
    app.state.dynamic_proxy = dynamic_proxy

    # ── Step 5: Initial snapshot ──────────────────────────────────────────────
    try:
        table = await reload_routes(app)
    except Exception:
        await http_client.aclose()
        await route_store.close()
        raise
    logger.info("Initial routing table installed", routes=len(table), version=table.version)

    # ── Step 6: Mark as ready ─────────────────────────────────────────────────
    app.state.ready = True
    logger.info(
        "hostgate ready",
        host=config.proxy.host,
        port=config.proxy.port,
        store_backend=config.store.backend,
    )

    yield

    # ── Shutdown (reverse order) ──────────────────────────────────────────────
    logger.info("hostgate shutting down...")
    app.state.ready = False

    try:
        await http_client.aclose()
        logger.info("HTTP proxy client closed")
    except Exception as exc:
        logger.warning("HTTP proxy client close error (non-fatal)", error=str(exc))

    await route_store.close()
    logger.info("hostgate shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the hostgate FastAPI application.

    Call this function directly in tests to get an isolated app instance:
        app = create_app()

    The module-level `app` is created at import time for uvicorn:
        uvicorn hostgate.main:app --host 127.0.0.1 --port 3005
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="hostgate",
        description="Dynamic Host-header routing reverse proxy",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # /health returns 503 on any request that arrives before startup completes.
    application.state.ready = False

    # Host dispatch runs before routing: a matched Host is proxied regardless
    # of path, including /health and /api/*.
    application.add_middleware(HostDispatchMiddleware)

    application.include_router(health_router)
    application.include_router(control_router)
    # Catch-all; MUST be included last.
    application.include_router(fallback_router)

    # Global exception handlers
    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
