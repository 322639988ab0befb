"""Host-based request dispatch for hostgate.

DynamicProxy owns the process-wide routing table reference:
  - table           — current RoutingTable; read once per request, no lock
  - swap_table()    — replaces the reference; the only mutation
  - update_config() — build-then-swap from a route snapshot; sole write path

HostDispatchMiddleware consults it for every inbound request:
  1. host = Host header, exact and case-sensitive (no port stripping)
  2. table = dynamic_proxy.table (one snapshot read)
  3. match    → Forwarder.forward(request)
  4. BackendUnavailableError → HTTP 500 "Proxy Error" for this request only
  5. no match → call_next (control-plane routes, static fallback, 404)

Swap semantics: a request that already read the old reference completes
against it; requests starting after the swap see the new table. A table is
never mutated after construction, so no request can observe a half-built one.
"""

from __future__ import annotations

import threading
from typing import Any, Iterable, Mapping, Optional, Union

import httpx
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from hostgate.routing.forwarder import (
    BackendUnavailableError,
    build_forward_timeout,
    build_proxy_error_response,
)
from hostgate.routing.records import RouteRecord
from hostgate.routing.table import RoutingTable, build_routing_table
from hostgate.utils.logger import bind_request_id, get_logger, unbind_request_id
from hostgate.utils.ulid import generate_ulid

logger = get_logger(__name__)

RouteSnapshot = Iterable[Union[RouteRecord, Mapping[str, Any]]]


# ─── DynamicProxy ─────────────────────────────────────────────────────────────


class DynamicProxy:
    """Owner of the live routing table.

    Usage (in lifespan):
        dynamic_proxy = DynamicProxy(http_client, timeout=build_forward_timeout(30, 5))
        dynamic_proxy.update_config(await store.list_routes())
        app.state.dynamic_proxy = dynamic_proxy

    Thread-safety:
        Writers (swap_table / update_config) are serialised with a
        threading.RLock so versions are strictly increasing. Readers access
        ``table`` without locking; rebinding one attribute is atomic, so a
        reader gets either the old or the new table, never a mix.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        timeout: Optional[httpx.Timeout] = None,
    ) -> None:
        self._http_client = http_client
        self._timeout = timeout if timeout is not None else build_forward_timeout()
        self._table: RoutingTable = RoutingTable.empty()
        self._write_lock = threading.RLock()

    @property
    def table(self) -> RoutingTable:
        """The current routing table (snapshot read, no lock)."""
        return self._table

    def swap_table(self, new_table: RoutingTable) -> RoutingTable:
        """Install ``new_table`` and return the table it replaced."""
        with self._write_lock:
            previous = self._table
            self._table = new_table
        logger.info(
            "routing_table_swapped",
            previous_version=previous.version,
            version=new_table.version,
            routes=len(new_table),
        )
        return previous

    def update_config(self, records: RouteSnapshot) -> RoutingTable:
        """Rebuild the routing table from a full route snapshot and install it.

        Raw mappings are coerced with RouteRecord.from_dict. Coercion and build
        both complete before the swap, so any exception leaves the live table
        in force.

        Returns:
            The newly installed RoutingTable.

        Raises:
            InvalidRouteRecord: If a raw mapping in ``records`` is malformed.
        """
        snapshot = [
            record if isinstance(record, RouteRecord) else RouteRecord.from_dict(record)
            for record in records
        ]
        logger.info("update_config", records=len(snapshot))

        with self._write_lock:
            new_table = build_routing_table(
                snapshot,
                self._http_client,
                timeout=self._timeout,
                version=self._table.version + 1,
            )
            self.swap_table(new_table)
        return new_table


# ─── Middleware ───────────────────────────────────────────────────────────────


class HostDispatchMiddleware(BaseHTTPMiddleware):
    """Starlette middleware routing requests by exact Host header.

    Registration (in create_app() in hostgate/main.py):
        application.add_middleware(HostDispatchMiddleware)

    Reads ``request.app.state.dynamic_proxy``; until the lifespan installs it,
    every request falls through.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        bind_request_id(generate_ulid())
        try:
            host: Optional[str] = request.headers.get("host")
            dynamic_proxy: Optional[DynamicProxy] = getattr(
                request.app.state, "dynamic_proxy", None
            )
            table = dynamic_proxy.table if dynamic_proxy is not None else RoutingTable.empty()
            forwarder = table.get(host) if host is not None else None

            if forwarder is None:
                logger.info(
                    "dispatch_fallthrough",
                    host=host,
                    method=request.method,
                    path=request.url.path,
                    table_version=table.version,
                )
                return await call_next(request)

            logger.info(
                "dispatch_proxied",
                host=host,
                target=forwarder.target,
                method=request.method,
                path=request.url.path,
                table_version=table.version,
            )
            try:
                return await forwarder.forward(request)
            except BackendUnavailableError as exc:
                log = logger.error if exc.invalid_target else logger.warning
                log(
                    "dispatch_failed",
                    host=host,
                    target=exc.target,
                    error_type=type(exc.cause).__name__,
                    error=str(exc.cause),
                    table_version=table.version,
                )
                return build_proxy_error_response()
        finally:
            unbind_request_id()
