"""Per-domain forwarder for hostgate.

A Forwarder proxies one request to its bound backend target:
  - origin is http://{target}; path and query string pass through unchanged
  - request body and headers forwarded as raw bytes; never parsed or re-encoded
  - response body relayed as the raw byte stream; Content-Encoding kept as sent
  - Host rewritten to the target (changeOrigin); Set-Cookie domains untouched
  - shared httpx.AsyncClient at app.state.http_client — never instantiated per request
  - bounded per-forwarder timeout so one dead backend cannot pin request tasks

Failure path (uniform for every forwarder):
  - httpx.RequestError (ConnectError, TimeoutException, RemoteProtocolError,
    UnsupportedProtocol, ...) → BackendUnavailableError
  - httpx.InvalidURL (malformed proxyTo target) → BackendUnavailableError
  - HostDispatchMiddleware turns BackendUnavailableError into HTTP 500
    "Proxy Error" (build_proxy_error_response). No retry, no fall-through.
  - Backend HTTP 4xx/5xx responses are relayed as-is (NOT converted).
"""

from __future__ import annotations

from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import AsyncGenerator, Optional

import httpx
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from hostgate.constants import (
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_FORWARD_TIMEOUT_S,
    POOL_KEEPALIVE_EXPIRY,
    POOL_MAX_CONNECTIONS,
    POOL_MAX_KEEPALIVE,
    PROXY_ERROR_BODY,
    TARGET_SCHEME,
)
from hostgate.routing.headers import build_client_response_headers, build_forward_headers
from hostgate.utils.logger import get_logger

logger = get_logger(__name__)

# Added by httpx to every request unless removed from the client.
CLIENT_DEFAULT_HEADERS: tuple[str, ...] = ("accept", "accept-encoding", "user-agent")


# ─── Errors ───────────────────────────────────────────────────────────────────


class BackendUnavailableError(Exception):
    """A forwarder could not get a response from its backend.

    Raised for transport-level failures (connection refused, DNS failure,
    timeouts, protocol errors) and for malformed targets. Carries the routing
    context; the original httpx exception is ``cause`` (and ``__cause__``).
    """

    def __init__(self, domain: Optional[str], target: str, cause: Exception) -> None:
        super().__init__(f"{target}: {type(cause).__name__}: {cause}")
        self.domain = domain
        self.target = target
        self.cause = cause

    @property
    def invalid_target(self) -> bool:
        """True when the proxyTo target itself is malformed (a config error)."""
        return isinstance(self.cause, httpx.InvalidURL)


# ─── httpx.AsyncClient factory ────────────────────────────────────────────────


def create_http_client(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient with connection pooling configured.

    Created once at lifespan startup and stored in app.state.http_client.
    Every forwarder of every routing table shares it, so swapping tables never
    drops pooled connections.

    Per-request timeouts are supplied by each Forwarder; the client-level
    timeout here is only the fallback.

    The client is shared by every visitor, so it never stores cookies, and
    it sends only the headers the visitor sent: httpx's default Accept,
    Accept-Encoding and User-Agent are removed.
    """
    client = httpx.AsyncClient(
        transport=transport,
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=build_forward_timeout(),
        follow_redirects=False,  # 3xx pass through to the client
        cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
    )
    for name in CLIENT_DEFAULT_HEADERS:
        del client.headers[name]
    return client


def build_forward_timeout(
    timeout_s: float = DEFAULT_FORWARD_TIMEOUT_S,
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
) -> httpx.Timeout:
    """Return the bounded wait applied to every backend request."""
    return httpx.Timeout(timeout_s, connect=connect_timeout_s)


def build_proxy_error_response() -> Response:
    """HTTP 500 with the fixed ``Proxy Error`` body. Never carries internal detail."""
    return Response(status_code=500, content=PROXY_ERROR_BODY, media_type="text/plain")


# ─── Forwarder ────────────────────────────────────────────────────────────────


class Forwarder:
    """Proxies requests for one domain to one backend target.

    Stateless apart from the shared client reference; safe to call from any
    number of concurrent request tasks.
    """

    __slots__ = ("name", "domain", "target", "origin", "_client", "_timeout")

    def __init__(
        self,
        target: str,
        http_client: httpx.AsyncClient,
        *,
        timeout: Optional[httpx.Timeout] = None,
        name: Optional[str] = None,
        domain: Optional[str] = None,
    ) -> None:
        self.name = name
        self.domain = domain
        self.target = target
        self.origin = f"{TARGET_SCHEME}://{target}"
        self._client = http_client
        self._timeout = timeout if timeout is not None else build_forward_timeout()

    def __repr__(self) -> str:
        return f"Forwarder(domain={self.domain!r}, target={self.target!r})"

    def build_url(self, request: Request) -> str:
        """Return the backend URL: origin + the raw request path + query string."""
        raw_path: Optional[bytes] = request.scope.get("raw_path")
        path = raw_path.decode("latin-1") if raw_path else request.url.path
        query = request.url.query
        return f"{self.origin}{path}?{query}" if query else f"{self.origin}{path}"

    async def forward(self, request: Request) -> Response:
        """Proxy ``request`` to the target and return the relayed response.

        Returns:
            StreamingResponse with the backend status, headers and body.

        Raises:
            BackendUnavailableError: The backend could not be reached, timed
                                     out, or the target is malformed.
        """
        body: bytes = await request.body()

        try:
            upstream_request = self._client.build_request(
                method=request.method,
                url=self.build_url(request),
                headers=build_forward_headers(request.headers.raw, self.target),
                content=body,
                timeout=self._timeout,
            )
            upstream_response = await self._client.send(upstream_request, stream=True)
        except (httpx.InvalidURL, httpx.RequestError) as exc:
            raise BackendUnavailableError(self.domain, self.target, exc) from exc

        logger.info(
            "forward_response",
            domain=self.domain,
            target=self.target,
            method=request.method,
            path=request.url.path,
            status_code=upstream_response.status_code,
        )

        response = StreamingResponse(
            content=self._relay(upstream_response),
            status_code=upstream_response.status_code,
            background=BackgroundTask(upstream_response.aclose),
        )
        response.raw_headers.extend(build_client_response_headers(upstream_response.headers))
        return response

    async def _relay(self, upstream_response: httpx.Response) -> AsyncGenerator[bytes, None]:
        """Yield the backend body. A mid-stream failure ends the body early.

        Status and headers are already on the wire by then, so the 500 path is
        no longer available; the client sees a truncated body.
        """
        try:
            async for chunk in upstream_response.aiter_raw():
                yield chunk
        except httpx.RequestError as exc:
            logger.warning(
                "forward_stream_interrupted",
                domain=self.domain,
                target=self.target,
                error_type=type(exc).__name__,
                error=str(exc),
            )
