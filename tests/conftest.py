"""Root test configuration for hostgate.

Shared fixtures for driving the app in-process:
  - backends:  MockBackends, several stub backends behind one
               httpx.MockTransport, keyed by the ``host:port`` a Forwarder targets
  - build_app: factory returning a create_app() instance whose lifespan uses
               an in-memory store seeded with the given routes and a
               create_http_client() wired to ``backends`` (no file or
               network I/O unless ``live=True``)

HOSTGATE_* environment variables are cleared for every test so a developer's
shell cannot leak into config loading.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Union

import httpx
import pytest
from fastapi import FastAPI

from hostgate.config import Config, ForwarderConfig, StaticConfig, StoreConfig
from hostgate.routing.forwarder import create_http_client

BackendHandler = Callable[[httpx.Request], Union[httpx.Response, Awaitable[httpx.Response]]]


@pytest.fixture(autouse=True)
def clear_hostgate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove HOSTGATE_* overrides for the duration of each test."""
    for name in ("HOSTGATE_CONFIG", "HOSTGATE_PORT", "HOSTGATE_STORE_PATH"):
        monkeypatch.delenv(name, raising=False)


# ─── Mock backends ────────────────────────────────────────────────────────────


class MockBackends:
    """In-process backends using httpx.MockTransport.

    Requests are routed by the URL's ``host:port`` (the Forwarder target).
    Requests to an unregistered target fail with ConnectError, like a closed
    port would. Every request is recorded in ``received``.
    """

    def __init__(self) -> None:
        self.backends: dict[str, BackendHandler] = {}
        self.received: list[httpx.Request] = []

    def add(self, target: str, handler: BackendHandler) -> None:
        self.backends[target] = handler

    def add_text(self, target: str, body: str, status_code: int = 200) -> None:
        """Backend answering every request with a fixed text body."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                status_code, content=body.encode(), headers={"content-type": "text/plain"}
            )

        self.add(target, handler)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.received.append(request)
        target = f"{request.url.host}:{request.url.port}"
        backend = self.backends.get(target)
        if backend is None:
            raise httpx.ConnectError(f"Connection refused: {target}", request=request)
        response = backend(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return unread(response)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def unread(response: httpx.Response) -> httpx.Response:
    """Return ``response`` with its body as an unread stream.

    httpx reads ``Response(content=...)`` bodies eagerly, which leaves nothing
    for ``aiter_raw()``; a response from a real connection arrives unread.
    """
    if not response.is_stream_consumed:
        return response
    return httpx.Response(
        response.status_code,
        headers=response.headers,
        stream=httpx.ByteStream(response.content),
    )


@pytest.fixture
def backends() -> MockBackends:
    return MockBackends()


# ─── App wiring ───────────────────────────────────────────────────────────────


def memory_config(
    routes: Optional[list[dict[str, Any]]] = None,
    static: Optional[StaticConfig] = None,
) -> Config:
    """Return a default Config using the in-memory store seeded with ``routes``."""
    config = Config.defaults()
    config.store = StoreConfig(backend="memory")
    config.routes = list(routes or [])
    if static is not None:
        config.static = static
    return config


@pytest.fixture
def build_app(
    monkeypatch: pytest.MonkeyPatch, backends: MockBackends
) -> Callable[..., FastAPI]:
    """Factory: build_app(routes=[...], static=StaticConfig(...)) → FastAPI app.

    The app's shared client is the real create_http_client() wired to the
    ``backends`` transport. ``live=True`` leaves the default network transport
    in place for tests against real sockets; ``forwarder`` overrides the
    backend timeouts.

    The returned app is not started; use ``TestClient(app)`` as a context
    manager or ``async with lifespan(app)``.
    """
    from hostgate.main import create_app

    def factory(
        routes: Optional[list[dict[str, Any]]] = None,
        static: Optional[StaticConfig] = None,
        *,
        forwarder: Optional[ForwarderConfig] = None,
        live: bool = False,
    ) -> FastAPI:
        config = memory_config(routes, static)
        if forwarder is not None:
            config.forwarder = forwarder
        monkeypatch.setattr("hostgate.main.load_config", lambda: config)
        if not live:
            monkeypatch.setattr(
                "hostgate.main.create_http_client",
                lambda: create_http_client(transport=backends.transport),
            )
        return create_app()

    return factory
