"""Unit tests for the application factory and lifespan lifecycle.

Covers:
  - create_app(): independent instances, ready=False before startup
  - startup: state populated, initial table built from the store snapshot
  - startup failures (config, store, initial snapshot) propagate, never ready
  - shutdown: ready=False, shared HTTP client closed
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from hostgate.config import Config
from hostgate.main import create_app, lifespan
from hostgate.routing.dispatch import DynamicProxy
from hostgate.store.memory import InMemoryRouteStore
from hostgate.store.protocol import DuplicateDomainError

BLOG = {"name": "Blog", "domain": "blog.test", "proxyTo": "127.0.0.1:9001"}


# ─── create_app() ─────────────────────────────────────────────────────────────


class TestCreateAppFactory:
    def test_create_app_returns_fastapi_instance(self) -> None:
        assert isinstance(create_app(), FastAPI)

    def test_create_app_multiple_calls_return_independent_instances(self) -> None:
        assert create_app() is not create_app()

    def test_create_app_initialises_ready_false(self) -> None:
        """app.state.ready is False immediately after create_app(), before lifespan."""
        application = create_app()
        assert application.state.ready is False

    def test_docs_disabled_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DEBUG", raising=False)
        application = create_app()
        assert application.docs_url is None
        assert application.openapi_url is None


# ─── Startup ──────────────────────────────────────────────────────────────────


class TestLifespanStartup:
    def test_state_populated(self, build_app) -> None:
        application = build_app([BLOG])

        with TestClient(application):
            assert application.state.ready is True
            assert isinstance(application.state.config, Config)
            assert isinstance(application.state.route_store, InMemoryRouteStore)
            assert isinstance(application.state.dynamic_proxy, DynamicProxy)

    def test_initial_table_built_from_store(self, build_app) -> None:
        application = build_app([BLOG])

        with TestClient(application):
            table = application.state.dynamic_proxy.table
            assert list(table) == ["blog.test"]
            assert table["blog.test"].target == "127.0.0.1:9001"
            assert table.version == 1

    def test_empty_store_starts_with_empty_table(self, build_app) -> None:
        application = build_app()

        with TestClient(application):
            assert len(application.state.dynamic_proxy.table) == 0
            assert application.state.ready is True


# ─── Startup failures ─────────────────────────────────────────────────────────


class TestLifespanStartupFailures:
    async def test_config_error_propagates(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def bad_load_config() -> Config:
            raise SystemExit(1)

        monkeypatch.setattr("hostgate.main.load_config", bad_load_config)
        application = create_app()

        with pytest.raises(SystemExit) as exc_info:
            async with lifespan(application):
                pass

        assert exc_info.value.code == 1
        assert application.state.ready is False

    async def test_store_failure_is_fatal(self, build_app, monkeypatch: pytest.MonkeyPatch) -> None:
        application = build_app([BLOG])
        monkeypatch.setattr(
            "hostgate.main.create_route_store",
            AsyncMock(side_effect=RuntimeError("Unsupported route database schema version: 7")),
        )

        with pytest.raises(RuntimeError, match="schema version"):
            async with lifespan(application):
                pass

        assert application.state.ready is False

    async def test_initial_snapshot_failure_is_fatal(
        self, build_app, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        application = build_app([BLOG])
        monkeypatch.setattr(
            "hostgate.main.reload_routes",
            AsyncMock(side_effect=RuntimeError("store unavailable")),
        )

        with pytest.raises(RuntimeError, match="store unavailable"):
            async with lifespan(application):
                pass

        assert application.state.ready is False
        assert application.state.http_client.is_closed

    async def test_duplicate_seed_routes_are_fatal(self, build_app) -> None:
        application = build_app([BLOG, {**BLOG, "name": "Again"}])

        with pytest.raises(DuplicateDomainError):
            async with lifespan(application):
                pass

        assert application.state.ready is False


# ─── Shutdown ─────────────────────────────────────────────────────────────────


class TestLifespanShutdown:
    def test_ready_false_after_shutdown(self, build_app) -> None:
        application = build_app([BLOG])

        with TestClient(application):
            assert application.state.ready is True

        assert application.state.ready is False

    def test_http_client_closed_on_shutdown(self, build_app) -> None:
        application = build_app([BLOG])

        with TestClient(application):
            assert not application.state.http_client.is_closed

        assert application.state.http_client.is_closed
