"""Unit tests for hostgate.utils.logger."""

from __future__ import annotations

import logging
from typing import Any

import pytest
import structlog
from structlog.contextvars import get_contextvars
from structlog.testing import LogCapture

from hostgate.utils.logger import BuildTimer, bind_request_id, unbind_request_id


def _capturing_logger() -> tuple[Any, list[dict[str, Any]]]:
    capture = LogCapture()
    logger = structlog.wrap_logger(
        None,
        processors=[capture],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
    )
    return logger, capture.entries


class TestRequestId:
    def test_bound_then_unbound(self) -> None:
        bind_request_id("01HZX")
        try:
            assert get_contextvars()["request_id"] == "01HZX"
        finally:
            unbind_request_id()

        assert "request_id" not in get_contextvars()


class TestBuildTimer:
    def test_fast_build_logged_at_debug(self) -> None:
        logger, logs = _capturing_logger()
        with BuildTimer("routing_table_build", logger, version=4):
            pass

        [entry] = logs
        assert entry["event"] == "routing_table_build"
        assert entry["log_level"] == "debug"
        assert entry["version"] == 4
        assert entry["slow"] is False
        assert entry["duration_ms"] >= 0

    def test_slow_build_logged_at_warning(self) -> None:
        logger, logs = _capturing_logger()
        with BuildTimer("routing_table_build", logger, warn_after_ms=-1):
            pass

        [entry] = logs
        assert entry["log_level"] == "warning"
        assert entry["slow"] is True

    def test_failed_build_logged_and_raised(self) -> None:
        logger, logs = _capturing_logger()
        with pytest.raises(ValueError):
            with BuildTimer("routing_table_build", logger, version=2):
                raise ValueError("bad record")

        [entry] = logs
        assert entry["event"] == "routing_table_build_failed"
        assert entry["log_level"] == "error"
        assert entry["error"] == "bad record"
