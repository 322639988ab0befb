"""Structured logging for hostgate (structlog).

Every log line is one event name plus key/value fields. Dispatch binds a
per-request ``request_id`` with bind_request_id(); anything logged while that
request is handled (forwarder, fallback) carries it.

LOG_LEVEL and JSON_LOGS are read by hostgate.main at import and passed to
configure_logging().
"""

import logging
import sys
import time
from typing import Any, Optional

import structlog
from structlog.contextvars import bind_contextvars, merge_contextvars, unbind_contextvars
from structlog.types import Processor


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Install the structlog processor chain.

    Args:
        log_level:   DEBUG, INFO, WARNING, ERROR or CRITICAL.
        json_output: One JSON object per line when True; coloured console
                     output otherwise.
    """
    processors: list[Processor] = [
        merge_contextvars,
        structlog.processors.TimeStamper(fmt=None, key="timestamp"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "hostgate") -> structlog.stdlib.BoundLogger:
    """Return a logger whose events carry ``logger=<name>``."""
    return structlog.get_logger(logger=name)


def bind_request_id(request_id: str) -> None:
    """Attach ``request_id`` to every event logged in the current context."""
    bind_contextvars(request_id=request_id)


def unbind_request_id() -> None:
    unbind_contextvars("request_id")


class BuildTimer:
    """Time a routing table build and log one event when it finishes.

    Logs ``<event>`` at DEBUG, or WARNING when the build took longer than
    ``warn_after_ms``; a build that raises logs ``<event>_failed`` at ERROR
    and the exception propagates.

        with BuildTimer("routing_table_build", logger, version=3):
            ...
    """

    def __init__(
        self,
        event: str,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        warn_after_ms: float = 50.0,
        **fields: Any,
    ) -> None:
        self.event = event
        self.logger = logger or get_logger()
        self.warn_after_ms = warn_after_ms
        self.fields = fields
        self._started = 0.0

    def __enter__(self) -> "BuildTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        elapsed_ms = round((time.perf_counter() - self._started) * 1000, 3)
        if exc_type is not None:
            self.logger.error(
                f"{self.event}_failed",
                duration_ms=elapsed_ms,
                error=str(exc_val),
                **self.fields,
            )
            return
        slow = elapsed_ms > self.warn_after_ms
        log = self.logger.warning if slow else self.logger.debug
        log(self.event, duration_ms=elapsed_ms, slow=slow, **self.fields)


configure_logging()
