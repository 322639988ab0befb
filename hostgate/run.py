"""Programmatic uvicorn entry point for hostgate.

Reads host and port from the loaded config (127.0.0.1:3005 by default) and
starts uvicorn with hardened defaults:

  --limit-concurrency 100  Max 100 concurrent connections; HTTP 503 when exceeded
  --backlog 50             OS connection queue depth
  --timeout-keep-alive 5   Short keep-alive window for idle client connections

Usage:
    python -m hostgate.run     # reads .hostgate/config.yaml
    hostgate                   # via pyproject.toml [project.scripts]
"""

from __future__ import annotations

import uvicorn

from hostgate.config import load_config

# ─── Uvicorn hardened defaults ────────────────────────────────────────────────

# Must match the httpx pool size (POOL_MAX_CONNECTIONS in constants.py).
UVICORN_LIMIT_CONCURRENCY: int = 100

UVICORN_BACKLOG: int = 50

UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the hostgate listener.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    config = load_config()

    uvicorn.run(
        "hostgate.main:app",
        host=config.proxy.host,
        port=config.proxy.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
