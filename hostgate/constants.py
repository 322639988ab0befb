"""Shared constants for hostgate.

Listener defaults, forwarder timeouts, connection pool sizing and the fixed
response bodies live here. Other modules import from here.
"""

# ─── Listener ─────────────────────────────────────────────────────────────────

DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 3005

# ─── Forwarder ────────────────────────────────────────────────────────────────

# Bounded wait on a backend. One unreachable backend must not pin request tasks
# indefinitely; on expiry the request fails with PROXY_ERROR_BODY.
DEFAULT_FORWARD_TIMEOUT_S: float = 30.0
DEFAULT_CONNECT_TIMEOUT_S: float = 5.0

# Pool size matches the uvicorn --limit-concurrency value in run.py.
POOL_MAX_CONNECTIONS: int = 100
POOL_MAX_KEEPALIVE: int = 100
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds

# Every forwarder builds its origin as f"{TARGET_SCHEME}://{target}".
TARGET_SCHEME: str = "http"

# ─── Fixed response bodies ────────────────────────────────────────────────────

# Returned with HTTP 500 when a backend cannot be reached. Never carries detail.
PROXY_ERROR_BODY: bytes = b"Proxy Error"

# Legacy GET /reload-config response (the endpoint is a no-op).
LEGACY_RELOAD_MESSAGE: str = "Configuration reloaded successfully"

# ─── Store ────────────────────────────────────────────────────────────────────

DEFAULT_STORE_PATH: str = "~/.hostgate/routes.db"
VALID_STORE_BACKENDS: frozenset[str] = frozenset({"sqlite", "memory"})
