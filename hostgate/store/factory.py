"""Route store factory — backend selection and initialization.

Backend selection (config `store.backend`):
  - "sqlite" (default) → SQLiteRouteStore at store.path
  - "memory"           → InMemoryRouteStore seeded from config `routes:`

Any initialization failure (unreadable DB, schema version mismatch, invalid or
duplicate seed records) propagates to the FastAPI lifespan, which refuses to
start serving.
"""

from __future__ import annotations

from hostgate.config import Config
from hostgate.store.protocol import RouteStore
from hostgate.utils.logger import get_logger

logger = get_logger(__name__)


async def create_route_store(config: Config) -> RouteStore:
    """Create and initialize the configured route store.

    Raises:
        RuntimeError:         SQLite schema version is incompatible.
        aiosqlite.Error:      The SQLite database cannot be opened.
        InvalidRouteRecord:   A memory-store seed record is malformed.
        DuplicateDomainError: Two memory-store seed records share a domain.
    """
    store: RouteStore
    if config.store.backend == "memory":
        from hostgate.store.memory import InMemoryRouteStore

        store = InMemoryRouteStore(seed=config.routes)
    else:
        from hostgate.store.sqlite_backend import SQLiteRouteStore

        store = SQLiteRouteStore(db_path=config.store.path)
        if config.routes:
            logger.warning(
                "config_routes_ignored",
                reason="routes: seeds only the memory store; use hostgate-populate",
                seed_routes=len(config.routes),
            )

    await store.initialize()
    logger.info("route_store_selected", backend=type(store).__name__)
    return store
