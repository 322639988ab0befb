"""hostgate route store package.

Re-exports the public API:

    from hostgate.store import RouteStore, DuplicateDomainError, create_route_store

Layout:
    protocol.py       — RouteStore Protocol + RouteStoreError, DuplicateDomainError
    memory.py         — InMemoryRouteStore (seeded from config)
    sqlite_backend.py — SQLiteRouteStore (aiosqlite, WAL mode, PRAGMA version guard)
    factory.py        — create_route_store() — backend selection by config
"""

from hostgate.store.factory import create_route_store
from hostgate.store.protocol import DuplicateDomainError, RouteStore, RouteStoreError

__all__ = [
    "DuplicateDomainError",
    "RouteStore",
    "RouteStoreError",
    "create_route_store",
]
