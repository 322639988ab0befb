"""RouteStore Protocol + store errors.

A route store persists the `{name, domain, proxyTo}` records the control plane
manages. The routing table is never persisted; it is rebuilt from
``list_routes()`` after every mutation.

Backends:
    memory.py         — InMemoryRouteStore (seeded from config `routes:`)
    sqlite_backend.py — SQLiteRouteStore (aiosqlite, WAL mode, PRAGMA version guard)
    factory.py        — create_route_store() selects by config.store.backend
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Protocol, runtime_checkable

from hostgate.routing.records import RouteRecord


# ─── Errors ───────────────────────────────────────────────────────────────────


class RouteStoreError(Exception):
    """Base class for store failures surfaced to callers."""


class DuplicateDomainError(RouteStoreError):
    """A create or update would give two records the same domain."""

    def __init__(self, domain: str) -> None:
        super().__init__(f"A route for domain '{domain}' already exists")
        self.domain = domain


# ─── RouteStore Protocol ──────────────────────────────────────────────────────


@runtime_checkable
class RouteStore(Protocol):
    """Pluggable route store interface.

    Implementations: SQLiteRouteStore (default), InMemoryRouteStore.
    Selection via create_route_store() (store/factory.py).

    Invariants every backend keeps:
      - ``domain`` is unique across records
      - record ids are ULID strings assigned on create and never changed
      - ``list_routes()`` returns records in insertion order

    Payload arguments (``data``) are wire mappings: ``proxyTo`` or
    ``proxy_to`` for the target. Invalid payloads raise InvalidRouteRecord.
    """

    async def initialize(self) -> None:
        """Open resources. Raises on failure; the lifespan refuses startup."""
        ...

    async def close(self) -> None:
        """Release resources. Called during graceful shutdown."""
        ...

    async def health_check(self) -> bool:
        """Returns True if the store is operational. Must not raise."""
        ...

    async def list_routes(self) -> list[RouteRecord]:
        """Return every record, oldest first."""
        ...

    async def get_route(self, route_id: str) -> Optional[RouteRecord]:
        """Return the record with ``route_id``, or None."""
        ...

    async def create_route(self, data: Mapping[str, Any]) -> RouteRecord:
        """Validate and insert a new record with a fresh id.

        Raises:
            InvalidRouteRecord:   Payload is missing or has malformed fields.
            DuplicateDomainError: Another record already uses the domain.
        """
        ...

    async def update_route(
        self, route_id: str, data: Mapping[str, Any]
    ) -> Optional[RouteRecord]:
        """Apply a partial update. Returns None if ``route_id`` is unknown.

        Raises:
            InvalidRouteRecord:   The merged record is invalid.
            DuplicateDomainError: The new domain belongs to another record.
        """
        ...

    async def delete_route(self, route_id: str) -> Optional[RouteRecord]:
        """Remove a record. Returns the removed record, or None if unknown."""
        ...

    async def replace_all(self, records: Iterable[RouteRecord]) -> int:
        """Atomically replace the store contents. Returns the new record count.

        Records without an id are assigned one.

        Raises:
            DuplicateDomainError: ``records`` contains a domain twice.
        """
        ...
