"""InMemoryRouteStore — process-local route store.

Used for `store.backend: memory` (seeded from the config `routes:` list) and in
tests. Contents are lost on restart.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Iterable, Mapping, Optional

from hostgate.routing.records import RouteRecord
from hostgate.store.protocol import DuplicateDomainError
from hostgate.utils.logger import get_logger
from hostgate.utils.ulid import generate_ulid

logger = get_logger(__name__)


class InMemoryRouteStore:
    """Dict-backed RouteStore. Insertion order is the dict's order.

    Mutations run under an asyncio.Lock so the domain uniqueness check and the
    write are one step.
    """

    def __init__(self, seed: Iterable[Mapping[str, Any]] = ()) -> None:
        self._seed = list(seed)
        self._records: dict[str, RouteRecord] = {}
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Load the seed records. Raises InvalidRouteRecord or DuplicateDomainError."""
        records = [RouteRecord.from_dict(raw) for raw in self._seed]
        count = await self.replace_all(records)
        logger.info("route_store_ready", backend="memory", routes=count)

    async def close(self) -> None:
        self._records.clear()

    async def health_check(self) -> bool:
        return True

    async def list_routes(self) -> list[RouteRecord]:
        return list(self._records.values())

    async def get_route(self, route_id: str) -> Optional[RouteRecord]:
        return self._records.get(route_id)

    async def create_route(self, data: Mapping[str, Any]) -> RouteRecord:
        record = RouteRecord.from_dict(data, id=generate_ulid())
        async with self._lock:
            self._check_domain_free(record.domain)
            self._records[record.id] = record
        logger.info("route_created", id=record.id, domain=record.domain)
        return record

    async def update_route(
        self, route_id: str, data: Mapping[str, Any]
    ) -> Optional[RouteRecord]:
        async with self._lock:
            current = self._records.get(route_id)
            if current is None:
                return None
            updated = current.merged(data)
            self._check_domain_free(updated.domain, exclude_id=route_id)
            self._records[route_id] = updated
        logger.info("route_updated", id=route_id, domain=updated.domain)
        return updated

    async def delete_route(self, route_id: str) -> Optional[RouteRecord]:
        async with self._lock:
            removed = self._records.pop(route_id, None)
        if removed is not None:
            logger.info("route_deleted", id=route_id, domain=removed.domain)
        return removed

    async def replace_all(self, records: Iterable[RouteRecord]) -> int:
        fresh: dict[str, RouteRecord] = {}
        domains: set[str] = set()
        for record in records:
            if record.domain in domains:
                raise DuplicateDomainError(record.domain)
            domains.add(record.domain)
            if record.id is None:
                record = replace(record, id=generate_ulid())
            fresh[record.id] = record

        async with self._lock:
            self._records = fresh
        return len(fresh)

    def _check_domain_free(self, domain: str, exclude_id: Optional[str] = None) -> None:
        for record_id, record in self._records.items():
            if record.domain == domain and record_id != exclude_id:
                raise DuplicateDomainError(domain)
