"""Routing table builder for hostgate.

A RoutingTable is an immutable domain → Forwarder mapping. It is built in one
pass from a route snapshot and never patched afterwards: reconfiguration builds
a fresh table and DynamicProxy swaps its reference (see dispatch.py).

Duplicate domains in the snapshot resolve last-write-wins in input order. The
route stores enforce domain uniqueness, so a duplicate here means the snapshot
came from elsewhere; it is logged, not rejected.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

import httpx

from hostgate.routing.forwarder import Forwarder
from hostgate.routing.records import RouteRecord
from hostgate.utils.logger import BuildTimer, get_logger

logger = get_logger(__name__)


class RoutingTable(Mapping[str, Forwarder]):
    """Immutable mapping from exact Host header value to Forwarder.

    Exposes only the read-only Mapping interface; the backing dict is private
    and wrapped in a MappingProxyType.
    """

    __slots__ = ("_forwarders", "version")

    def __init__(self, forwarders: Mapping[str, Forwarder], version: int = 0) -> None:
        self._forwarders: Mapping[str, Forwarder] = MappingProxyType(dict(forwarders))
        self.version = version

    @classmethod
    def empty(cls) -> "RoutingTable":
        """Table with no routes; every request falls through."""
        return cls({}, version=0)

    def __getitem__(self, domain: str) -> Forwarder:
        return self._forwarders[domain]

    def __iter__(self) -> Iterator[str]:
        return iter(self._forwarders)

    def __len__(self) -> int:
        return len(self._forwarders)

    def __repr__(self) -> str:
        return f"RoutingTable(version={self.version}, domains={sorted(self._forwarders)!r})"


def build_routing_table(
    records: Iterable[RouteRecord],
    http_client: httpx.AsyncClient,
    *,
    timeout: Optional[httpx.Timeout] = None,
    version: int = 0,
) -> RoutingTable:
    """Compile a route snapshot into a new RoutingTable.

    Args:
        records:     Any iterable of RouteRecord, including empty.
        http_client: Shared client every Forwarder sends through.
        timeout:     Per-forwarder backend timeout.
        version:     Version number stamped on the new table.

    Returns:
        A new RoutingTable. Previously returned tables are never touched.
    """
    forwarders: dict[str, Forwarder] = {}

    with BuildTimer("routing_table_build", logger, version=version):
        for record in records:
            previous = forwarders.get(record.domain)
            if previous is not None:
                logger.warning(
                    "duplicate_domain",
                    domain=record.domain,
                    replaced_target=previous.target,
                    target=record.proxy_to,
                )
            forwarders[record.domain] = Forwarder(
                record.proxy_to,
                http_client,
                timeout=timeout,
                name=record.name,
                domain=record.domain,
            )
            logger.debug(
                "route_compiled",
                name=record.name,
                domain=record.domain,
                target=record.proxy_to,
            )

    return RoutingTable(forwarders, version=version)
