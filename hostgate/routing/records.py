"""RouteRecord — the `{name, domain, proxyTo}` route configuration record.

Records are produced by the route stores and consumed read-only by the table
builder. The wire form (RPC payloads, populate files) uses `proxyTo`; the
Python attribute is `proxy_to`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional


class InvalidRouteRecord(ValueError):
    """Raised when a raw mapping cannot be turned into a RouteRecord."""


@dataclass(frozen=True)
class RouteRecord:
    """A single proxy route.

    Fields:
        name:     Human-readable label (e.g. "Blog").
        domain:   Exact Host header value this route answers for. Routing key.
        proxy_to: Backend target as host:port (e.g. "127.0.0.1:9001").
        id:       Store-assigned identifier (ULID); None for unsaved records.
    """

    name: str
    domain: str
    proxy_to: str
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], id: Optional[str] = None) -> "RouteRecord":
        """Build a RouteRecord from a wire mapping.

        Accepts `proxyTo` or `proxy_to` for the target and `id` or `_id` for the
        identifier. An explicit ``id`` argument wins over the mapping's own.

        Raises:
            InvalidRouteRecord: If raw is not a mapping or name/domain/proxyTo
                                is missing, empty or not a string.
        """
        if not isinstance(raw, Mapping):
            raise InvalidRouteRecord(
                f"Route record must be a mapping, got {type(raw).__name__}"
            )

        proxy_to = raw.get("proxyTo", raw.get("proxy_to"))
        values = {"name": raw.get("name"), "domain": raw.get("domain"), "proxyTo": proxy_to}
        for key, value in values.items():
            if not isinstance(value, str) or not value:
                raise InvalidRouteRecord(f"Route record field '{key}' must be a non-empty string")

        record_id = id if id is not None else raw.get("id", raw.get("_id"))
        return cls(
            name=values["name"],
            domain=values["domain"],
            proxy_to=proxy_to,
            id=str(record_id) if record_id is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form used by the RPC API and populate files."""
        return {
            "id": self.id,
            "name": self.name,
            "domain": self.domain,
            "proxyTo": self.proxy_to,
        }

    def merged(self, changes: Mapping[str, Any]) -> "RouteRecord":
        """Return a copy with fields from a partial wire mapping applied.

        Unknown keys are ignored; the id is preserved.

        Raises:
            InvalidRouteRecord: If the merged record is invalid.
        """
        if not isinstance(changes, Mapping):
            raise InvalidRouteRecord(
                f"Route record update must be a mapping, got {type(changes).__name__}"
            )
        base = self.to_dict()
        for key in ("name", "domain", "proxyTo", "proxy_to"):
            if key in changes:
                base["proxyTo" if key == "proxy_to" else key] = changes[key]
        return RouteRecord.from_dict(base, id=self.id)
