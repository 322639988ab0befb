"""SQLiteRouteStore — aiosqlite-based persistent route store.

Uses aiosqlite exclusively; the stdlib sqlite3 module is never imported here.

Features:
  - WAL mode: PRAGMA journal_mode=WAL (readers never block the writer)
  - Schema version guard: PRAGMA user_version=1 — RuntimeError on mismatch, refuse startup
  - Long-lived connection: opened in initialize(), closed in close()
  - domain UNIQUE constraint backs DuplicateDomainError
  - Insertion order preserved via the INTEGER PRIMARY KEY `seq`
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

import aiosqlite

from hostgate.constants import DEFAULT_STORE_PATH
from hostgate.routing.records import RouteRecord
from hostgate.store.protocol import DuplicateDomainError
from hostgate.utils.logger import get_logger
from hostgate.utils.ulid import generate_ulid

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS routes (
    seq         INTEGER PRIMARY KEY AUTOINCREMENT,
    id          TEXT NOT NULL UNIQUE,
    name        TEXT NOT NULL,
    domain      TEXT NOT NULL UNIQUE,
    proxy_to    TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_SCHEMA_VERSION = 1

_SELECT_COLUMNS = "id, name, domain, proxy_to"


def _row_to_record(row: aiosqlite.Row) -> RouteRecord:
    return RouteRecord(
        name=row["name"],
        domain=row["domain"],
        proxy_to=row["proxy_to"],
        id=row["id"],
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── SQLiteRouteStore ─────────────────────────────────────────────────────────


class SQLiteRouteStore:
    """Async SQLite route store.

    Default path: ~/.hostgate/routes.db
    Override via: store.path in config, or HOSTGATE_STORE_PATH.
    Or pass db_path explicitly (used in tests).

    Usage:
        store = SQLiteRouteStore(db_path)
        await store.initialize()   # raises RuntimeError on schema version mismatch
        record = await store.create_route({"name": "Blog", "domain": "blog.test",
                                           "proxyTo": "127.0.0.1:9001"})
        await store.close()

    Writes are serialised with an asyncio.Lock so the read-check-write of a
    mutation cannot interleave with another coroutine's.
    """

    def __init__(self, db_path: str = DEFAULT_STORE_PATH) -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL mode, and create/verify the schema.

        PRAGMA user_version:
          - 0: fresh DB → create schema, set user_version=1
          - 1: compatible schema → no-op
          - other: RuntimeError

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
            aiosqlite.Error / OSError: If the database cannot be opened.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode=WAL;")

        cursor = await self._db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            # executescript may not honour PRAGMA in all SQLite builds;
            # set user_version separately after the script.
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            await self._db.commit()
            logger.info(
                "route_db_schema_created",
                db_path=self._db_path,
                schema_version=_SCHEMA_VERSION,
            )
        elif current_version == _SCHEMA_VERSION:
            logger.info(
                "route_db_schema_ok",
                db_path=self._db_path,
                schema_version=current_version,
            )
        else:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"Unsupported route database schema version: {current_version}. "
                f"Delete {self._db_path} and re-run hostgate-populate to reset."
            )

    async def close(self) -> None:
        """Close the aiosqlite connection gracefully."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("route_db_closed", db_path=self._db_path)

    async def health_check(self) -> bool:
        """Returns True if the DB connection is alive and queryable."""
        try:
            await self._conn().execute("SELECT 1")
            return True
        except (aiosqlite.Error, RuntimeError, ValueError):
            return False

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def list_routes(self) -> list[RouteRecord]:
        cursor = await self._conn().execute(
            f"SELECT {_SELECT_COLUMNS} FROM routes ORDER BY seq"
        )
        rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def get_route(self, route_id: str) -> Optional[RouteRecord]:
        cursor = await self._conn().execute(
            f"SELECT {_SELECT_COLUMNS} FROM routes WHERE id = ?", (route_id,)
        )
        row = await cursor.fetchone()
        return _row_to_record(row) if row is not None else None

    # ── Writes ────────────────────────────────────────────────────────────────

    async def create_route(self, data: Mapping[str, Any]) -> RouteRecord:
        record = RouteRecord.from_dict(data, id=generate_ulid())
        db = self._conn()
        async with self._write_lock:
            await self._check_domain_free(record.domain)
            now = _now()
            try:
                await db.execute(
                    """INSERT INTO routes (id, name, domain, proxy_to, created_at, updated_at)
                       VALUES (?,?,?,?,?,?)""",
                    (record.id, record.name, record.domain, record.proxy_to, now, now),
                )
                await db.commit()
            except aiosqlite.IntegrityError as exc:
                await db.rollback()
                raise DuplicateDomainError(record.domain) from exc
        logger.info("route_created", id=record.id, domain=record.domain)
        return record

    async def update_route(
        self, route_id: str, data: Mapping[str, Any]
    ) -> Optional[RouteRecord]:
        db = self._conn()
        async with self._write_lock:
            current = await self.get_route(route_id)
            if current is None:
                return None
            updated = current.merged(data)
            await self._check_domain_free(updated.domain, exclude_id=route_id)
            try:
                await db.execute(
                    """UPDATE routes SET name = ?, domain = ?, proxy_to = ?, updated_at = ?
                       WHERE id = ?""",
                    (updated.name, updated.domain, updated.proxy_to, _now(), route_id),
                )
                await db.commit()
            except aiosqlite.IntegrityError as exc:
                await db.rollback()
                raise DuplicateDomainError(updated.domain) from exc
        logger.info("route_updated", id=route_id, domain=updated.domain)
        return updated

    async def delete_route(self, route_id: str) -> Optional[RouteRecord]:
        db = self._conn()
        async with self._write_lock:
            current = await self.get_route(route_id)
            if current is None:
                return None
            await db.execute("DELETE FROM routes WHERE id = ?", (route_id,))
            await db.commit()
        logger.info("route_deleted", id=route_id, domain=current.domain)
        return current

    async def replace_all(self, records: Iterable[RouteRecord]) -> int:
        """Replace every row in one transaction. Rolls back on any failure."""
        rows: list[tuple[str, str, str, str, str, str]] = []
        domains: set[str] = set()
        now = _now()
        for record in records:
            if record.domain in domains:
                raise DuplicateDomainError(record.domain)
            domains.add(record.domain)
            record_id = record.id if record.id is not None else generate_ulid()
            rows.append((record_id, record.name, record.domain, record.proxy_to, now, now))

        db = self._conn()
        async with self._write_lock:
            try:
                await db.execute("DELETE FROM routes")
                await db.executemany(
                    """INSERT INTO routes (id, name, domain, proxy_to, created_at, updated_at)
                       VALUES (?,?,?,?,?,?)""",
                    rows,
                )
                await db.commit()
            except aiosqlite.Error:
                await db.rollback()
                raise
        logger.info("routes_replaced", db_path=self._db_path, routes=len(rows))
        return len(rows)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Route store not initialized — call initialize() first")
        return self._db

    async def _check_domain_free(self, domain: str, exclude_id: Optional[str] = None) -> None:
        cursor = await self._conn().execute(
            "SELECT id FROM routes WHERE domain = ?", (domain,)
        )
        row = await cursor.fetchone()
        if row is not None and row["id"] != exclude_id:
            raise DuplicateDomainError(domain)
