"""hostgate-populate — replace the SQLite route store contents from a file.

Reads a JSON or YAML list of ``{name, domain, proxyTo}`` records and replaces
every record in the store in one transaction. The running proxy picks the new
routes up on its next reload (RPC ``reloadConfig`` or any mutation).

Usage:
    hostgate-populate routes.json
    hostgate-populate routes.yaml --db /var/lib/hostgate/routes.db
    python -m hostgate.populate routes.json

Exit codes: 0 on success, 1 on unreadable input, invalid or duplicate records,
or a store failure. The store is left untouched on any failure.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

import aiosqlite
import yaml

from hostgate.config import load_config
from hostgate.routing.records import InvalidRouteRecord, RouteRecord
from hostgate.store.protocol import RouteStoreError
from hostgate.store.sqlite_backend import SQLiteRouteStore
from hostgate.utils.logger import get_logger

logger = get_logger(__name__)

_YAML_SUFFIXES = {".yaml", ".yml"}


class PopulateError(Exception):
    """Input file could not be turned into a list of route records."""


def read_records(path: Path) -> list[RouteRecord]:
    """Parse ``path`` (JSON, or YAML by suffix) into route records.

    Raises:
        PopulateError: File unreadable, not a list, or holds an invalid record.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PopulateError(f"Could not read {path}: {exc}") from exc

    try:
        raw: Any = yaml.safe_load(text) if path.suffix in _YAML_SUFFIXES else json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise PopulateError(f"Failed to parse {path}: {exc}") from exc

    if not isinstance(raw, list):
        raise PopulateError(f"{path} must contain a list of route records")

    records: list[RouteRecord] = []
    for index, item in enumerate(raw):
        try:
            records.append(RouteRecord.from_dict(item))
        except InvalidRouteRecord as exc:
            raise PopulateError(f"Record #{index} in {path}: {exc}") from exc
    return records


async def populate(records: list[RouteRecord], db_path: str) -> int:
    """Replace the store at ``db_path`` with ``records``. Returns the new count."""
    store = SQLiteRouteStore(db_path=db_path)
    await store.initialize()
    try:
        for record in records:
            logger.info(
                "populate_record",
                name=record.name,
                domain=record.domain,
                target=record.proxy_to,
            )
        count = await store.replace_all(records)
        # Count from the store itself, after commit.
        stored = len(await store.list_routes())
    finally:
        await store.close()

    logger.info("populate_complete", db_path=db_path, inserted=count, total=stored)
    return stored


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="hostgate-populate",
        description="Replace the hostgate route store with records from a JSON or YAML file.",
    )
    parser.add_argument(
        "file",
        nargs="?",
        default="config.json",
        help="JSON or YAML list of {name, domain, proxyTo} records (default: config.json)",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite store path (default: store.path from the hostgate config)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="hostgate config file used to resolve the store path",
    )
    args = parser.parse_args(argv)

    db_path = args.db or load_config(args.config).store.path

    try:
        records = read_records(Path(args.file))
        logger.info("populate_start", file=args.file, records=len(records))
        asyncio.run(populate(records, db_path))
    except (PopulateError, RouteStoreError, RuntimeError, OSError, aiosqlite.Error) as exc:
        logger.error("populate_failed", error=str(exc), error_type=type(exc).__name__)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
