"""Unit tests for hostgate-populate: file parsing and store replacement."""

from __future__ import annotations

import json
from typing import Any

import pytest

from hostgate.populate import PopulateError, main, populate, read_records
from hostgate.store.sqlite_backend import SQLiteRouteStore

ROUTES = [
    {"name": "Blog", "domain": "blog.test", "proxyTo": "127.0.0.1:9001"},
    {"name": "Shop", "domain": "shop.test", "proxyTo": "127.0.0.1:9002"},
]


async def _stored_domains(db_path: str) -> list[str]:
    store = SQLiteRouteStore(db_path=db_path)
    await store.initialize()
    try:
        return [r.domain for r in await store.list_routes()]
    finally:
        await store.close()


# ─── read_records() ───────────────────────────────────────────────────────────


class TestReadRecords:
    def test_json(self, tmp_path: Any) -> None:
        path = tmp_path / "routes.json"
        path.write_text(json.dumps(ROUTES))
        records = read_records(path)
        assert [r.domain for r in records] == ["blog.test", "shop.test"]

    def test_yaml(self, tmp_path: Any) -> None:
        path = tmp_path / "routes.yaml"
        path.write_text(
            "- name: Blog\n  domain: blog.test\n  proxyTo: 127.0.0.1:9001\n"
        )
        records = read_records(path)
        assert records[0].proxy_to == "127.0.0.1:9001"

    def test_missing_file(self, tmp_path: Any) -> None:
        with pytest.raises(PopulateError, match="Could not read"):
            read_records(tmp_path / "absent.json")

    def test_invalid_json(self, tmp_path: Any) -> None:
        path = tmp_path / "routes.json"
        path.write_text("[{")
        with pytest.raises(PopulateError, match="Failed to parse"):
            read_records(path)

    def test_not_a_list(self, tmp_path: Any) -> None:
        path = tmp_path / "routes.json"
        path.write_text(json.dumps({"routes": ROUTES}))
        with pytest.raises(PopulateError, match="list"):
            read_records(path)

    def test_invalid_record_names_index(self, tmp_path: Any) -> None:
        path = tmp_path / "routes.json"
        path.write_text(json.dumps([ROUTES[0], {"name": "Broken"}]))
        with pytest.raises(PopulateError, match="#1"):
            read_records(path)


# ─── main() ───────────────────────────────────────────────────────────────────


class TestMain:
    def test_replaces_store_contents(self, tmp_path: Any) -> None:
        source = tmp_path / "routes.json"
        source.write_text(json.dumps(ROUTES))
        db_path = str(tmp_path / "routes.db")

        assert main([str(source), "--db", db_path]) == 0
        replacement = tmp_path / "replacement.json"
        replacement.write_text(json.dumps(ROUTES[1:]))
        assert main([str(replacement), "--db", db_path]) == 0

    async def test_store_holds_file_records(self, tmp_path: Any) -> None:
        source = tmp_path / "routes.json"
        source.write_text(json.dumps(ROUTES))
        db_path = str(tmp_path / "routes.db")

        assert await populate(read_records(source), db_path) == 2
        assert await _stored_domains(db_path) == ["blog.test", "shop.test"]

        assert await populate(read_records(source)[1:], db_path) == 1
        assert await _stored_domains(db_path) == ["shop.test"]

    def test_invalid_file_exits_1(self, tmp_path: Any) -> None:
        source = tmp_path / "routes.json"
        source.write_text("not json")
        assert main([str(source), "--db", str(tmp_path / "routes.db")]) == 1

    def test_duplicate_domains_exit_1(self, tmp_path: Any) -> None:
        source = tmp_path / "routes.json"
        source.write_text(json.dumps([ROUTES[0], ROUTES[0]]))
        assert main([str(source), "--db", str(tmp_path / "routes.db")]) == 1

    def test_db_path_from_config(self, tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        source = tmp_path / "routes.json"
        source.write_text(json.dumps(ROUTES))
        db_path = tmp_path / "from-env.db"
        monkeypatch.setattr("hostgate.config.DEFAULT_CONFIG_PATHS", [])
        monkeypatch.setenv("HOSTGATE_STORE_PATH", str(db_path))

        assert main([str(source)]) == 0
        assert db_path.exists()
