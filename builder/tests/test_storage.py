"""Tests for the storage backends."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from aiohttp import test_utils, web

from builder.storage import InMemoryStorage, RestStorage, StorageError


class FakeRestDatabase:
    """Minimal PostgREST lookalike serving ``/rest/v1/<table>``."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.requests: list[tuple[str, dict[str, str], Any]] = []

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/rest/v1/{table}", self.handle)
        return app

    async def handle(self, request: web.Request) -> web.Response:
        table = request.match_info["table"]
        query = dict(request.query)
        self.requests.append((request.method, query, request.headers.copy()))
        if table == "broken":
            return web.json_response({"message": "relation does not exist"}, status=404)

        rows = self.tables.setdefault(table, [])
        filters = {k: v[3:] for k, v in query.items() if v.startswith("eq.")}

        def matches(row: dict[str, Any]) -> bool:
            return all(str(row.get(k)) == v for k, v in filters.items())

        if request.method == "GET":
            result = [row for row in rows if matches(row)]
            if "order" in query:
                column, _, direction = query["order"].partition(".")
                result.sort(key=lambda r: str(r.get(column) or ""), reverse=direction == "desc")
            return web.json_response(result)

        if request.method == "POST":
            body = await request.json()
            if "on_conflict" in query:
                columns = query["on_conflict"].split(",")
                for row in rows:
                    if all(row.get(c) == body.get(c) for c in columns):
                        row.update(body)
                        return web.json_response([row], status=201)
            row = {"id": f"row-{len(rows) + 1}", **body}
            rows.append(row)
            return web.json_response([row], status=201)

        if request.method == "PATCH":
            body = await request.json()
            updated = []
            for row in rows:
                if matches(row):
                    row.update(body)
                    updated.append(row)
            return web.json_response(updated)

        if request.method == "DELETE":
            removed = [row for row in rows if matches(row)]
            self.tables[table] = [row for row in rows if not matches(row)]
            return web.json_response(removed)

        return web.Response(status=405)


@asynccontextmanager
async def serve(database: FakeRestDatabase, **kwargs: Any) -> AsyncIterator[RestStorage]:
    async with test_utils.TestServer(database.app()) as server:
        storage = RestStorage(str(server.make_url("/")), **kwargs)
        try:
            yield storage
        finally:
            await storage.close()


class TestInMemoryStorage:
    """Tests for InMemoryStorage."""

    @pytest.mark.asyncio
    async def test_insert_generates_id(self) -> None:
        """Test that inserted rows get an id."""
        storage = InMemoryStorage()

        row = await storage.insert("lfs_builds", {"status": "pending"})

        assert row["id"]
        assert await storage.select("lfs_builds") == [row]

    @pytest.mark.asyncio
    async def test_rows_are_copies(self) -> None:
        """Test that callers cannot mutate stored rows."""
        storage = InMemoryStorage()
        row = await storage.insert("t", {"name": "a"})
        row["name"] = "changed"

        rows = await storage.select("t")
        assert rows[0]["name"] == "a"

    @pytest.mark.asyncio
    async def test_update_matching(self) -> None:
        """Test updating only matching rows."""
        storage = InMemoryStorage()
        a = await storage.insert("t", {"status": "pending"})
        await storage.insert("t", {"status": "pending"})

        updated = await storage.update("t", {"status": "failed"}, {"id": a["id"]})

        assert len(updated) == 1
        assert [r["status"] for r in await storage.select("t")] == ["failed", "pending"]

    @pytest.mark.asyncio
    async def test_upsert_merges(self) -> None:
        """Test that upsert merges into the conflicting row."""
        storage = InMemoryStorage()
        key = ("build_id", "step_id")
        await storage.upsert("s", {"build_id": "b", "step_id": "x", "status": "in-progress"}, key)
        await storage.upsert("s", {"build_id": "b", "step_id": "x", "status": "completed"}, key)
        await storage.upsert("s", {"build_id": "b", "step_id": "y", "status": "pending"}, key)

        rows = await storage.select("s", {"build_id": "b"})
        assert [(r["step_id"], r["status"]) for r in rows] == [("x", "completed"), ("y", "pending")]

    @pytest.mark.asyncio
    async def test_select_ordering(self) -> None:
        """Test ordering with missing values."""
        storage = InMemoryStorage()
        await storage.insert("t", {"name": "b", "at": "2024-01-02"})
        await storage.insert("t", {"name": "none"})
        await storage.insert("t", {"name": "a", "at": "2024-01-01"})

        ascending = await storage.select("t", order_by="at")
        descending = await storage.select("t", order_by="at", descending=True)

        assert [r["name"] for r in ascending] == ["none", "a", "b"]
        assert [r["name"] for r in descending] == ["b", "a", "none"]

    @pytest.mark.asyncio
    async def test_delete(self) -> None:
        """Test deleting matching rows."""
        storage = InMemoryStorage()
        row = await storage.insert("t", {"name": "a"})

        assert await storage.delete("t", {"id": row["id"]}) == 1
        assert await storage.delete("t", {"id": row["id"]}) == 0
        assert await storage.select("t") == []


class TestRestStorage:
    """Tests for RestStorage against a fake REST database."""

    @pytest.mark.asyncio
    async def test_insert_and_select(self) -> None:
        """Test inserting and reading back rows."""
        database = FakeRestDatabase()
        async with serve(database, api_key="anon", access_token="session") as storage:
            row = await storage.insert("lfs_builds", {"status": "in_progress"})
            rows = await storage.select("lfs_builds", {"id": row["id"]})

        assert row["id"] == "row-1"
        assert rows == [row]

        method, query, headers = database.requests[0]
        assert method == "POST"
        assert headers["apikey"] == "anon"
        assert headers["Authorization"] == "Bearer session"
        assert headers["Prefer"] == "return=representation"

    @pytest.mark.asyncio
    async def test_select_filters_and_order(self) -> None:
        """Test the filter and order query parameters."""
        database = FakeRestDatabase()
        async with serve(database) as storage:
            await storage.select(
                "lfs_builds", {"config_id": "c1"}, order_by="started_at", descending=True
            )

        _, query, headers = database.requests[0]
        assert query == {"select": "*", "config_id": "eq.c1", "order": "started_at.desc"}
        assert "Authorization" not in headers

    @pytest.mark.asyncio
    async def test_update_and_delete(self) -> None:
        """Test PATCH and DELETE requests."""
        database = FakeRestDatabase()
        async with serve(database) as storage:
            row = await storage.insert("t", {"status": "pending"})
            updated = await storage.update("t", {"status": "failed"}, {"id": row["id"]})
            removed = await storage.delete("t", {"id": row["id"]})

        assert updated[0]["status"] == "failed"
        assert removed == 1
        assert database.tables["t"] == []

    @pytest.mark.asyncio
    async def test_upsert(self) -> None:
        """Test upserts use on_conflict and merge-duplicates."""
        database = FakeRestDatabase()
        async with serve(database) as storage:
            key = ("build_id", "step_id")
            await storage.upsert("s", {"build_id": "b", "step_id": "x", "status": "pending"}, key)
            row = await storage.upsert(
                "s", {"build_id": "b", "step_id": "x", "status": "completed"}, key
            )

        assert row["status"] == "completed"
        assert len(database.tables["s"]) == 1
        _, query, headers = database.requests[-1]
        assert query["on_conflict"] == "build_id,step_id"
        assert headers["Prefer"] == "resolution=merge-duplicates,return=representation"

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        """Test that HTTP errors become StorageError."""
        async with serve(FakeRestDatabase()) as storage:
            with pytest.raises(StorageError, match="Failed to select from broken: HTTP 404"):
                await storage.select("broken")

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        """Test that an unreachable server becomes StorageError."""
        storage = RestStorage("http://127.0.0.1:1", timeout_seconds=2)
        try:
            with pytest.raises(StorageError, match="Failed to insert into t"):
                await storage.insert("t", {"a": 1})
        finally:
            await storage.close()
