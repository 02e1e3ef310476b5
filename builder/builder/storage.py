"""Table-oriented storage backends for builds and configurations.

Rows are plain dictionaries. Filters are equality matches on columns.
``RestStorage`` talks to a PostgREST-style hosted database; the
in-memory backend serves tests and offline runs.
"""

from __future__ import annotations

import copy
import uuid
from abc import ABC, abstractmethod
from typing import Any

import aiohttp
import structlog

logger = structlog.get_logger(__name__)

Row = dict[str, Any]

BUILDS_TABLE = "lfs_builds"
BUILD_STEPS_TABLE = "lfs_build_steps"
BUILD_CONFIGS_TABLE = "lfs_build_configs"


class StorageError(Exception):
    """Raised when a storage operation fails."""


class StorageBackend(ABC):
    """Abstract table store."""

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """Insert a row and return it as stored (with generated id)."""
        ...

    @abstractmethod
    async def update(self, table: str, values: Row, match: Row) -> list[Row]:
        """Update matching rows and return them."""
        ...

    @abstractmethod
    async def upsert(self, table: str, row: Row, on_conflict: tuple[str, ...]) -> Row:
        """Insert a row, or merge it into the row with the same conflict columns."""
        ...

    @abstractmethod
    async def select(
        self,
        table: str,
        match: Row | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        """Return matching rows, optionally ordered by one column."""
        ...

    @abstractmethod
    async def delete(self, table: str, match: Row) -> int:
        """Delete matching rows and return how many were removed."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources held by the backend."""
        pass


def _matches(row: Row, match: Row | None) -> bool:
    if not match:
        return True
    return all(row.get(key) == value for key, value in match.items())


class InMemoryStorage(StorageBackend):
    """Storage backend keeping tables in process memory."""

    def __init__(self) -> None:
        self.tables: dict[str, list[Row]] = {}

    def _table(self, table: str) -> list[Row]:
        return self.tables.setdefault(table, [])

    async def insert(self, table: str, row: Row) -> Row:
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        self._table(table).append(stored)
        return copy.deepcopy(stored)

    async def update(self, table: str, values: Row, match: Row) -> list[Row]:
        updated = []
        for row in self._table(table):
            if _matches(row, match):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    async def upsert(self, table: str, row: Row, on_conflict: tuple[str, ...]) -> Row:
        key = {column: row.get(column) for column in on_conflict}
        for existing in self._table(table):
            if _matches(existing, key):
                existing.update(copy.deepcopy(row))
                return copy.deepcopy(existing)
        return await self.insert(table, row)

    async def select(
        self,
        table: str,
        match: Row | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        rows = [copy.deepcopy(row) for row in self._table(table) if _matches(row, match)]
        if order_by is not None:
            # Missing values sort first ascending, last descending
            rows.sort(
                key=lambda r: (r.get(order_by) is not None, str(r.get(order_by) or "")),
                reverse=descending,
            )
        return rows

    async def delete(self, table: str, match: Row) -> int:
        rows = self._table(table)
        kept = [row for row in rows if not _matches(row, match)]
        removed = len(rows) - len(kept)
        self.tables[table] = kept
        return removed


class RestStorage(StorageBackend):
    """PostgREST-style HTTP storage backend.

    Tables live under ``<base_url>/rest/v1/<table>``. The project API key is
    sent as ``apikey`` and, together with the session token, as a bearer
    authorization header.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        access_token: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None
        self._log = logger.bind(component="rest_storage", url=self.base_url)

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        token = self.access_token or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    @staticmethod
    def _filters(match: Row | None) -> dict[str, str]:
        if not match:
            return {}
        return {key: f"eq.{_format_value(value)}" for key, value in match.items()}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _request(
        self,
        operation: str,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        session = await self._get_session()
        try:
            async with session.request(
                method,
                self._url(table),
                params=params,
                json=json_body,
                headers=self._headers(prefer),
            ) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise StorageError(
                        f"Failed to {operation} {table}: HTTP {response.status} {text}"
                    )
                if response.status == 204:
                    return []
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise StorageError(f"Failed to {operation} {table}: {e}") from e
        except TimeoutError:
            raise StorageError(f"Failed to {operation} {table}: request timed out") from None

    async def insert(self, table: str, row: Row) -> Row:
        rows = await self._request(
            "insert into", "POST", table, json_body=row, prefer="return=representation"
        )
        return _single(rows, "insert into", table)

    async def update(self, table: str, values: Row, match: Row) -> list[Row]:
        rows = await self._request(
            "update",
            "PATCH",
            table,
            params=self._filters(match),
            json_body=values,
            prefer="return=representation",
        )
        return list(rows or [])

    async def upsert(self, table: str, row: Row, on_conflict: tuple[str, ...]) -> Row:
        rows = await self._request(
            "upsert into",
            "POST",
            table,
            params={"on_conflict": ",".join(on_conflict)},
            json_body=row,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return _single(rows, "upsert into", table)

    async def select(
        self,
        table: str,
        match: Row | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Row]:
        params = {"select": "*", **self._filters(match)}
        if order_by is not None:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        rows = await self._request("select from", "GET", table, params=params)
        return list(rows or [])

    async def delete(self, table: str, match: Row) -> int:
        rows = await self._request(
            "delete from",
            "DELETE",
            table,
            params=self._filters(match),
            prefer="return=representation",
        )
        return len(rows or [])

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _single(rows: Any, operation: str, table: str) -> Row:
    if isinstance(rows, dict):
        return rows
    if not rows:
        raise StorageError(f"Failed to {operation} {table}: no row returned")
    return dict(rows[0])
