"""Local implementations of the remote store protocols."""

from __future__ import annotations

import asyncio
import copy
import itertools
from pathlib import Path
from typing import Any

from loguru import logger

from parcellapse.services.protocols import RecordQuery


def _matches(row: dict[str, Any], query: RecordQuery) -> bool:
    for column, expected in query.equals.items():
        if row.get(column) != expected:
            return False
    for column in query.not_null:
        if row.get(column) is None:
            return False
    for column, (low, high) in query.ranges.items():
        value = row.get(column)
        if value is None:
            return False
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False
    return True


class InMemoryRecordStore:
    """
    Record store keeping tables as lists of dicts.

    Rows receive a string ``id`` on insert when they carry none. Selected
    rows are deep copies, so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self._ids = itertools.count(1)

    async def insert_record(self, table: str, fields: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(fields)
        row.setdefault("id", str(next(self._ids)))
        self.tables.setdefault(table, []).append(row)
        return copy.deepcopy(row)

    async def insert_records(
        self, table: str, rows: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        prepared = [copy.deepcopy(fields) for fields in rows]
        for row in prepared:
            row.setdefault("id", str(next(self._ids)))
        self.tables.setdefault(table, []).extend(prepared)
        return copy.deepcopy(prepared)

    async def select_where(self, table: str, query: RecordQuery) -> list[dict[str, Any]]:
        rows = [row for row in self.tables.get(table, []) if _matches(row, query)]
        if query.order_by is not None:
            rows.sort(key=lambda row: row.get(query.order_by), reverse=query.descending)
        if query.limit is not None:
            rows = rows[: query.limit]
        return copy.deepcopy(rows)

    async def update_where(
        self, table: str, query: RecordQuery, fields: dict[str, Any]
    ) -> int:
        updated = 0
        for row in self.tables.get(table, []):
            if _matches(row, query):
                row.update(copy.deepcopy(fields))
                updated += 1
        return updated

    async def delete_where(self, table: str, query: RecordQuery) -> int:
        rows = self.tables.get(table, [])
        kept = [row for row in rows if not _matches(row, query)]
        self.tables[table] = kept
        return len(rows) - len(kept)


class LocalObjectStore:
    """
    Object store writing objects below a local directory.

    Parameters
    ----------
    root : str | Path
        Bucket directory.
    base_url : str | None
        Public URL prefix; defaults to the ``file://`` URI of ``root``.
    """

    def __init__(self, root: str | Path, base_url: str | None = None):
        self.root = Path(root)
        self.base_url = (base_url or self.root.resolve().as_uri()).rstrip("/")

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        target = self.root / key
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_bytes, data)
        logger.debug(f"Stored {key} ({content_type}, {len(data)} bytes)")
        return f"{self.base_url}/{key}"
