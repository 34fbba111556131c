"""Protocol definitions for external collaborators.

The core depends only on these operation shapes. Remote implementations
(object storage, relational store, file hosting, auth) live outside this
package; local implementations are in :mod:`parcellapse.services.memory` and
:mod:`parcellapse.utils.capture_queue.storage`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from parcellapse.models import SessionContext


@dataclass(frozen=True)
class RecordQuery:
    """Filter for :meth:`RecordStore.select_where`.

    Parameters
    ----------
    equals : dict[str, Any]
        Column equality filters.
    ranges : dict[str, tuple[float | None, float | None]]
        Inclusive ``(min, max)`` bounds per column; ``None`` leaves a side open.
    not_null : tuple[str, ...]
        Columns that must hold a value.
    order_by : str | None
        Column to sort by.
    descending : bool
        Sort direction for ``order_by``.
    limit : int | None
        Maximum row count.
    """

    equals: dict[str, Any] = field(default_factory=dict)
    ranges: dict[str, tuple[float | None, float | None]] = field(default_factory=dict)
    not_null: tuple[str, ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None


@runtime_checkable
class ObjectStore(Protocol):
    """Remote object storage bucket."""

    async def upload(self, key: str, data: bytes, content_type: str) -> str: ...


@runtime_checkable
class RecordStore(Protocol):
    """Relational record store."""

    async def insert_record(self, table: str, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def insert_records(
        self, table: str, rows: list[dict[str, Any]]
    ) -> list[dict[str, Any]]: ...

    async def select_where(self, table: str, query: RecordQuery) -> list[dict[str, Any]]: ...

    async def update_where(
        self, table: str, query: RecordQuery, fields: dict[str, Any]
    ) -> int: ...

    async def delete_where(self, table: str, query: RecordQuery) -> int: ...


@runtime_checkable
class BackupService(Protocol):
    """Remote file-hosting backup target."""

    async def upload_file(
        self,
        name: str,
        mime_type: str,
        base64_data: str,
        folder_id: str | None = None,
        session: SessionContext | None = None,
    ) -> str | None: ...


@runtime_checkable
class SessionProvider(Protocol):
    """Source of the signed-in user session."""

    async def get_session(self) -> SessionContext | None: ...


@runtime_checkable
class KeyValueStore(Protocol):
    """Persistent string key-value storage."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


@runtime_checkable
class FileArea(Protocol):
    """Persistent local file area."""

    async def move(self, source: Path, target: Path) -> None: ...

    async def delete(self, path: Path, idempotent: bool = True) -> None: ...

    async def make_dirs(self, path: Path) -> None: ...

    async def read_bytes(self, path: Path) -> bytes: ...
