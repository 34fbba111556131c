"""Local durable storage backing the offline capture queue."""

from __future__ import annotations

import asyncio
import json
import os
import shutil
from pathlib import Path

from loguru import logger


class JsonFileKeyValueStore:
    """Key-value store persisted as one JSON document.

    Every ``set`` rewrites the whole document through a temporary file and
    an atomic rename, so readers never observe a partially written value.

    Parameters
    ----------
    path : str | Path
        Document path; parent directories are created on first write.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a key-value document")
        return data

    def _store(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp_path, self.path)

    async def get(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._load)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._store, key, value)


class LocalFileArea:
    """File area on the local filesystem."""

    async def move(self, source: Path, target: Path) -> None:
        await asyncio.to_thread(shutil.move, str(source), str(target))

    async def delete(self, path: Path, idempotent: bool = True) -> None:
        try:
            await asyncio.to_thread(Path(path).unlink, missing_ok=idempotent)
        except FileNotFoundError:
            logger.warning(f"File to delete does not exist: {path}")
            raise

    async def make_dirs(self, path: Path) -> None:
        await asyncio.to_thread(Path(path).mkdir, parents=True, exist_ok=True)

    async def read_bytes(self, path: Path) -> bytes:
        return await asyncio.to_thread(Path(path).read_bytes)
