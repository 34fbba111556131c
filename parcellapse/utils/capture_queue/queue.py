"""Durable journal of captures that have not been uploaded yet."""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path

from loguru import logger

from parcellapse.exceptions import QueueError
from parcellapse.models import Capture, Coordinate, utc_now
from parcellapse.services.protocols import FileArea, KeyValueStore

DEFAULT_QUEUE_KEY = "offline_queue"


class OfflineCaptureQueue:
    """
    FIFO queue of captures persisted as a single journal value.

    The journal is written before any upload is attempted, and every write
    replaces the whole value, so a crash never leaves a partial journal and
    never loses a photo. The queue owns the image file of each entry until
    the entry is removed.

    Parameters
    ----------
    store : KeyValueStore
        Durable key-value backing for the journal.
    files : FileArea
        Durable file area that receives the image files.
    photos_dir : str | Path
        Private directory inside ``files`` owning queued images.
    queue_key : str
        Key the journal is stored under.
    """

    def __init__(
        self,
        store: KeyValueStore,
        files: FileArea,
        photos_dir: str | Path,
        queue_key: str = DEFAULT_QUEUE_KEY,
    ):
        self.store = store
        self.files = files
        self.photos_dir = Path(photos_dir)
        self.queue_key = queue_key
        self._lock = asyncio.Lock()

    async def enqueue(self, image_path: str | Path, coordinate: Coordinate) -> int:
        """
        Take ownership of an image and append it to the journal.

        Parameters
        ----------
        image_path : str | Path
            Transient source file; it is moved, not copied.
        coordinate : Coordinate
            Location fix of the photo.

        Returns
        -------
        int
            Queue length after the append.

        Raises
        ------
        QueueError
            Raised when the file cannot be moved or the journal cannot be
            read or written.
        """
        source = Path(image_path)
        async with self._lock:
            journal = await self._read_journal()
            capture_id = self._next_id(journal)
            target = self.photos_dir / f"{capture_id}_{source.name}"
            try:
                await self.files.make_dirs(self.photos_dir)
                await self.files.move(source, target)
            except OSError as exc:
                raise QueueError(f"failed to move {source} into the queue: {exc}") from exc

            journal.append(
                Capture(
                    id=capture_id,
                    image_path=target,
                    coordinate=coordinate,
                    created_at=utc_now(),
                )
            )
            try:
                await self._write_journal(journal)
            except QueueError:
                # Hand the image back so the caller still owns it.
                await self._restore(target, source)
                raise

        logger.info(f"Queued capture {capture_id}, {len(journal)} pending")
        return len(journal)

    async def list(self) -> list[Capture]:
        """Return pending captures, oldest first."""
        async with self._lock:
            return await self._read_journal()

    async def count(self) -> int:
        """Return the number of pending captures."""
        return len(await self.list())

    async def remove(self, capture_id: str) -> int:
        """
        Drop a capture and delete its image file.

        Unknown ids and already missing files are not errors.

        Parameters
        ----------
        capture_id : str
            Id of the capture to drop.

        Returns
        -------
        int
            Queue length after the removal.

        Raises
        ------
        QueueError
            Raised on storage I/O failure.
        """
        async with self._lock:
            journal = await self._read_journal()
            remaining = [capture for capture in journal if capture.id != capture_id]
            if len(remaining) == len(journal):
                logger.debug(f"Capture {capture_id} is not queued")
                return len(journal)

            for capture in journal:
                if capture.id != capture_id:
                    continue
                try:
                    await self.files.delete(capture.image_path, idempotent=True)
                except OSError as exc:
                    raise QueueError(
                        f"failed to delete {capture.image_path}: {exc}"
                    ) from exc
            await self._write_journal(remaining)

        logger.info(f"Removed capture {capture_id}, {len(remaining)} pending")
        return len(remaining)

    async def _read_journal(self) -> list[Capture]:
        try:
            raw = await self.store.get(self.queue_key)
        except OSError as exc:
            raise QueueError(f"failed to read queue journal: {exc}") from exc
        except ValueError as exc:
            raise QueueError(f"queue storage is corrupt: {exc}") from exc
        if not raw:
            return []
        try:
            return [Capture.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as exc:
            raise QueueError(f"queue journal is corrupt: {exc}") from exc

    async def _write_journal(self, journal: list[Capture]) -> None:
        payload = json.dumps([capture.to_dict() for capture in journal])
        try:
            await self.store.set(self.queue_key, payload)
        except (OSError, ValueError) as exc:
            raise QueueError(f"failed to write queue journal: {exc}") from exc

    async def _restore(self, target: Path, source: Path) -> None:
        try:
            await self.files.move(target, source)
        except OSError as exc:
            logger.error(f"Failed to return {target} to {source}: {exc}")
            return
        logger.warning(f"Journal write failed, returned image to {source}")

    @staticmethod
    def _next_id(journal: list[Capture]) -> str:
        # Strictly increasing even when the clock stalls or steps back.
        candidate = time.time_ns()
        if journal and journal[-1].id.isdigit():
            candidate = max(candidate, int(journal[-1].id) + 1)
        return str(candidate)
