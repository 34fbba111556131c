"""
Sync Coordinator Core Module.

Drains the offline capture queue through the upload path once connectivity
returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger

from parcellapse.models import Capture
from parcellapse.utils.capture_queue import OfflineCaptureQueue

UploadFn = Callable[[Capture, str | None], Awaitable[object]]
ResolveParcelFn = Callable[[float, float], str | None]


@dataclass(frozen=True)
class DrainResult:
    """Aggregate outcome of one drain pass."""

    succeeded: int
    failed: int
    remaining_queue_length: int
    skipped: bool = False


class SyncCoordinator:
    """
    Single-flight drainer for an :class:`OfflineCaptureQueue`.

    Parameters
    ----------
    queue : OfflineCaptureQueue
        Queue to drain.

    Examples
    --------
    >>> coordinator = SyncCoordinator(queue)
    >>> result = await coordinator.drain(upload, index.find_parcel_name)
    >>> result.succeeded, result.remaining_queue_length
    (2, 0)
    """

    def __init__(self, queue: OfflineCaptureQueue):
        self.queue = queue
        self._draining = False

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def drain(
        self, upload_fn: UploadFn, resolve_parcel_fn: ResolveParcelFn
    ) -> DrainResult:
        """
        Upload every capture queued at call time.

        Parameters
        ----------
        upload_fn : callable
            ``await upload_fn(capture, parcel_name)``; raising marks the item
            as failed and leaves it queued.
        resolve_parcel_fn : callable
            ``resolve_parcel_fn(latitude, longitude) -> str | None`` against
            the current parcel set.

        Returns
        -------
        DrainResult
            Counts for this pass. ``skipped`` is set when another drain was
            already running; nothing is touched in that case.

        Raises
        ------
        QueueError
            Raised when the queue itself cannot be read.
        """
        if self._draining:
            logger.info("Drain already in progress, skipping")
            return DrainResult(
                succeeded=0,
                failed=0,
                remaining_queue_length=await self.queue.count(),
                skipped=True,
            )

        self._draining = True
        try:
            snapshot = await self.queue.list()
            if not snapshot:
                return DrainResult(succeeded=0, failed=0, remaining_queue_length=0)

            logger.info(f"Draining {len(snapshot)} queued captures")
            succeeded = 0
            failed = 0
            for capture in snapshot:
                if await self._sync_one(capture, upload_fn, resolve_parcel_fn):
                    succeeded += 1
                else:
                    failed += 1

            remaining = await self.queue.count()
        finally:
            self._draining = False

        logger.info(f"Drain finished: {succeeded} uploaded, {failed} failed, {remaining} left")
        return DrainResult(
            succeeded=succeeded, failed=failed, remaining_queue_length=remaining
        )

    async def _sync_one(
        self,
        capture: Capture,
        upload_fn: UploadFn,
        resolve_parcel_fn: ResolveParcelFn,
    ) -> bool:
        coordinate = capture.coordinate
        try:
            parcel_name = resolve_parcel_fn(coordinate.latitude, coordinate.longitude)
            await upload_fn(capture, parcel_name)
        except Exception as e:
            logger.error(f"Failed to sync capture {capture.id}: {e}")
            return False

        # Removal failures are storage errors and propagate.
        await self.queue.remove(capture.id)
        logger.info(f"Synced capture {capture.id} ({parcel_name})")
        return True
