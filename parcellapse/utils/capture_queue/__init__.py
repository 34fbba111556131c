"""Offline capture queue and its local storage."""

from parcellapse.utils.capture_queue.queue import DEFAULT_QUEUE_KEY, OfflineCaptureQueue
from parcellapse.utils.capture_queue.storage import JsonFileKeyValueStore, LocalFileArea

__all__ = [
    "DEFAULT_QUEUE_KEY",
    "JsonFileKeyValueStore",
    "LocalFileArea",
    "OfflineCaptureQueue",
]
