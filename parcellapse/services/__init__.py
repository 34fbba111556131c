"""Collaborator protocols, local stores and the remote query surface."""

from parcellapse.services.geo_data import GeoDataService
from parcellapse.services.memory import InMemoryRecordStore, LocalObjectStore
from parcellapse.services.photo_upload import PhotoUploader, build_object_key
from parcellapse.services.protocols import (
    BackupService,
    FileArea,
    KeyValueStore,
    ObjectStore,
    RecordQuery,
    RecordStore,
    SessionProvider,
)

__all__ = [
    "BackupService",
    "FileArea",
    "GeoDataService",
    "InMemoryRecordStore",
    "KeyValueStore",
    "LocalObjectStore",
    "ObjectStore",
    "PhotoUploader",
    "RecordQuery",
    "RecordStore",
    "SessionProvider",
    "build_object_key",
]
