"""Custom exception hierarchy for parcellapse."""

from __future__ import annotations

from pathlib import Path


class ParcelLapseError(Exception):
    """Base error for the parcellapse package."""


class ConfigError(ParcelLapseError):
    """Raised when a configuration file cannot be read or fails validation."""

    def __init__(self, path: Path, message: str):
        self.path = Path(path)
        self.message = message
        super().__init__(f"{self.path.name}: {self.message}")


class IngestionError(ParcelLapseError):
    """Base error for shapefile archive ingestion."""


class ArchiveError(IngestionError):
    """Raised when the uploaded buffer is not a readable ZIP archive."""


class DecodeError(IngestionError):
    """Raised when a shape or attribute stream is malformed.

    Parameters
    ----------
    message : str
        Human readable reason.
    layer : str | None
        Layer basename the failure belongs to, when known.
    """

    def __init__(self, message: str, layer: str | None = None):
        self.layer = layer
        self.message = message
        prefix = f"{layer}: " if layer else ""
        super().__init__(f"{prefix}{message}")


class NoLayersError(IngestionError):
    """Raised when an archive holds no ``.shp`` entry at all."""


class NoParcelsError(IngestionError):
    """Raised when every layer decoded to zero usable parcels."""


class QueueError(ParcelLapseError):
    """Raised when the offline queue storage cannot be read or written."""


class UploadError(ParcelLapseError):
    """Raised when a photo could not be stored remotely."""
