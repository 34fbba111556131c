"""Application settings loaded from a JSON config file."""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from parcellapse.exceptions import ConfigError

DEFAULT_CONFIG_PATH = Path("config.json")


class Settings(BaseModel):
    """
    Configuration for the application.

    Every field has a default so a missing config file yields a usable
    setup; values observed in the field app are kept as defaults.
    """

    data_dir: Path = Path("data")
    queue_key: str = "offline_queue"
    journal_file: str = "storage.json"
    photos_dir: str = "photos"

    cluster_tolerance_deg: float = Field(default=0.0002, gt=0)
    proximity_radius_m: float = Field(default=20.0, gt=0)

    auth_timeout_s: float = Field(default=5.0, gt=0)
    fetch_timeout_s: float = Field(default=10.0, gt=0)

    parcel_chunk_size: int = Field(default=100, ge=1)
    default_encoding: str = "utf-8"
    photos_bucket: str = "photos"
    backup_folders: dict[int, str] = Field(default_factory=dict)

    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def journal_path(self) -> Path:
        """Path of the key-value document backing the capture queue."""
        return self.data_dir / self.journal_file

    @property
    def photos_path(self) -> Path:
        """Directory owning queued capture images."""
        return self.data_dir / self.photos_dir


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a JSON file.

    Parameters
    ----------
    path : str | Path | None
        Config file path. ``None`` means ``config.json`` in the working
        directory.

    Returns
    -------
    Settings
        Validated settings, or defaults when the file does not exist.

    Raises
    ------
    ConfigError
        Raised when the file exists but is unreadable or invalid.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        logger.debug(f"No config file at {config_path}, using defaults")
        return Settings()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(config_path, f"failed to read JSON: {exc}") from exc

    try:
        settings = Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(config_path, _format_validation_errors(exc)) from exc
    logger.info(f"Loaded settings from {config_path}")
    return settings


def _format_validation_errors(error: ValidationError) -> str:
    messages = []
    for err in error.errors(include_context=False):
        loc = ".".join(str(part) for part in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(messages)

