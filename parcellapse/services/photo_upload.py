"""Upload path shared by immediate captures and queue drains."""

from __future__ import annotations

import asyncio
import base64
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from parcellapse.exceptions import UploadError
from parcellapse.models import UNKNOWN_PARCEL_NAME, Coordinate, SessionContext, utc_now
from parcellapse.services.protocols import (
    BackupService,
    FileArea,
    ObjectStore,
    RecordStore,
    SessionProvider,
)

PHOTOS_TABLE = "photos"
JPEG_CONTENT_TYPE = "image/jpeg"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def build_object_key(parcel_name: str | None, now: datetime) -> str:
    """
    Build the storage name of a photo.

    Parameters
    ----------
    parcel_name : str | None
        Resolved parcel name; ``None`` falls back to ``"Unknown"``.
    now : datetime
        Upload time.

    Returns
    -------
    str
        ``YYYY-MM-DD_HH-MM_<parcel>_<epoch ms>.jpg`` with every character of
        the parcel name outside ``[A-Za-z0-9]`` replaced by ``_``.

    Examples
    --------
    >>> build_object_key("North Field", datetime.fromisoformat("2026-05-01T09:30:00+00:00"))
    '2026-05-01_09-30_North_Field_1777627800000.jpg'
    """
    safe_name = _UNSAFE_CHARS.sub("_", parcel_name or UNKNOWN_PARCEL_NAME)
    epoch_ms = int(now.timestamp() * 1000)
    return f"{now:%Y-%m-%d_%H-%M}_{safe_name}_{epoch_ms}.jpg"


class PhotoUploader:
    """
    Store a photo remotely and record it in the ``photos`` table.

    Parameters
    ----------
    objects : ObjectStore
        Bucket receiving the image bytes.
    records : RecordStore
        Store receiving the photo row.
    files : FileArea
        Local file area the image is read from.
    sessions : SessionProvider, optional
        Identity source; uploads are anonymous without one.
    backup : BackupService, optional
        Best-effort copy target; used only when the session carries a
        provider token.
    auth_timeout : float
        Seconds to wait for the session before proceeding anonymously.
    backup_folders : dict[int, str], optional
        Backup folder id per cropping year.
    """

    def __init__(
        self,
        objects: ObjectStore,
        records: RecordStore,
        files: FileArea,
        sessions: SessionProvider | None = None,
        backup: BackupService | None = None,
        auth_timeout: float = 5.0,
        backup_folders: dict[int, str] | None = None,
    ):
        self.objects = objects
        self.records = records
        self.files = files
        self.sessions = sessions
        self.backup = backup
        self.auth_timeout = auth_timeout
        self.backup_folders = dict(backup_folders or {})

    async def resolve_session(self) -> SessionContext | None:
        """Fetch the session, degrading to anonymous on timeout or failure."""
        if self.sessions is None:
            return None
        try:
            return await asyncio.wait_for(
                self.sessions.get_session(), timeout=self.auth_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Session lookup timed out after {self.auth_timeout}s, uploading anonymously"
            )
        except Exception as e:
            logger.warning(f"Session lookup failed, uploading anonymously: {e}")
        return None

    async def upload(
        self,
        image_path: Path,
        coordinate: Coordinate,
        parcel_name: str | None,
        cropping_year: int | None = None,
        session: SessionContext | None = None,
        now: datetime | None = None,
    ) -> str:
        """
        Upload one photo.

        Parameters
        ----------
        image_path : Path
            Local image file; it is read, never moved or deleted.
        coordinate : Coordinate
            Location fix stored with the record.
        parcel_name : str | None
            Parcel the photo belongs to.
        cropping_year : int, optional
            Cropping year stored with the record.
        session : SessionContext, optional
            Identity for the record; resolved through the session provider
            when omitted.
        now : datetime, optional
            Upload time used for the object name.

        Returns
        -------
        str
            Public url of the stored image.

        Raises
        ------
        UploadError
            Raised when the image cannot be read, stored or recorded.
        """
        now = now or utc_now()
        key = build_object_key(parcel_name, now)

        try:
            data = await self.files.read_bytes(image_path)
        except OSError as exc:
            raise UploadError(f"failed to read {image_path}: {exc}") from exc

        try:
            url = await self.objects.upload(key, data, JPEG_CONTENT_TYPE)
        except Exception as exc:
            raise UploadError(f"storage upload of {key} failed: {exc}") from exc
        logger.info(f"Stored {key} at {url}")

        if session is None:
            session = await self.resolve_session()

        record: dict[str, Any] = {
            "image_url": url,
            "latitude": coordinate.latitude,
            "longitude": coordinate.longitude,
            "created_at": coordinate.timestamp.isoformat(),
            "user_id": session.user_id if session else None,
            "user_email": session.user_email if session else None,
            "parcel_name": parcel_name,
            "cropping_year": cropping_year,
        }
        try:
            await self.records.insert_record(PHOTOS_TABLE, record)
        except Exception as exc:
            raise UploadError(f"photo record insert for {key} failed: {exc}") from exc

        await self._backup(key, data, cropping_year, session)
        return url

    async def _backup(
        self,
        name: str,
        data: bytes,
        cropping_year: int | None,
        session: SessionContext | None,
    ) -> None:
        if self.backup is None:
            return
        if session is None or not session.provider_token:
            logger.debug(f"No provider token in session, skipping backup of {name}")
            return
        folder_id = self.backup_folders.get(cropping_year) if cropping_year else None
        encoded = base64.b64encode(data).decode("ascii")
        try:
            backup_id = await self.backup.upload_file(
                name, JPEG_CONTENT_TYPE, encoded, folder_id=folder_id, session=session
            )
        except Exception as e:
            logger.error(f"Backup of {name} failed: {e}")
            return
        if backup_id:
            logger.info(f"Backup of {name} stored as {backup_id}")
        else:
            logger.warning(f"Backup of {name} returned no file id")
