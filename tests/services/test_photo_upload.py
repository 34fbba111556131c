"""Tests for the photo upload path."""

import asyncio
import base64
from datetime import datetime, timezone
from pathlib import Path

import pytest

from parcellapse.exceptions import UploadError
from parcellapse.models import Coordinate, SessionContext
from parcellapse.services import (
    InMemoryRecordStore,
    LocalObjectStore,
    PhotoUploader,
    build_object_key,
)
from parcellapse.utils.capture_queue import LocalFileArea

UPLOAD_TIME = datetime(2026, 5, 1, 9, 30, tzinfo=timezone.utc)
FIX = Coordinate(latitude=52.1, longitude=5.2, timestamp=UPLOAD_TIME)
SESSION = SessionContext(user_id="u1", user_email="grower@example.org", provider_token="t")


class RecordingBackup:
    def __init__(self, result: str | None = "drive-1", error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[tuple] = []

    async def upload_file(self, name, mime_type, base64_data, folder_id=None, session=None):
        self.calls.append((name, mime_type, base64_data, folder_id, session))
        if self.error is not None:
            raise self.error
        return self.result


class StaticSessions:
    def __init__(self, session=None, delay: float = 0.0):
        self.session = session
        self.delay = delay

    async def get_session(self):
        await asyncio.sleep(self.delay)
        return self.session


class FailingObjectStore:
    async def upload(self, key, data, content_type):
        raise ConnectionError("bucket offline")


def _image(tmp_path: Path) -> Path:
    path = tmp_path / "shot.jpg"
    path.write_bytes(b"\xff\xd8jpeg")
    return path


@pytest.mark.parametrize(
    ("parcel_name", "expected"),
    [
        ("North Field", "2026-05-01_09-30_North_Field_1777627800000.jpg"),
        ("Perceel 7/B-é", "2026-05-01_09-30_Perceel_7_B___1777627800000.jpg"),
        (None, "2026-05-01_09-30_Unknown_1777627800000.jpg"),
    ],
)
def test_build_object_key(parcel_name, expected) -> None:
    assert build_object_key(parcel_name, UPLOAD_TIME) == expected


@pytest.mark.asyncio
async def test_upload_stores_object_record_and_backup(tmp_path: Path) -> None:
    records = InMemoryRecordStore()
    backup = RecordingBackup()
    uploader = PhotoUploader(
        LocalObjectStore(tmp_path / "bucket", base_url="https://cdn.example.org/photos"),
        records,
        LocalFileArea(),
        sessions=StaticSessions(SESSION),
        backup=backup,
        backup_folders={2026: "folder-2026"},
    )

    url = await uploader.upload(_image(tmp_path), FIX, "North", 2026, now=UPLOAD_TIME)

    key = "2026-05-01_09-30_North_1777627800000.jpg"
    assert url == f"https://cdn.example.org/photos/{key}"
    assert (tmp_path / "bucket" / key).read_bytes() == b"\xff\xd8jpeg"
    (row,) = records.tables["photos"]
    assert row["image_url"] == url
    assert (row["latitude"], row["longitude"]) == (52.1, 5.2)
    assert row["created_at"] == UPLOAD_TIME.isoformat()
    assert (row["user_id"], row["user_email"]) == ("u1", "grower@example.org")
    assert (row["parcel_name"], row["cropping_year"]) == ("North", 2026)
    (call,) = backup.calls
    assert call[0] == key
    assert call[1] == "image/jpeg"
    assert base64.b64decode(call[2]) == b"\xff\xd8jpeg"
    assert call[3] == "folder-2026"


@pytest.mark.asyncio
async def test_upload_proceeds_anonymously_when_session_times_out(tmp_path: Path) -> None:
    records = InMemoryRecordStore()
    uploader = PhotoUploader(
        LocalObjectStore(tmp_path / "bucket"),
        records,
        LocalFileArea(),
        sessions=StaticSessions(SESSION, delay=1.0),
        auth_timeout=0.01,
    )

    await uploader.upload(_image(tmp_path), FIX, None)

    (row,) = records.tables["photos"]
    assert row["user_id"] is None
    assert row["user_email"] is None
    assert row["parcel_name"] is None


@pytest.mark.asyncio
async def test_backup_failure_does_not_fail_upload(tmp_path: Path) -> None:
    backup = RecordingBackup(error=RuntimeError("drive quota"))
    uploader = PhotoUploader(
        LocalObjectStore(tmp_path / "bucket"),
        InMemoryRecordStore(),
        LocalFileArea(),
        backup=backup,
    )

    url = await uploader.upload(_image(tmp_path), FIX, "North", session=SESSION)

    assert url.endswith(".jpg")
    assert len(backup.calls) == 1
    assert backup.calls[0][3] is None


@pytest.mark.asyncio
async def test_backup_skipped_without_provider_token(tmp_path: Path) -> None:
    backup = RecordingBackup()
    records = InMemoryRecordStore()
    uploader = PhotoUploader(
        LocalObjectStore(tmp_path / "bucket"),
        records,
        LocalFileArea(),
        backup=backup,
    )
    session = SessionContext(user_id="u1", user_email="grower@example.org")

    await uploader.upload(_image(tmp_path), FIX, "North", session=session)

    assert backup.calls == []
    assert records.tables["photos"][0]["user_id"] == "u1"


@pytest.mark.asyncio
async def test_storage_failure_raises_upload_error(tmp_path: Path) -> None:
    records = InMemoryRecordStore()
    uploader = PhotoUploader(FailingObjectStore(), records, LocalFileArea())

    with pytest.raises(UploadError, match="bucket offline"):
        await uploader.upload(_image(tmp_path), FIX, "North")

    assert records.tables == {}


@pytest.mark.asyncio
async def test_missing_image_raises_upload_error(tmp_path: Path) -> None:
    uploader = PhotoUploader(
        LocalObjectStore(tmp_path / "bucket"), InMemoryRecordStore(), LocalFileArea()
    )

    with pytest.raises(UploadError):
        await uploader.upload(tmp_path / "missing.jpg", FIX, "North")
