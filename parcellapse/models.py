"""Domain records shared by ingestion, spatial lookup and the capture queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union

from shapely.geometry import MultiPolygon, Point, Polygon, mapping, shape

Scalar = Union[str, int, float, bool, None]
AttributeRecord = dict[str, Scalar]
Geometry = Union[Point, Polygon, MultiPolygon]

UNKNOWN_PARCEL_NAME = "Unknown"
NAME_FIELDS = ("NAME", "name", "ID")


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse an ISO timestamp, assuming UTC when no offset is given."""
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Feature:
    """One decoded shape record joined with its attribute record."""

    geometry: Geometry
    properties: AttributeRecord


def resolve_parcel_name(properties: AttributeRecord) -> str:
    """Resolve a parcel display name from attribute fields.

    Parameters
    ----------
    properties : AttributeRecord
        Attribute record of one feature.

    Returns
    -------
    str
        First non-empty value of ``NAME``, ``name`` or ``ID`` as text, or
        ``"Unknown"`` when none is set.

    Examples
    --------
    >>> resolve_parcel_name({"name": "North", "ID": 4})
    'North'
    >>> resolve_parcel_name({"ID": 0})
    'Unknown'
    """
    for field_name in NAME_FIELDS:
        value = properties.get(field_name)
        if value is None or value is False or value == 0:
            continue
        text = str(value).strip()
        if text:
            return text
    return UNKNOWN_PARCEL_NAME


@dataclass(frozen=True)
class Parcel:
    """Named polygonal land unit scoped to a cropping year.

    Parameters
    ----------
    name : str
        Resolved display name.
    geometry : Geometry
        Geometry in longitude/latitude degrees.
    year : int
        Cropping year the parcel belongs to.
    id : str | None
        Identifier assigned by the record store, ``None`` before insert.
    properties : AttributeRecord
        Source attribute record, kept for display and export.
    """

    name: str
    geometry: Geometry
    year: int
    id: str | None = None
    properties: AttributeRecord = field(default_factory=dict)

    @classmethod
    def from_feature(cls, feature: Feature, year: int) -> Parcel:
        """Build an un-persisted parcel from a decoded feature."""
        return cls(
            name=resolve_parcel_name(feature.properties),
            geometry=feature.geometry,
            year=year,
            properties=dict(feature.properties),
        )

    def to_record(self) -> dict[str, Any]:
        """Convert to the persisted row shape with a GeoJSON feature."""
        record: dict[str, Any] = {
            "name": self.name,
            "year": self.year,
            "geometry": {
                "type": "Feature",
                "geometry": mapping(self.geometry),
                "properties": dict(self.properties),
            },
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Parcel:
        """Rebuild a parcel from a persisted row.

        The ``geometry`` column may hold either a GeoJSON feature or a bare
        GeoJSON geometry.
        """
        geo = record["geometry"]
        properties: AttributeRecord = {}
        if geo.get("type") == "Feature":
            properties = dict(geo.get("properties") or {})
            geo = geo["geometry"]
        record_id = record.get("id")
        return cls(
            name=str(record.get("name") or UNKNOWN_PARCEL_NAME),
            geometry=shape(geo),
            year=int(record["year"]),
            id=None if record_id is None else str(record_id),
            properties=properties,
        )


@dataclass(frozen=True)
class Coordinate:
    """Device fix taken at shutter press."""

    latitude: float
    longitude: float
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Coordinate:
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            timestamp=parse_timestamp(data["timestamp"]),
        )


@dataclass(frozen=True)
class Capture:
    """Photo waiting in the offline queue.

    Parameters
    ----------
    id : str
        Creation-time derived token, increasing in enqueue order.
    image_path : Path
        Image file owned by the queue.
    coordinate : Coordinate
        Location fix of the photo.
    created_at : datetime
        Time the capture entered the queue.
    """

    id: str
    image_path: Path
    coordinate: Coordinate
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "image_path": str(self.image_path),
            "coordinate": self.coordinate.to_dict(),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Capture:
        return cls(
            id=str(data["id"]),
            image_path=Path(data["image_path"]),
            coordinate=Coordinate.from_dict(data["coordinate"]),
            created_at=parse_timestamp(data["created_at"]),
        )


@dataclass(frozen=True)
class PhotoLocation:
    """Uploaded photo row as read back for map display."""

    id: str
    latitude: float
    longitude: float
    created_at: datetime
    image_url: str
    parcel_name: str | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> PhotoLocation:
        return cls(
            id=str(record["id"]),
            latitude=float(record["latitude"]),
            longitude=float(record["longitude"]),
            created_at=parse_timestamp(record["created_at"]),
            image_url=str(record.get("image_url") or ""),
            parcel_name=record.get("parcel_name"),
        )


@dataclass(frozen=True)
class CroppingYear:
    """Yearly namespace for parcel sets."""

    year: int
    is_active: bool = False

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> CroppingYear:
        return cls(year=int(record["year"]), is_active=bool(record.get("is_active")))


@dataclass(frozen=True)
class SessionContext:
    """Signed-in user identity passed explicitly to collaborator calls."""

    user_id: str | None = None
    user_email: str | None = None
    provider_token: str | None = None

