"""Shapefile stream decoding with pyshp, pyproj and shapely.

Shape streams become shapely geometries in longitude/latitude degrees and
attribute tables become plain ``dict`` records. Decoding works on in-memory
payloads extracted from an archive; nothing touches the filesystem.
"""

from __future__ import annotations

import codecs
import io
import re
import struct
from datetime import date

import numpy as np
import shapefile
from loguru import logger
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError
from shapely.geometry import MultiPolygon, Point, Polygon

from parcellapse.exceptions import DecodeError
from parcellapse.models import AttributeRecord, Geometry, Scalar

SHP_FILE_CODE = 9994
SHP_HEADER_SIZE = 100
DEFAULT_ENCODING = "utf-8"

# Every shape type code defined by the ESRI shapefile format.
SHAPE_TYPE_NAMES = {
    0: "NULL",
    1: "POINT",
    3: "POLYLINE",
    5: "POLYGON",
    8: "MULTIPOINT",
    11: "POINTZ",
    13: "POLYLINEZ",
    15: "POLYGONZ",
    18: "MULTIPOINTZ",
    21: "POINTM",
    23: "POLYLINEM",
    25: "POLYGONM",
    28: "MULTIPOINTM",
    31: "MULTIPATCH",
}
POINT_TYPES = {shapefile.POINT, shapefile.POINTZ, shapefile.POINTM}
POLYGON_TYPES = {shapefile.POLYGON, shapefile.POLYGONZ, shapefile.POLYGONM}

_ISO_8859_PATTERN = re.compile(r"^(?:iso)?[-_ ]?8859[-_ ]?(\d{1,2})$")


class _InvalidShape(ValueError):
    """A single shape record that cannot become a valid geometry."""


def projection_from_prj(prj_bytes: bytes | None) -> Transformer | None:
    """Build a transformer to WGS84 longitude/latitude from PRJ text.

    Parameters
    ----------
    prj_bytes : bytes | None
        Raw ``.prj`` payload holding a WKT coordinate system definition.

    Returns
    -------
    pyproj.Transformer | None
        ``always_xy`` transformer into EPSG:4326, or ``None`` when there is
        no usable definition or the source already is EPSG:4326.
    """
    if not prj_bytes:
        return None
    prj_text = prj_bytes.decode("utf-8", errors="replace").strip()
    if not prj_text:
        return None
    try:
        source_crs = CRS.from_user_input(prj_text)
    except CRSError as exc:
        logger.warning(f"Could not parse PRJ, coordinates are used as-is: {exc}")
        return None
    target_crs = CRS.from_epsg(4326)
    if source_crs == target_crs:
        return None
    return Transformer.from_crs(source_crs, target_crs, always_xy=True)


def resolve_codepage(cpg_bytes: bytes | None) -> str | None:
    """Map ``.cpg`` codepage text to a Python codec name.

    Parameters
    ----------
    cpg_bytes : bytes | None
        Raw ``.cpg`` payload, e.g. ``b"UTF-8"``, ``b"1252"`` or
        ``b"ANSI 1252"``.

    Returns
    -------
    str | None
        Canonical codec name, or ``None`` when absent or unknown.

    Examples
    --------
    >>> resolve_codepage(b"ANSI 1252")
    'cp1252'
    >>> resolve_codepage(b"88591")
    'iso8859-1'
    """
    if not cpg_bytes:
        return None
    text = cpg_bytes.decode("ascii", errors="ignore").strip().lower()
    candidate = text.replace("ansi", "").strip()
    if not candidate:
        return None

    iso_match = _ISO_8859_PATTERN.match(candidate)
    if iso_match:
        candidate = f"iso8859-{iso_match.group(1)}"
    elif candidate == "65001":
        candidate = "utf-8"
    elif candidate.isdigit():
        candidate = f"cp{candidate}"

    try:
        return codecs.lookup(candidate).name
    except LookupError:
        logger.warning(f"Unknown codepage {text!r}, falling back to default encoding")
        return None


def _check_shp_header(shape_bytes: bytes) -> int:
    """Validate main file header and return its shape type code."""
    if len(shape_bytes) < SHP_HEADER_SIZE:
        raise DecodeError(
            f"shape stream is {len(shape_bytes)} bytes, shorter than its header"
        )
    file_code = int.from_bytes(shape_bytes[0:4], "big")
    if file_code != SHP_FILE_CODE:
        raise DecodeError(f"bad shape file code {file_code}, expected {SHP_FILE_CODE}")
    shape_type = int.from_bytes(shape_bytes[32:36], "little")
    if shape_type not in SHAPE_TYPE_NAMES:
        raise DecodeError(f"unsupported shape type code {shape_type}")
    return shape_type


def _project(coords: np.ndarray, projection: Transformer | None) -> np.ndarray:
    """Transform an ``(N, 2)`` coordinate array into longitude/latitude."""
    if projection is None:
        return coords
    lon, lat = projection.transform(coords[:, 0], coords[:, 1])
    projected = np.column_stack([np.asarray(lon), np.asarray(lat)])
    if not np.isfinite(projected).all():
        raise _InvalidShape("coordinates fall outside the projection domain")
    return projected


def _close_ring(ring: np.ndarray) -> list[tuple[float, float]]:
    """Close a ring and enforce the four-coordinate minimum."""
    coord_list = [(float(x), float(y)) for x, y in ring]
    if coord_list and coord_list[0] != coord_list[-1]:
        coord_list.append(coord_list[0])
    if len(coord_list) < 4:
        raise _InvalidShape(f"ring has {len(coord_list)} coordinates, need at least 4")
    return coord_list


def _polygon_from_rings(
    rings: list, projection: Transformer | None
) -> Polygon:
    closed = [
        _close_ring(_project(np.asarray(ring, dtype=float)[:, :2], projection))
        for ring in rings
    ]
    return Polygon(closed[0], closed[1:])


def _shape_to_geometry(
    shape: shapefile.Shape, projection: Transformer | None
) -> Geometry:
    """Convert one pyshp shape into a shapely geometry.

    Raises
    ------
    _InvalidShape
        Raised for unsupported types, empty shapes and degenerate rings.
    """
    shape_type = shape.shapeType
    if shape_type in POINT_TYPES:
        if not shape.points:
            raise _InvalidShape("empty point")
        xy = np.asarray(shape.points[:1], dtype=float)[:, :2]
        return Point(_project(xy, projection)[0])

    if shape_type in POLYGON_TYPES:
        if not shape.points:
            raise _InvalidShape("empty polygon")
        # pyshp sorts parts into exteriors and holes by ring orientation.
        geo = shape.__geo_interface__
        if geo["type"] == "Polygon":
            return _polygon_from_rings(geo["coordinates"], projection)
        return MultiPolygon(
            [_polygon_from_rings(rings, projection) for rings in geo["coordinates"]]
        )

    raise _InvalidShape(
        f"unsupported geometry type {SHAPE_TYPE_NAMES.get(shape_type, shape_type)}"
    )


def decode_geometry(
    shape_bytes: bytes,
    projection: Transformer | None = None,
) -> list[Geometry | None]:
    """Decode a ``.shp`` stream into geometries.

    Parameters
    ----------
    shape_bytes : bytes
        Raw shape stream.
    projection : pyproj.Transformer | None
        Optional transform applied to every coordinate while decoding.

    Returns
    -------
    list[Geometry | None]
        One entry per shape record. Records of unsupported type or with
        invalid rings are logged and kept as ``None`` so indices still line
        up with the attribute table.

    Raises
    ------
    DecodeError
        Raised when the header is malformed or the stream is truncated.
    """
    _check_shp_header(shape_bytes)
    try:
        with shapefile.Reader(shp=io.BytesIO(shape_bytes)) as reader:
            shapes = list(reader.iterShapes())
    except (shapefile.ShapefileException, struct.error, EOFError, IndexError) as exc:
        raise DecodeError(f"malformed shape stream: {exc}") from exc

    geometries: list[Geometry | None] = []
    for index, shape in enumerate(shapes):
        try:
            geometries.append(_shape_to_geometry(shape, projection))
        except ValueError as exc:
            logger.warning(f"Skipping shape record {index}: {exc}")
            geometries.append(None)

    skipped = sum(geom is None for geom in geometries)
    if geometries and skipped == len(geometries):
        logger.warning(f"All {skipped} shape records were skipped")
    return geometries


def _normalize_value(value: object) -> Scalar:
    """Coerce a pyshp field value into the scalar union."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bytes):
        value = value.decode(DEFAULT_ENCODING, errors="replace")
    return str(value).strip()


def decode_attributes(
    table_bytes: bytes,
    encoding: str | None = None,
    default_encoding: str = DEFAULT_ENCODING,
) -> list[AttributeRecord]:
    """Decode a ``.dbf`` table into ordered attribute records.

    Parameters
    ----------
    table_bytes : bytes
        Raw attribute table stream.
    encoding : str | None
        Codec override, usually from :func:`resolve_codepage`.
    default_encoding : str
        Codec used when ``encoding`` is ``None``.

    Returns
    -------
    list[AttributeRecord]
        One record per table row, keyed by field name in table order.

    Raises
    ------
    DecodeError
        Raised when the table header or rows cannot be read.
    """
    codec = encoding or default_encoding
    try:
        with shapefile.Reader(
            dbf=io.BytesIO(table_bytes), encoding=codec, encodingErrors="replace"
        ) as reader:
            field_names = [
                field[0] for field in reader.fields if field[0] != "DeletionFlag"
            ]
            rows = [list(record) for record in reader.iterRecords()]
    except (shapefile.ShapefileException, struct.error, EOFError, IndexError, ValueError) as exc:
        raise DecodeError(f"malformed attribute table: {exc}") from exc

    return [
        {name: _normalize_value(value) for name, value in zip(field_names, row)}
        for row in rows
    ]
