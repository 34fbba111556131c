"""Pytest bootstrap helpers shared by all test domains."""

from __future__ import annotations

import io
import sys
import zipfile
from pathlib import Path
from typing import Callable, Sequence

import pytest


def _append_repo_root() -> None:
    """Ensure repository root is present in import path."""
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_text = str(repo_root)
    if repo_root_text in sys.path:
        return
    sys.path.insert(0, repo_root_text)


_append_repo_root()

import shapefile  # noqa: E402

# Clockwise exteriors and counter-clockwise holes, as the ESRI format expects.
NORTH_RING = [(5.0, 52.2), (5.0, 52.3), (5.1, 52.3), (5.1, 52.2), (5.0, 52.2)]
SOUTH_RING = [(5.0, 52.0), (5.0, 52.1), (5.1, 52.1), (5.1, 52.0), (5.0, 52.0)]
EAST_RING = [(5.2, 52.0), (5.2, 52.3), (5.3, 52.3), (5.3, 52.0), (5.2, 52.0)]
EAST_HOLE = [(5.24, 52.14), (5.26, 52.14), (5.26, 52.16), (5.24, 52.16), (5.24, 52.14)]

WGS84_PRJ = (
    'GEOGCS["GCS_WGS_1984",DATUM["D_WGS_1984",SPHEROID["WGS_1984",6378137.0,'
    '298.257223563]],PRIMEM["Greenwich",0.0],UNIT["Degree",0.0174532925199433]]'
)


def build_layer(
    polygons: Sequence[Sequence[Sequence[tuple[float, float]]]] = (),
    names: Sequence[str | None] = (),
    points: Sequence[tuple[float, float]] = (),
    field_name: str = "NAME",
    encoding: str = "utf-8",
    prj: str | None = None,
    cpg: str | None = None,
    with_dbf: bool = True,
) -> dict[str, bytes]:
    """Write one shapefile layer in memory and return payloads by suffix.

    ``polygons`` holds ring lists (exterior first). ``points`` switches the
    layer to a point layer.
    """
    shp, shx, dbf = io.BytesIO(), io.BytesIO(), io.BytesIO()
    shape_type = shapefile.POINT if points else shapefile.POLYGON
    writer = shapefile.Writer(
        shp=shp, shx=shx, dbf=dbf, shapeType=shape_type, encoding=encoding
    )
    writer.field(field_name, "C", size=50)
    for rings in polygons:
        writer.poly([list(ring) for ring in rings])
    for x, y in points:
        writer.point(x, y)
    for name in names:
        writer.record(name)
    writer.close()

    payloads = {".shp": shp.getvalue()}
    if with_dbf:
        payloads[".dbf"] = dbf.getvalue()
    if prj is not None:
        payloads[".prj"] = prj.encode("utf-8")
    if cpg is not None:
        payloads[".cpg"] = cpg.encode("ascii")
    return payloads


def build_archive(layers: dict[str, dict[str, bytes]]) -> bytes:
    """Zip layers given as ``{basename: {suffix: payload}}``."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for basename, payloads in layers.items():
            for suffix, payload in payloads.items():
                archive.writestr(f"{basename}{suffix}", payload)
    return buffer.getvalue()


@pytest.fixture
def make_layer() -> Callable[..., dict[str, bytes]]:
    return build_layer


@pytest.fixture
def make_archive() -> Callable[[dict[str, dict[str, bytes]]], bytes]:
    return build_archive


@pytest.fixture
def field_layer() -> dict[str, bytes]:
    """Three parcels named North, South and East; East has a hole."""
    return build_layer(
        polygons=[[NORTH_RING], [SOUTH_RING], [EAST_RING, EAST_HOLE]],
        names=["North", "South", "East"],
        prj=WGS84_PRJ,
        cpg="UTF-8",
    )


@pytest.fixture
def field_archive(field_layer: dict[str, bytes]) -> bytes:
    return build_archive({"parcels": field_layer})
