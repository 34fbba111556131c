"""Tests for point-in-parcel lookup and parcel framing."""

import pytest
from shapely.geometry import MultiPolygon, Polygon

from parcellapse.models import Parcel
from parcellapse.utils.spatial import (
    SpatialIndex,
    find_parcel_name,
    parcel_region,
    parcels_to_geodataframe,
)


def _square(x0: float, y0: float, size: float) -> list[tuple[float, float]]:
    return [(x0, y0), (x0 + size, y0), (x0 + size, y0 + size), (x0, y0 + size)]


@pytest.fixture
def parcels() -> list[Parcel]:
    holed = Polygon(_square(5.2, 52.0, 0.1), [_square(5.24, 52.04, 0.02)])
    return [
        Parcel(name="North", geometry=Polygon(_square(5.0, 52.2, 0.1)), year=2026),
        Parcel(name="South", geometry=Polygon(_square(5.0, 52.0, 0.1)), year=2026),
        Parcel(name="East", geometry=holed, year=2026),
    ]


def test_find_parcel_name_resolves_containing_parcel(parcels) -> None:
    index = SpatialIndex(parcels)

    assert index.find_parcel_name(52.25, 5.05) == "North"
    assert index.find_parcel_name(52.05, 5.05) == "South"
    assert index.find_parcel_name(52.01, 5.21) == "East"


def test_find_parcel_name_outside_every_parcel(parcels) -> None:
    assert find_parcel_name(51.0, 4.0, parcels) is None


def test_point_inside_hole_is_not_contained(parcels) -> None:
    assert find_parcel_name(52.05, 5.25, parcels) is None


def test_boundary_counts_as_inside(parcels) -> None:
    assert find_parcel_name(52.2, 5.05, parcels) == "North"


def test_overlap_resolves_to_first_ingested() -> None:
    overlapping = [
        Parcel(name="first", geometry=Polygon(_square(0.0, 0.0, 2.0)), year=2026),
        Parcel(name="second", geometry=Polygon(_square(1.0, 1.0, 2.0)), year=2026),
    ]

    assert find_parcel_name(1.5, 1.5, overlapping) == "first"
    assert find_parcel_name(1.5, 1.5, overlapping[::-1]) == "second"


def test_multipolygon_parcel_matches_any_part() -> None:
    parts = MultiPolygon([Polygon(_square(0.0, 0.0, 1.0)), Polygon(_square(5.0, 5.0, 1.0))])
    index = SpatialIndex([Parcel(name="split", geometry=parts, year=2026)])

    assert index.find_parcel_name(5.5, 5.5) == "split"
    assert index.find_parcel_name(3.0, 3.0) is None


def test_empty_index_finds_nothing() -> None:
    index = SpatialIndex([])

    assert len(index) == 0
    assert index.find_parcel(52.0, 5.0) is None


def test_parcels_to_geodataframe(parcels) -> None:
    frame = parcels_to_geodataframe(parcels)

    assert list(frame["name"]) == ["North", "South", "East"]
    assert frame.crs.to_epsg() == 4326
    assert set(frame.columns) == {"id", "name", "year", "geometry"}


def test_parcel_region_centers_and_pads(parcels) -> None:
    region = parcel_region(parcels)

    assert region["latitude"] == pytest.approx(52.15)
    assert region["longitude"] == pytest.approx(5.15)
    assert region["latitude_delta"] == pytest.approx(0.3 * 1.5)
    assert region["longitude_delta"] == pytest.approx(0.3 * 1.5)
    assert parcel_region([]) is None
