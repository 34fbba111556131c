"""Tests for the archive-to-parcels ingestion pipeline."""

import io

import pytest
import shapefile

from parcellapse.core.parcel_ingestion import (
    ParcelIngestionPipeline,
    import_parcel_archive,
)
from parcellapse.exceptions import (
    ArchiveError,
    DecodeError,
    NoLayersError,
    NoParcelsError,
)
from parcellapse.services import GeoDataService, InMemoryRecordStore

NORTH_RING = [(5.0, 52.2), (5.0, 52.3), (5.1, 52.3), (5.1, 52.2), (5.0, 52.2)]
SOUTH_RING = [(5.0, 52.0), (5.0, 52.1), (5.1, 52.1), (5.1, 52.0), (5.0, 52.0)]
EAST_RING = [(5.2, 52.0), (5.2, 52.3), (5.3, 52.3), (5.3, 52.0), (5.2, 52.0)]


def test_ingest_names_parcels_in_input_order(field_archive: bytes) -> None:
    parcels = ParcelIngestionPipeline().ingest(field_archive, 2026)

    assert [parcel.name for parcel in parcels] == ["North", "South", "East"]
    assert {parcel.year for parcel in parcels} == {2026}
    assert all(parcel.id is None for parcel in parcels)


def test_ingest_keeps_positional_attributes(make_layer, make_archive) -> None:
    layer = make_layer(
        polygons=[[NORTH_RING], [SOUTH_RING]],
        names=["first", "second"],
        field_name="name",
    )

    parcels = ParcelIngestionPipeline().ingest(make_archive({"p": layer}), 2025)

    assert [parcel.properties for parcel in parcels] == [
        {"name": "first"},
        {"name": "second"},
    ]
    assert parcels[0].geometry.bounds == pytest.approx((5.0, 52.2, 5.1, 52.3))


def test_ingest_falls_back_to_unknown_name(make_layer, make_archive) -> None:
    layer = make_layer(polygons=[[NORTH_RING]], names=[""], field_name="CROP")

    parcels = ParcelIngestionPipeline().ingest(make_archive({"p": layer}), 2026)

    assert parcels[0].name == "Unknown"


def test_ingest_concatenates_layers(make_layer, make_archive) -> None:
    archive = make_archive(
        {
            "a/north": make_layer(polygons=[[NORTH_RING]], names=["North"]),
            "b/rest": make_layer(
                polygons=[[SOUTH_RING], [EAST_RING]], names=["South", "East"]
            ),
        }
    )

    parcels = ParcelIngestionPipeline().ingest(archive, 2026)

    assert [parcel.name for parcel in parcels] == ["North", "South", "East"]


def test_ingest_without_dbf_uses_empty_properties(make_layer, make_archive) -> None:
    layer = make_layer(polygons=[[NORTH_RING], [SOUTH_RING]], names=["x", "y"], with_dbf=False)

    parcels = ParcelIngestionPipeline().ingest(make_archive({"p": layer}), 2026)

    assert [parcel.name for parcel in parcels] == ["Unknown", "Unknown"]
    assert all(parcel.properties == {} for parcel in parcels)


def test_ingest_count_mismatch_fails_whole_archive(make_layer, make_archive) -> None:
    good = make_layer(polygons=[[NORTH_RING]], names=["North"])
    two_shapes = make_layer(polygons=[[SOUTH_RING], [EAST_RING]], names=["South", "East"])
    one_row = make_layer(polygons=[[SOUTH_RING]], names=["South"])
    mismatched = {".shp": two_shapes[".shp"], ".dbf": one_row[".dbf"]}

    with pytest.raises(DecodeError) as excinfo:
        ParcelIngestionPipeline().ingest(
            make_archive({"good": good, "bad": mismatched}), 2026
        )

    assert excinfo.value.layer == "bad"


def test_ingest_reports_layer_of_malformed_stream(make_archive) -> None:
    archive = make_archive({"broken": {".shp": b"\x00" * 100}})

    with pytest.raises(DecodeError) as excinfo:
        ParcelIngestionPipeline().ingest(archive, 2026)

    assert excinfo.value.layer == "broken"


def test_ingest_without_shape_layers(make_archive) -> None:
    with pytest.raises(NoLayersError):
        ParcelIngestionPipeline().ingest(make_archive({"p": {".dbf": b"x"}}), 2026)


def test_ingest_rejects_non_archive() -> None:
    with pytest.raises(ArchiveError):
        ParcelIngestionPipeline().ingest(b"plain bytes", 2026)


@pytest.mark.asyncio
async def test_import_parcel_archive_persists_parcels(field_archive: bytes) -> None:
    store = InMemoryRecordStore()
    geo_data = GeoDataService(store)

    stored = await import_parcel_archive(field_archive, 2026, geo_data)

    assert [parcel.name for parcel in stored] == ["North", "South", "East"]
    assert all(parcel.id for parcel in stored)
    fetched = await geo_data.fetch_parcels(2026)
    assert [parcel.name for parcel in fetched] == ["North", "South", "East"]
    assert len(fetched[2].geometry.interiors) == 1


@pytest.mark.asyncio
async def test_import_parcel_archive_stores_nothing_on_mismatch(
    make_layer, make_archive
) -> None:
    two_shapes = make_layer(polygons=[[NORTH_RING], [SOUTH_RING]], names=["North", "South"])
    one_row = make_layer(polygons=[[NORTH_RING]], names=["North"])
    layer = {".shp": two_shapes[".shp"], ".dbf": one_row[".dbf"]}
    store = InMemoryRecordStore()

    with pytest.raises(DecodeError):
        await import_parcel_archive(make_archive({"p": layer}), 2026, GeoDataService(store))

    assert store.tables.get("parcels", []) == []


@pytest.mark.asyncio
async def test_import_parcel_archive_rejects_empty_result(make_archive) -> None:
    shp, shx, dbf = io.BytesIO(), io.BytesIO(), io.BytesIO()
    writer = shapefile.Writer(shp=shp, shx=shx, dbf=dbf, shapeType=shapefile.POLYLINE)
    writer.field("NAME", "C")
    writer.line([[(0, 0), (1, 1)]])
    writer.record("road")
    writer.close()
    archive = make_archive({"roads": {".shp": shp.getvalue(), ".dbf": dbf.getvalue()}})
    store = InMemoryRecordStore()

    with pytest.raises(NoParcelsError):
        await import_parcel_archive(archive, 2026, GeoDataService(store))

    assert store.tables == {}
