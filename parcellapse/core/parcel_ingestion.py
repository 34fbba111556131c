"""
Parcel Ingestion Core Module.

Turns a user-supplied shapefile ZIP bundle into named parcels tagged with a
cropping year. Ingestion is all-or-nothing across layers: one failing layer
aborts the call so a cropping year never ends up with a partial parcel set.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from parcellapse.exceptions import DecodeError, NoLayersError, NoParcelsError
from parcellapse.models import Feature, Parcel
from parcellapse.utils.parcel_ingest import (
    ShapeLayer,
    decode_attributes,
    decode_geometry,
    extract_archive,
    group_layers,
    projection_from_prj,
    resolve_codepage,
)
from parcellapse.utils.parcel_ingest.decode import DEFAULT_ENCODING

if TYPE_CHECKING:
    from parcellapse.services.geo_data import GeoDataService


class ParcelIngestionPipeline:
    """
    Pipeline for building parcels from a shapefile archive.

    Parameters
    ----------
    default_encoding : str
        Attribute table codec used by layers without a ``.cpg`` entry.
    """

    def __init__(self, default_encoding: str = DEFAULT_ENCODING):
        self.default_encoding = default_encoding

    def ingest(self, archive_bytes: bytes, target_year: int) -> list[Parcel]:
        """
        Ingest every shape layer of an archive.

        Parameters
        ----------
        archive_bytes : bytes
            ZIP archive holding ``.shp`` + ``.dbf`` (+ ``.prj``, ``.cpg``).
        target_year : int
            Cropping year every parcel is tagged with.

        Returns
        -------
        list[Parcel]
            Parcels in layer order, then record order. Empty only when no
            layer produced a usable geometry.

        Raises
        ------
        ArchiveError
            The buffer is not a readable archive.
        NoLayersError
            The archive holds no ``.shp`` entry.
        DecodeError
            Any layer is malformed; no parcels are returned at all.
        """
        entries = extract_archive(archive_bytes)
        layers = group_layers(entries)
        if not layers:
            raise NoLayersError("no .shp files found in the archive")

        parcels: list[Parcel] = []
        for layer in layers:
            features = self.decode_layer(layer)
            parcels.extend(Parcel.from_feature(feature, target_year) for feature in features)
            logger.info(f"Layer {layer.name}: {len(features)} parcels")

        logger.info(
            f"Ingested {len(parcels)} parcels from {len(layers)} layers for {target_year}"
        )
        return parcels

    def decode_layer(self, layer: ShapeLayer) -> list[Feature]:
        """
        Decode one layer into features with positional attributes.

        Parameters
        ----------
        layer : ShapeLayer
            Layer payloads grouped by basename.

        Returns
        -------
        list[Feature]
            Features for every usable geometry, in record order.

        Raises
        ------
        DecodeError
            Raised on malformed streams or a geometry/attribute count mismatch.
        """
        projection = projection_from_prj(layer.prj)
        encoding = resolve_codepage(layer.cpg)

        try:
            geometries = decode_geometry(layer.shp, projection)
            if layer.dbf is None:
                logger.warning(f"Layer {layer.name} has no .dbf, properties stay empty")
                records = [{} for _ in geometries]
            else:
                records = decode_attributes(
                    layer.dbf, encoding, default_encoding=self.default_encoding
                )
        except DecodeError as exc:
            raise DecodeError(exc.message, layer=layer.name) from exc

        if len(geometries) != len(records):
            raise DecodeError(
                f"{len(geometries)} shapes but {len(records)} attribute records",
                layer=layer.name,
            )

        return [
            Feature(geometry=geometry, properties=properties)
            for geometry, properties in zip(geometries, records)
            if geometry is not None
        ]


async def import_parcel_archive(
    archive_bytes: bytes,
    year: int,
    geo_data: GeoDataService,
    pipeline: ParcelIngestionPipeline | None = None,
) -> list[Parcel]:
    """
    Ingest an archive and persist its parcels for ``year``.

    Parameters
    ----------
    archive_bytes : bytes
        Shapefile ZIP archive.
    year : int
        Target cropping year.
    geo_data : GeoDataService
        Query surface used to insert the parcels.
    pipeline : ParcelIngestionPipeline, optional
        Pipeline instance; a default one is created when omitted.

    Returns
    -------
    list[Parcel]
        Parcels as stored, carrying their assigned ids.

    Raises
    ------
    NoParcelsError
        Raised when the archive decodes to zero parcels; nothing is stored.
    """
    pipeline = pipeline or ParcelIngestionPipeline()
    parcels = pipeline.ingest(archive_bytes, year)
    if not parcels:
        raise NoParcelsError("no valid parcels found in the archive")
    stored = await geo_data.insert_parcels(parcels)
    logger.info(f"Added {len(stored)} parcels to {year}")
    return stored
