"""Point-in-parcel lookup backed by a shapely STRtree."""

from __future__ import annotations

from typing import Sequence

import geopandas as gpd
import numpy as np
from shapely import STRtree
from shapely.geometry import Point

from parcellapse.models import Parcel

WGS84 = "EPSG:4326"


class SpatialIndex:
    """Resolve coordinates to the parcel that contains them.

    Parameters
    ----------
    parcels : Sequence[Parcel]
        Parcel set in ingestion order. Order is the tie-break when parcels
        overlap: the earliest covering parcel wins.

    Examples
    --------
    >>> index = SpatialIndex(parcels)
    >>> index.find_parcel_name(52.1, 5.3)
    'North'
    """

    def __init__(self, parcels: Sequence[Parcel]) -> None:
        self._parcels = list(parcels)
        self._tree = (
            STRtree([parcel.geometry for parcel in self._parcels]) if self._parcels else None
        )

    def __len__(self) -> int:
        return len(self._parcels)

    def find_parcel(self, latitude: float, longitude: float) -> Parcel | None:
        """Return the first parcel covering the point, holes excluded.

        Parameters
        ----------
        latitude, longitude : float
            Point in decimal degrees.

        Returns
        -------
        Parcel | None
            Covering parcel, or ``None`` outside every parcel.
        """
        if self._tree is None:
            return None
        hit_indices = self._tree.query(Point(longitude, latitude), predicate="covered_by")
        if len(hit_indices) == 0:
            return None
        return self._parcels[int(np.min(hit_indices))]

    def find_parcel_name(self, latitude: float, longitude: float) -> str | None:
        """Return the covering parcel name, or ``None``."""
        parcel = self.find_parcel(latitude, longitude)
        return parcel.name if parcel is not None else None


def find_parcel_name(
    latitude: float, longitude: float, parcels: Sequence[Parcel]
) -> str | None:
    """One-shot parcel name lookup against a parcel set."""
    return SpatialIndex(parcels).find_parcel_name(latitude, longitude)


def parcels_to_geodataframe(parcels: Sequence[Parcel]) -> gpd.GeoDataFrame:
    """Convert parcels to a WGS84 GeoDataFrame with ``id, name, year`` columns."""
    return gpd.GeoDataFrame(
        {
            "id": [parcel.id for parcel in parcels],
            "name": [parcel.name for parcel in parcels],
            "year": [parcel.year for parcel in parcels],
        },
        geometry=[parcel.geometry for parcel in parcels],
        crs=WGS84,
    )


def parcel_region(
    parcels: Sequence[Parcel], padding: float = 1.5
) -> dict[str, float] | None:
    """Compute the map region framing every parcel.

    Parameters
    ----------
    parcels : Sequence[Parcel]
        Parcels to frame.
    padding : float
        Multiplier applied to the latitude and longitude spans.

    Returns
    -------
    dict[str, float] | None
        ``latitude``, ``longitude`` (center) and ``latitude_delta``,
        ``longitude_delta`` (padded spans), or ``None`` without parcels.
    """
    if not parcels:
        return None
    min_lon, min_lat, max_lon, max_lat = parcels_to_geodataframe(parcels).total_bounds
    return {
        "latitude": float((min_lat + max_lat) / 2),
        "longitude": float((min_lon + max_lon) / 2),
        "latitude_delta": float(abs(max_lat - min_lat) * padding),
        "longitude_delta": float(abs(max_lon - min_lon) * padding),
    }
