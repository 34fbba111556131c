"""Greedy photo clustering for map markers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from loguru import logger

from parcellapse.models import PhotoLocation

# Roughly 20 meters at the operating latitudes.
CLUSTER_TOLERANCE_DEG = 0.0002


@dataclass
class PhotoCluster:
    """Photos grouped around a fixed anchor coordinate.

    Parameters
    ----------
    id : str
        Id of the first member, stable for a given input order.
    anchor_latitude, anchor_longitude : float
        Coordinate of the first member; never recomputed.
    members : list[PhotoLocation]
        Members in processing order.
    representative : PhotoLocation
        Most recently created member.
    """

    id: str
    anchor_latitude: float
    anchor_longitude: float
    representative: PhotoLocation
    members: list[PhotoLocation] = field(default_factory=list)

    def accepts(self, photo: PhotoLocation, tolerance: float) -> bool:
        """Check the per-axis anchor tolerance."""
        return (
            abs(photo.latitude - self.anchor_latitude) < tolerance
            and abs(photo.longitude - self.anchor_longitude) < tolerance
        )

    def add(self, photo: PhotoLocation) -> None:
        self.members.append(photo)
        if photo.created_at > self.representative.created_at:
            self.representative = photo


def cluster_photos(
    photos: Iterable[PhotoLocation],
    tolerance: float = CLUSTER_TOLERANCE_DEG,
) -> list[PhotoCluster]:
    """Cluster photos in a single greedy pass.

    Each photo joins the first existing cluster whose anchor lies within
    ``tolerance`` degrees on both latitude and longitude, otherwise it opens
    a new cluster anchored at itself. The result is rebuilt on every call.

    Parameters
    ----------
    photos : Iterable[PhotoLocation]
        Uploaded photo records, processed in iteration order.
    tolerance : float
        Per-axis anchor tolerance in degrees.

    Returns
    -------
    list[PhotoCluster]
        Clusters in creation order.
    """
    clusters: list[PhotoCluster] = []
    photo_count = 0
    for photo in photos:
        photo_count += 1
        target = next(
            (cluster for cluster in clusters if cluster.accepts(photo, tolerance)), None
        )
        if target is not None:
            target.add(photo)
            continue
        clusters.append(
            PhotoCluster(
                id=photo.id,
                anchor_latitude=photo.latitude,
                anchor_longitude=photo.longitude,
                representative=photo,
                members=[photo],
            )
        )
    logger.debug(f"Clustered {photo_count} photos into {len(clusters)} clusters")
    return clusters
