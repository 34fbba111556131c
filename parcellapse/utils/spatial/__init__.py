"""Spatial lookup submodule: parcel membership, clustering and proximity.

Re-exports public API from index, cluster and distance modules.
"""

from parcellapse.utils.spatial.cluster import (
    CLUSTER_TOLERANCE_DEG,
    PhotoCluster,
    cluster_photos,
)
from parcellapse.utils.spatial.distance import (
    PROXIMITY_RADIUS_M,
    haversine_distance_m,
    is_within,
)
from parcellapse.utils.spatial.index import (
    SpatialIndex,
    find_parcel_name,
    parcel_region,
    parcels_to_geodataframe,
)

__all__ = [
    "CLUSTER_TOLERANCE_DEG",
    "PROXIMITY_RADIUS_M",
    "PhotoCluster",
    "SpatialIndex",
    "cluster_photos",
    "find_parcel_name",
    "haversine_distance_m",
    "is_within",
    "parcel_region",
    "parcels_to_geodataframe",
]
