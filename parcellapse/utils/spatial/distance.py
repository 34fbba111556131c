"""Great-circle distance helpers for the add-photo proximity check."""

from __future__ import annotations

import math

EARTH_RADIUS_M = 6371e3
PROXIMITY_RADIUS_M = 20.0


def haversine_distance_m(
    lat1: float, lon1: float, lat2: float, lon2: float
) -> float:
    """Haversine distance in meters between two latitude/longitude points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def is_within(
    point_a: tuple[float, float],
    point_b: tuple[float, float],
    meters: float = PROXIMITY_RADIUS_M,
) -> bool:
    """Check whether two ``(latitude, longitude)`` points are within range.

    Parameters
    ----------
    point_a, point_b : tuple[float, float]
        Points as ``(latitude, longitude)`` degrees.
    meters : float
        Inclusive distance limit.

    Returns
    -------
    bool
        ``True`` when the great-circle distance is at most ``meters``.

    Examples
    --------
    >>> is_within((52.0, 5.0), (52.0001, 5.0), meters=20)
    True
    """
    return haversine_distance_m(point_a[0], point_a[1], point_b[0], point_b[1]) <= meters
