from __future__ import annotations

from math import asin, cos, radians, sin, sqrt
from typing import Iterable, Protocol, TypeVar

"""
Geospatial helpers.

Distances are plain haversine math; nothing here needs a GIS dependency.
Any object exposing `latitude` / `longitude` in decimal degrees works as a point.
"""

EARTH_RADIUS_M = 6_371_000.0


class LatLng(Protocol):
    latitude: float
    longitude: float


P = TypeVar("P", bound=LatLng)


def haversine_m(a: LatLng, b: LatLng) -> float:
    """Compute great-circle distance in meters between two points.

    NaN coordinates propagate to a NaN distance.
    """
    lat1 = radians(a.latitude)
    lon1 = radians(a.longitude)
    lat2 = radians(b.latitude)
    lon2 = radians(b.longitude)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push `h` a hair above 1.0 for antipodal points.
    # `h` goes first so a NaN survives the clamp.
    return 2 * EARTH_RADIUS_M * asin(sqrt(min(h, 1.0)))


def sort_by_distance(origin: LatLng, items: Iterable[P], *, key=None) -> list[P]:
    """Return `items` ordered nearest-first relative to `origin` (stable for ties).

    `key` maps an item to its point; by default the item itself is the point.
    """
    locate = key or (lambda item: item)
    return sorted(items, key=lambda item: haversine_m(origin, locate(item)))
