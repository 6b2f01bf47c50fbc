"""
Great-circle distance and compass bearing between two points.

Both functions take `GeoPoint`s (lon/lat degrees) and use a spherical earth with
R = 6,371,000 m. Road routing is out of scope: every distance here is straight-line.
"""

from __future__ import annotations

import math
from enum import Enum

from carereach.catalogs.records import GeoPoint
from carereach.spatial.crs import EARTH_RADIUS_M


class CardinalDirection(str, Enum):
    N = "N"
    NE = "NE"
    E = "E"
    SE = "SE"
    S = "S"
    SW = "SW"
    W = "W"
    NW = "NW"


_ORDER = list(CardinalDirection)

DIRECTION_LABELS: dict[str, dict[CardinalDirection, str]] = {
    "en": {
        CardinalDirection.N: "north",
        CardinalDirection.NE: "north-east",
        CardinalDirection.E: "east",
        CardinalDirection.SE: "south-east",
        CardinalDirection.S: "south",
        CardinalDirection.SW: "south-west",
        CardinalDirection.W: "west",
        CardinalDirection.NW: "north-west",
    },
    "bn": {
        CardinalDirection.N: "উত্তর",
        CardinalDirection.NE: "উত্তর-পূর্ব",
        CardinalDirection.E: "পূর্ব",
        CardinalDirection.SE: "দক্ষিণ-পূর্ব",
        CardinalDirection.S: "দক্ষিণ",
        CardinalDirection.SW: "দক্ষিণ-পশ্চিম",
        CardinalDirection.W: "পশ্চিম",
        CardinalDirection.NW: "উত্তর-পশ্চিম",
    },
}


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lon - a.lon)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Float error can push h a hair above 1 for antipodal points.
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bearing_degrees(a: GeoPoint, b: GeoPoint) -> float:
    """Initial bearing from `a` to `b`, clockwise from true north, in [0, 360)."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_lambda = math.radians(b.lon - a.lon)

    y = math.sin(d_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
    deg = (math.degrees(math.atan2(y, x)) + 360.0) % 360.0
    # `%` can return 360.0 for tiny negative inputs.
    return 0.0 if deg >= 360.0 else deg


def bucket_for_degrees(deg: float) -> CardinalDirection:
    # Round half up (22.5 -> NE), not Python's round-half-to-even.
    index = int(math.floor(deg / 45.0 + 0.5)) % 8
    return _ORDER[index]


def bearing_bucket(a: GeoPoint, b: GeoPoint) -> CardinalDirection:
    return bucket_for_degrees(bearing_degrees(a, b))


def direction_label(direction: CardinalDirection, language: str = "en") -> str:
    labels = DIRECTION_LABELS.get(language) or DIRECTION_LABELS["en"]
    return labels[direction]
