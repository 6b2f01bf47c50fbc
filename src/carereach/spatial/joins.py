"""
Radius queries over a set of records.

`GeoIndex` projects record locations onto a 3D sphere and builds a `cKDTree` once.
A query:
1) converts the haversine radius into a chord radius,
2) asks the tree for every point within that chord (exact superset),
3) computes haversine distance for the candidates and keeps those within radius,
4) sorts by distance (ties broken by insertion order, so results are deterministic).

An index is immutable; stores rebuild it whenever a category generation is swapped.
"""

from __future__ import annotations

from typing import Generic, Sequence, TypeVar

import numpy as np
# cKDTree provides fast neighbor searches in Euclidean space.
from scipy.spatial import cKDTree

from carereach.catalogs.records import GeoPoint
from carereach.spatial.crs import chord_radius_m, lonlat_to_xyz_m
from carereach.spatial.distance import haversine_m

T = TypeVar("T")


class GeoIndex(Generic[T]):
    def __init__(self, items: Sequence[T], points: Sequence[GeoPoint]) -> None:
        if len(items) != len(points):
            raise ValueError("items and points must have the same length")
        self._items = list(items)
        self._points = list(points)
        self._tree: cKDTree | None = None
        if self._points:
            xyz = lonlat_to_xyz_m(
                np.array([p.lon for p in self._points], dtype=float),
                np.array([p.lat for p in self._points], dtype=float),
            )
            self._tree = cKDTree(xyz)

    def __len__(self) -> int:
        return len(self._items)

    def within(self, origin: GeoPoint, radius_m: float, limit: int | None = None) -> list[tuple[T, float]]:
        if radius_m < 0:
            raise ValueError("radius_m must be >= 0")
        if self._tree is None:
            return []

        center = lonlat_to_xyz_m(np.array([origin.lon]), np.array([origin.lat]))[0]
        # A hair of slack so float error in the projection never drops a boundary point;
        # the haversine filter below is the exact test.
        chord = chord_radius_m(radius_m) * (1.0 + 1e-9) + 1e-6
        candidates = sorted(self._tree.query_ball_point(center, chord))

        hits: list[tuple[int, float]] = []
        for idx in candidates:
            d = haversine_m(origin, self._points[idx])
            if d <= radius_m:
                hits.append((idx, d))
        hits.sort(key=lambda pair: (pair[1], pair[0]))
        if limit is not None:
            hits = hits[: max(0, int(limit))]
        return [(self._items[i], d) for i, d in hits]
