"""
Circle polygons for service areas.

A health worker scraped from a contact directory only has a point (the gazetteer
location of their district). We publish a circular GeoJSON polygon around it as the
worker's service area; it is a display aid, not a coverage model.
"""

from __future__ import annotations

import math
from typing import Any

import numpy as np

from carereach.catalogs.records import GeoPoint
from carereach.spatial.crs import latlon_to_xy_m, xy_to_latlon


def circle_polygon_lonlat(
    *,
    center_lat: float,
    center_lon: float,
    radius_m: float,
    num_points: int = 64,
) -> list[list[float]]:
    """
    Approximate a circle as a closed lon/lat ring: [[lon, lat], ..., first].
    The local projection is anchored at the center latitude.
    """
    if radius_m <= 0:
        raise ValueError("radius_m must be > 0")
    if num_points < 3:
        raise ValueError("num_points must be >= 3")

    x0, y0 = latlon_to_xy_m(
        np.array([center_lat], dtype=float),
        np.array([center_lon], dtype=float),
        reference_lat_deg=center_lat,
    )
    angles = np.linspace(0.0, 2.0 * math.pi, num_points, endpoint=False)
    xs = float(x0[0]) + radius_m * np.cos(angles)
    ys = float(y0[0]) + radius_m * np.sin(angles)
    out_lat, out_lon = xy_to_latlon(xs, ys, reference_lat_deg=center_lat)

    coords = [[round(float(lon_i), 6), round(float(lat_i), 6)] for lat_i, lon_i in zip(out_lat, out_lon)]
    # GeoJSON rings are closed: the last vertex repeats the first.
    coords.append(coords[0])
    return coords


def service_area_polygon(center: GeoPoint, radius_m: float = 1000.0, num_points: int = 32) -> dict[str, Any]:
    ring = circle_polygon_lonlat(
        center_lat=center.lat,
        center_lon=center.lon,
        radius_m=radius_m,
        num_points=num_points,
    )
    return {"type": "Polygon", "coordinates": [ring]}


def representative_point(geometry: dict[str, Any]) -> GeoPoint:
    """
    Vertex mean of the first exterior ring (closing vertex excluded).
    Works for Polygon and MultiPolygon; raises ValueError for anything else.
    """
    gtype = geometry.get("type")
    coords = geometry.get("coordinates")
    if gtype == "Polygon" and coords:
        ring = coords[0]
    elif gtype == "MultiPolygon" and coords and coords[0]:
        ring = coords[0][0]
    elif gtype == "Point" and coords:
        return GeoPoint.parse(coords)
    else:
        raise ValueError(f"Unsupported geometry for a representative point: {gtype!r}")

    if len(ring) > 1 and list(ring[0]) == list(ring[-1]):
        ring = ring[:-1]
    if not ring:
        raise ValueError("Empty polygon ring")
    arr = np.asarray(ring, dtype=float)
    return GeoPoint.of(float(arr[:, 0].mean()), float(arr[:, 1].mean()))
