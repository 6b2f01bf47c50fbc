"""
Coordinate helpers for the geo index and for buffer polygons.

Two projections live here:

- an equirectangular local projection (lat/lon -> planar meters around a reference
  latitude), used to draw small circles such as a health worker's service area;
- an earth-centered 3D projection onto a sphere of radius `EARTH_RADIUS_M`, used by
  the KD-tree index. Straight-line (chord) distance in 3D is monotonic in great-circle
  distance, so a chord radius query returns exactly the points within a haversine
  radius, anywhere on the globe.
"""

from __future__ import annotations

import math

# NumPy arrays keep vectorized coordinate transforms fast and simple.
import numpy as np

# Mean earth radius in meters; the same constant is used by the haversine distance.
EARTH_RADIUS_M = 6_371_000.0


def latlon_to_xy_m(
    lat_deg: np.ndarray,
    lon_deg: np.ndarray,
    *,
    reference_lat_deg: float,
) -> tuple[np.ndarray, np.ndarray]:
    lat_rad = np.deg2rad(lat_deg.astype(float))
    lon_rad = np.deg2rad(lon_deg.astype(float))
    ref_lat_rad = math.radians(float(reference_lat_deg))

    # x scales longitude by cos(reference_lat) because meridians converge toward the poles.
    x = EARTH_RADIUS_M * lon_rad * math.cos(ref_lat_rad)
    y = EARTH_RADIUS_M * lat_rad
    return x, y


def xy_to_latlon(
    x_m: np.ndarray,
    y_m: np.ndarray,
    *,
    reference_lat_deg: float,
) -> tuple[np.ndarray, np.ndarray]:
    ref_lat_rad = math.radians(float(reference_lat_deg))
    lat_rad = y_m.astype(float) / EARTH_RADIUS_M
    # Pitfall: cos(ref_lat) approaches 0 near the poles; callers use mid-latitude centers.
    lon_rad = x_m.astype(float) / (EARTH_RADIUS_M * math.cos(ref_lat_rad))
    return np.rad2deg(lat_rad), np.rad2deg(lon_rad)


def lonlat_to_xyz_m(lon_deg: np.ndarray, lat_deg: np.ndarray) -> np.ndarray:
    """Project lon/lat degrees onto a sphere; returns an (N, 3) array in meters."""
    lon_rad = np.deg2rad(np.asarray(lon_deg, dtype=float))
    lat_rad = np.deg2rad(np.asarray(lat_deg, dtype=float))
    cos_lat = np.cos(lat_rad)
    return EARTH_RADIUS_M * np.column_stack(
        [cos_lat * np.cos(lon_rad), cos_lat * np.sin(lon_rad), np.sin(lat_rad)]
    )


def chord_radius_m(arc_m: float) -> float:
    """Convert a great-circle distance into the equivalent 3D chord length."""
    if arc_m < 0:
        raise ValueError("arc_m must be >= 0")
    angle = min(float(arc_m) / EARTH_RADIUS_M, math.pi)
    return 2.0 * EARTH_RADIUS_M * math.sin(angle / 2.0)
