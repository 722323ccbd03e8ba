"""Geometry utilities for GPS fixes and route polylines."""

import math
from typing import Any, Sequence, Tuple

import numpy as np

EARTH_RADIUS_M = 6371000.0

# Local equirectangular scale factors (metres per degree)
METRES_PER_DEG_LAT = 110540.0
METRES_PER_DEG_LON_EQUATOR = 111320.0


def _get_lat_lon(point: Any) -> Tuple[float, float]:
    """Extract lat/lon from a point (tuple or object with .lat/.lon)."""
    if hasattr(point, 'lat') and hasattr(point, 'lon'):
        return point.lat, point.lon
    return point[0], point[1]


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate great circle distance between two GPS points in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def distance_between(a: Any, b: Any) -> float:
    """Haversine distance in meters between two point-like values."""
    lat1, lon1 = _get_lat_lon(a)
    lat2, lon2 = _get_lat_lon(b)
    return haversine_distance(lat1, lon1, lat2, lon2)


def segment_lengths(points: Sequence[Any]) -> np.ndarray:
    """
    Haversine length of every consecutive segment of a polyline.

    Vectorised over the whole polyline; a polyline of N points yields N-1
    lengths (an empty array for fewer than two points).
    """
    if len(points) < 2:
        return np.zeros(0)

    coords = np.radians(np.array([_get_lat_lon(p) for p in points], dtype=float))
    phi = coords[:, 0]
    lam = coords[:, 1]

    delta_phi = np.diff(phi)
    delta_lambda = np.diff(lam)

    a = (
        np.sin(delta_phi / 2) ** 2
        + np.cos(phi[:-1]) * np.cos(phi[1:]) * np.sin(delta_lambda / 2) ** 2
    )
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def cumulative_distances(points: Sequence[Any]) -> np.ndarray:
    """Cumulative distance along a polyline, starting at 0.0 for the first point."""
    if len(points) == 0:
        return np.zeros(0)
    return np.concatenate(([0.0], np.cumsum(segment_lengths(points))))


def bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate bearing from point 1 to point 2 in degrees (0-360)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)

    x = math.sin(delta_lambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(
        delta_lambda
    )

    bearing_rad = math.atan2(x, y)
    return (math.degrees(bearing_rad) + 360) % 360


def point_along_bearing(
    lat: float, lon: float, bearing_deg: float, distance_m: float
) -> Tuple[float, float]:
    """Calculate point at given distance and bearing from start point."""
    lat_rad = math.radians(lat)
    lon_rad = math.radians(lon)
    bearing_rad = math.radians(bearing_deg)
    angular = distance_m / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat_rad) * math.cos(angular)
        + math.cos(lat_rad) * math.sin(angular) * math.cos(bearing_rad)
    )

    lon2 = lon_rad + math.atan2(
        math.sin(bearing_rad) * math.sin(angular) * math.cos(lat_rad),
        math.cos(angular) - math.sin(lat_rad) * math.sin(lat2),
    )

    return math.degrees(lat2), math.degrees(lon2)


def interpolate(a: Any, b: Any, fraction: float) -> Tuple[float, float]:
    """Linear interpolation between two points (fraction 0 = a, 1 = b)."""
    lat1, lon1 = _get_lat_lon(a)
    lat2, lon2 = _get_lat_lon(b)
    return lat1 + fraction * (lat2 - lat1), lon1 + fraction * (lon2 - lon1)


def project_onto_segment(
    point: Any,
    seg_start: Any,
    seg_end: Any,
) -> Tuple[Tuple[float, float], float]:
    """
    Orthogonal projection of a point onto a line segment.

    Works in a local equirectangular frame centred on the point, which is
    accurate to well under a metre at circuit scale.

    Returns: (projected_point, fraction_along_segment) with the fraction
    clamped to [0, 1]. A zero-length segment returns (seg_start, 0.0).
    """
    lat, lon = _get_lat_lon(point)
    start_lat, start_lon = _get_lat_lon(seg_start)
    end_lat, end_lon = _get_lat_lon(seg_end)

    lon_scale = METRES_PER_DEG_LON_EQUATOR * math.cos(math.radians(lat))
    x1 = (start_lon - lon) * lon_scale
    y1 = (start_lat - lat) * METRES_PER_DEG_LAT
    x2 = (end_lon - lon) * lon_scale
    y2 = (end_lat - lat) * METRES_PER_DEG_LAT

    dx = x2 - x1
    dy = y2 - y1

    if dx == 0 and dy == 0:
        return (start_lat, start_lon), 0.0

    # Parameter t for closest point on the infinite line, clamped to the segment
    t = max(0.0, min(1.0, -((x1 * dx + y1 * dy) / (dx * dx + dy * dy))))

    projected = (start_lat + t * (end_lat - start_lat), start_lon + t * (end_lon - start_lon))
    return projected, t

