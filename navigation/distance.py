"""Remaining-distance calculation along a route polyline."""

from typing import Sequence, Union

from .geometry import haversine_distance
from .models import Coordinate, Route, SnapResult


def distance_between_indices(start: int, end: int, points: Sequence[Coordinate]) -> float:
    """Polyline length in meters from vertex `start` to vertex `end` (0 if end <= start)."""
    start = max(0, start)
    end = min(end, len(points) - 1)
    total = 0.0
    for i in range(start, end):
        a = points[i]
        b = points[i + 1]
        total += haversine_distance(a.lat, a.lon, b.lat, b.lon)
    return total


def remaining_distance(snap: SnapResult, route: Union[Route, Sequence[Coordinate]]) -> float:
    """
    Distance in meters from the snapped position to the end of the route.

    Sums consecutive segment lengths from `snap.closest_index` to the last
    vertex, less the part of the current segment already travelled when the
    snap lies between vertices.

    Accepts a Route (uses its precomputed segment lengths) or a bare
    polyline.
    """
    if isinstance(route, Route):
        lengths = route.segment_lengths_m
        index = snap.closest_index
        if index >= len(lengths):
            return 0.0
        total = float(lengths[index:].sum())
        current = float(lengths[index])
    else:
        n = len(route)
        if snap.closest_index >= n - 1:
            return 0.0
        total = distance_between_indices(snap.closest_index, n - 1, route)
        a = route[snap.closest_index]
        b = route[snap.closest_index + 1]
        current = haversine_distance(a.lat, a.lon, b.lat, b.lon)

    return max(0.0, total - snap.segment_fraction * current)


def distance_along_route(snap: SnapResult, route: Route) -> float:
    """Distance in meters travelled along the polyline up to the snapped position."""
    if not route.has_geometry:
        return 0.0
    return max(0.0, route.polyline_length_m - remaining_distance(snap, route))
