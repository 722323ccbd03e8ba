"""
Route snapper - maps GPS fixes onto the route polyline.

Uses a two-pass windowed search seeded from the previous snap index rather
than a global search, so per-fix cost stays bounded on long routes and the
snap cannot jump to a distant part of a route that passes close to itself.
"""

import logging
from typing import Optional, Sequence

import config
from .geometry import distance_between, haversine_distance, project_onto_segment
from .models import Coordinate, GpsFix, SnapResult

logger = logging.getLogger('georacing.nav.snapper')


class RouteSnapper:
    """
    Finds the closest route position to a fix.

    The first pass searches `first_radius` vertices ahead of the previous
    snap index. If that finds nothing, or its best vertex is further than
    `escalation_distance_m` from the fix (GPS gap, route looping back near
    itself), the search is repeated with `second_radius`. Neither pass
    looks more than `backward_tolerance` vertices behind the previous
    index.

    With `project_onto_segments` enabled the nearest vertex is refined by
    projecting the fix onto its adjacent segments.
    """

    def __init__(
        self,
        first_radius: int = config.SNAP_FIRST_RADIUS,
        second_radius: int = config.SNAP_SECOND_RADIUS,
        escalation_distance_m: float = config.SNAP_ESCALATION_DISTANCE_M,
        backward_tolerance: int = config.SNAP_BACKWARD_TOLERANCE,
        project_onto_segments: bool = config.SNAP_PROJECT_ONTO_SEGMENTS,
    ):
        if first_radius < 0 or second_radius < 0 or backward_tolerance < 0:
            raise ValueError("Search radii and backward tolerance must be >= 0")
        self.first_radius = first_radius
        self.second_radius = second_radius
        self.escalation_distance_m = escalation_distance_m
        self.backward_tolerance = backward_tolerance
        self.project_onto_segments = project_onto_segments

    def snap(
        self,
        fix: GpsFix,
        polyline: Sequence[Coordinate],
        last_index: Optional[int] = 0,
        first_radius: Optional[int] = None,
        second_radius: Optional[int] = None,
    ) -> SnapResult:
        """
        Snap a fix onto the polyline.

        Args:
            fix: GPS fix to snap
            polyline: Route vertices
            last_index: Previous snap index, or None to search the whole
                polyline (first fix on a new route)
            first_radius: Override for the first-pass window
            second_radius: Override for the second-pass window

        Returns:
            SnapResult for the best match

        Raises:
            ValueError: If the polyline is empty
        """
        n = len(polyline)
        if n == 0:
            raise ValueError("Cannot snap to an empty polyline")

        first = self.first_radius if first_radius is None else first_radius
        second = self.second_radius if second_radius is None else second_radius

        if last_index is None:
            lo, hi = 0, n - 1
            index, distance = self._nearest_vertex(fix, polyline, lo, hi)
        else:
            last_index = max(0, min(last_index, n - 1))
            lo = max(0, last_index - self.backward_tolerance)
            hi = min(n - 1, last_index + first)

            index, distance = self._nearest_vertex(fix, polyline, lo, hi)
            if index is None or distance > self.escalation_distance_m:
                logger.debug(
                    "First pass best %.1fm at index %s, widening to %d",
                    distance, index, second,
                )
                hi = max(hi, min(n - 1, last_index + second))
                wide_index, wide_distance = self._nearest_vertex(fix, polyline, lo, hi)
                if wide_index is not None and (index is None or wide_distance < distance):
                    index, distance = wide_index, wide_distance
                if distance > self.escalation_distance_m:
                    logger.debug("Second pass still %.1fm from route", distance)

        vertex = polyline[index]
        if not self.project_onto_segments:
            return SnapResult(
                closest_index=index,
                closest_point=vertex,
                distance_to_route=distance,
            )
        return self._refine(fix, polyline, index, distance, lo, hi)

    def _nearest_vertex(self, fix: GpsFix, polyline: Sequence[Coordinate], start: int, end: int):
        """Nearest vertex in [start, end]; exact ties go to the larger index."""
        best_index = None
        best_distance = float('inf')
        for i in range(start, end + 1):
            point = polyline[i]
            d = haversine_distance(fix.lat, fix.lon, point.lat, point.lon)
            if d <= best_distance:
                best_distance = d
                best_index = i
        return best_index, best_distance

    def _refine(
        self,
        fix: GpsFix,
        polyline: Sequence[Coordinate],
        index: int,
        vertex_distance: float,
        lowest_index: int,
        highest_index: int,
    ) -> SnapResult:
        """Project onto the segments either side of the nearest vertex, inside the window."""
        best = SnapResult(index, polyline[index], vertex_distance, 0.0)

        candidates = []
        if index + 1 <= highest_index:
            candidates.append(index)  # Forward segment first, wins ties
        if index - 1 >= lowest_index:
            candidates.append(index - 1)

        for start in candidates:
            projected, t = project_onto_segment(fix, polyline[start], polyline[start + 1])
            point = Coordinate(projected[0], projected[1])
            d = distance_between(fix, point)
            if d >= best.distance_to_route:
                continue
            if t <= 0.0:
                best = SnapResult(start, polyline[start], d, 0.0)
            elif t >= 1.0:
                best = SnapResult(start + 1, polyline[start + 1], d, 0.0)
            else:
                best = SnapResult(start, point, d, t)
        return best


class SnapCache:
    """
    Last snap result plus the decision of when to recompute it.

    A fix within `invalidate_distance_m` of the cached snapped point reuses
    the cached result, bounding CPU use on dense fix streams.
    """

    def __init__(self, invalidate_distance_m: float = config.SNAP_CACHE_DISTANCE_M):
        self.invalidate_distance_m = invalidate_distance_m
        self._snap: Optional[SnapResult] = None

    @property
    def snap(self) -> Optional[SnapResult]:
        return self._snap

    @property
    def last_index(self) -> Optional[int]:
        """Seed index for the next search (None before the first snap)."""
        return self._snap.closest_index if self._snap else None

    def should_invalidate(self, fix: GpsFix) -> bool:
        """True when the cached result must be recomputed for this fix."""
        if self._snap is None:
            return True
        return distance_between(fix, self._snap.closest_point) > self.invalidate_distance_m

    def store(self, snap: SnapResult):
        self._snap = snap

    def clear(self):
        self._snap = None
