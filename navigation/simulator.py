"""Simulation mode for testing without a location provider."""

import logging
from bisect import bisect_right
from typing import Iterator, Optional, Sequence, Tuple

import config
from .geometry import bearing, cumulative_distances, interpolate, point_along_bearing
from .models import Coordinate, GpsFix, as_coordinates

logger = logging.getLogger('georacing.nav.simulator')


class RouteSimulator:
    """
    Generates GpsFix readings driving along a polyline at constant speed.

    Optional lateral offsets push fixes off the line, either everywhere
    (`lateral_offset_m`) or over a stretch of the route (`detour`), which
    is how off-route behaviour is exercised without real GPS.
    """

    def __init__(
        self,
        points: Sequence,
        speed_mps: float = config.SIM_SPEED_MPS,
        interval_ms: int = config.SIM_INTERVAL_MS,
        accuracy_m: float = config.SIM_ACCURACY_M,
        lateral_offset_m: float = 0.0,
        detour: Optional[Tuple[float, float, float]] = None,
        start_ms: int = 0,
    ):
        """
        Args:
            points: Polyline to follow ((lat, lon) pairs or Coordinates)
            speed_mps: Simulated ground speed
            interval_ms: Time between fixes
            accuracy_m: Reported accuracy of every fix
            lateral_offset_m: Constant offset to the right of travel (m)
            detour: (start_m, end_m, offset_m) extra offset applied while the
                distance travelled is within [start_m, end_m)
            start_ms: Timestamp of the first fix
        """
        self.points = as_coordinates(points)
        if len(self.points) < 2:
            raise ValueError("Simulation route needs at least two points")
        if speed_mps <= 0 or interval_ms <= 0:
            raise ValueError("speed_mps and interval_ms must be > 0")

        self.speed_mps = speed_mps
        self.interval_ms = interval_ms
        self.accuracy_m = accuracy_m
        self.lateral_offset_m = lateral_offset_m
        self.detour = detour
        self.start_ms = start_ms
        self._cumulative = [float(d) for d in cumulative_distances(self.points)]

    @property
    def length_m(self) -> float:
        return self._cumulative[-1]

    def position_at(self, travelled_m: float) -> Tuple[Coordinate, float]:
        """Point and heading at a distance along the polyline."""
        travelled_m = max(0.0, min(travelled_m, self.length_m))
        i = min(bisect_right(self._cumulative, travelled_m) - 1, len(self.points) - 2)
        a = self.points[i]
        b = self.points[i + 1]
        seg = self._cumulative[i + 1] - self._cumulative[i]
        fraction = (travelled_m - self._cumulative[i]) / seg if seg > 0 else 0.0
        lat, lon = interpolate(a, b, fraction)
        return Coordinate(lat, lon), bearing(a.lat, a.lon, b.lat, b.lon)

    def _offset_for(self, travelled_m: float) -> float:
        offset = self.lateral_offset_m
        if self.detour is not None:
            start_m, end_m, extra_m = self.detour
            if start_m <= travelled_m < end_m:
                offset += extra_m
        return offset

    def fix_at(self, travelled_m: float, timestamp_ms: int) -> GpsFix:
        point, heading = self.position_at(travelled_m)
        offset = self._offset_for(travelled_m)
        lat, lon = point.lat, point.lon
        if offset:
            lat, lon = point_along_bearing(lat, lon, (heading + 90) % 360, offset)
        return GpsFix(
            lat=lat,
            lon=lon,
            accuracy_m=self.accuracy_m,
            bearing_deg=heading,
            speed_mps=self.speed_mps,
            timestamp_ms=timestamp_ms,
        )

    def fixes(self) -> Iterator[GpsFix]:
        """Fixes from start to end of the polyline, the last one on the final point."""
        step_m = self.speed_mps * self.interval_ms / 1000.0
        travelled = 0.0
        timestamp = self.start_ms
        while travelled < self.length_m:
            yield self.fix_at(travelled, timestamp)
            travelled += step_m
            timestamp += self.interval_ms
        yield self.fix_at(self.length_m, timestamp)
        logger.debug("Simulation finished after %.0fm", self.length_m)
