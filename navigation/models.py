"""
Core data structures for the route-tracking pipeline.

Unit Conventions
----------------
All measurements in this module use SI units unless otherwise noted:

- Time: milliseconds for fix timestamps (Unix epoch), seconds for durations
- Distance: metres
- Speed: metres per second (m/s)
- Angles: degrees (0-360, 0=North, 90=East)
- Coordinates: decimal degrees (WGS84)

Routes are immutable once built; a recalculation replaces the whole Route.
NavigationProgress is the only mutable state and belongs to one
NavigationSession.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from .geometry import segment_lengths


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 position in decimal degrees."""
    lat: float
    lon: float


@dataclass(frozen=True)
class GpsFix:
    """
    Single location reading from the location provider.

    Attributes:
        lat: Latitude in decimal degrees.
        lon: Longitude in decimal degrees.
        accuracy_m: Horizontal accuracy estimate in metres. Lower is better,
            typically 3-10m for a phone in open sky.
        bearing_deg: Course over ground in degrees (0-360).
        speed_mps: Ground speed in metres per second.
        timestamp_ms: Fix time in milliseconds since the epoch.
    """
    lat: float
    lon: float
    accuracy_m: float = 5.0
    bearing_deg: float = 0.0
    speed_mps: float = 0.0
    timestamp_ms: int = 0

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lon)


@dataclass(frozen=True)
class RouteStep:
    """
    One maneuver instruction of a route.

    Attributes:
        maneuver_type: OSRM maneuver type (depart, turn, continue,
            roundabout, rotary, arrive, ...).
        modifier: Direction modifier (left, right, slight left, ...), or
            empty when the maneuver has none.
        road_name: Name of the road the maneuver leads onto ("" if unknown).
        distance_m: Length of the leg travelled after this maneuver.
        exit_ordinal: Roundabout exit number (1-based), if any.
    """
    maneuver_type: str
    modifier: str = ""
    road_name: str = ""
    distance_m: float = 0.0
    exit_ordinal: Optional[int] = None


@dataclass(frozen=True, eq=False)
class Route:
    """
    A route computed by the routing provider.

    Segment lengths and cumulative distances along the polyline are
    precomputed on construction so the per-fix path never re-integrates
    the whole polyline.

    Attributes:
        points: Ordered polyline vertices.
        distance_m: Total route distance reported by the provider.
        duration_s: Total route duration reported by the provider.
        steps: Ordered maneuvers; their distances partition distance_m.
    """
    points: Tuple[Coordinate, ...]
    distance_m: float
    duration_s: float
    steps: Tuple[RouteStep, ...] = ()

    segment_lengths_m: np.ndarray = field(init=False, repr=False)
    cumulative_m: np.ndarray = field(init=False, repr=False)
    step_ends_m: Tuple[float, ...] = field(init=False, repr=False)

    def __post_init__(self):
        points = as_coordinates(self.points)
        object.__setattr__(self, 'points', points)
        object.__setattr__(self, 'steps', tuple(self.steps))

        lengths = segment_lengths(points)
        object.__setattr__(self, 'segment_lengths_m', lengths)
        cumulative = np.concatenate(([0.0], np.cumsum(lengths))) if points else np.zeros(0)
        object.__setattr__(self, 'cumulative_m', cumulative)
        object.__setattr__(self, 'step_ends_m', self._compute_step_ends())

    def _compute_step_ends(self) -> Tuple[float, ...]:
        """
        Distance along the polyline at which each step ends.

        Step distances are scaled so their total matches the polyline
        length, keeping step boundaries and snapped positions on the same
        scale even when the provider's distances differ slightly from the
        geometry.
        """
        if not self.steps:
            return ()
        total_steps = sum(max(0.0, s.distance_m) for s in self.steps)
        length = self.polyline_length_m
        scale = length / total_steps if total_steps > 0 else 0.0

        ends = []
        running = 0.0
        for step in self.steps:
            running += max(0.0, step.distance_m) * scale
            ends.append(running)
        if total_steps > 0:
            ends[-1] = length  # Absorb floating error on the final boundary
        return tuple(ends)

    @property
    def has_geometry(self) -> bool:
        return len(self.points) > 0

    @property
    def polyline_length_m(self) -> float:
        return float(self.cumulative_m[-1]) if len(self.cumulative_m) else 0.0

    @property
    def destination(self) -> Optional[Coordinate]:
        return self.points[-1] if self.points else None

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class SnapResult:
    """
    Closest route position to a fix.

    Attributes:
        closest_index: Polyline vertex index the fix snapped to. When
            segment_fraction > 0 the snapped point lies on the segment
            closest_index -> closest_index + 1.
        closest_point: Snapped position on the route.
        distance_to_route: Distance in metres from the fix to closest_point.
        segment_fraction: Position along the following segment (0-1).
    """
    closest_index: int
    closest_point: Coordinate
    distance_to_route: float
    segment_fraction: float = 0.0


class NavigationStatus(Enum):
    """Lifecycle of a navigation session."""
    INACTIVE = "inactive"
    NAVIGATING = "navigating"
    RECALCULATING = "recalculating"
    ARRIVED = "arrived"


@dataclass(frozen=True)
class RecalculationRequest:
    """Re-route request dispatched when the vehicle leaves the route."""
    origin_fix: GpsFix
    destination: Coordinate


@dataclass
class NavigationProgress:
    """
    Session-scoped tracking state, mutated only by the fix-processing path.

    Attributes:
        current_step_index: Index of the active RouteStep.
        distance_to_maneuver_m: Distance to the maneuver ending the step.
        remaining_distance_m: Distance left along the route.
        remaining_duration_s: Traffic-adjusted ETA in seconds.
        distance_along_route_m: Distance travelled along the polyline.
        instruction_text: Text of the upcoming maneuver.
        off_route: Sustained deviation confirmed for the current route.
        arrived: Destination reached (latched).
        gps_degraded: No accepted fix within the staleness window.
        last_good_fix_ms: Timestamp of the last accepted fix, if any.
    """
    current_step_index: int = 0
    distance_to_maneuver_m: float = 0.0
    remaining_distance_m: float = 0.0
    remaining_duration_s: float = 0.0
    distance_along_route_m: float = 0.0
    instruction_text: str = ""
    off_route: bool = False
    arrived: bool = False
    gps_degraded: bool = False
    last_good_fix_ms: Optional[int] = None

    def reset(self, route: Optional[Route] = None):
        """Restore defaults for a newly accepted route."""
        self.current_step_index = 0
        self.distance_to_maneuver_m = 0.0
        self.distance_along_route_m = 0.0
        self.instruction_text = ""
        self.off_route = False
        self.arrived = False
        self.remaining_distance_m = route.polyline_length_m if route else 0.0
        self.remaining_duration_s = route.duration_s if route else 0.0


@dataclass(frozen=True)
class NavigationUpdate:
    """
    Per-fix output consumed by the UI and the voice collaborator.

    Attributes:
        status: Session lifecycle state after processing the fix.
        fix_accepted: False when the fix failed the quality gate.
        remaining_distance_m: Distance left along the route.
        remaining_duration_s: Traffic-adjusted ETA in seconds.
        current_step_index: Index of the active RouteStep.
        distance_to_maneuver_m: Distance to the next maneuver.
        instruction_text: Text of the next maneuver.
        off_route: Sustained deviation confirmed.
        arrived: Destination reached.
        spoken_announcement: Text to vocalise now, if any.
        gps_degraded: Outputs are frozen because GPS went stale.
        notice: Transient UI message ("Recalculation failed", ...).
        recalculation_request: Set on the update that dispatched a re-route.
    """
    status: NavigationStatus
    fix_accepted: bool
    remaining_distance_m: float
    remaining_duration_s: float
    current_step_index: int
    distance_to_maneuver_m: float
    instruction_text: str
    off_route: bool = False
    arrived: bool = False
    spoken_announcement: Optional[str] = None
    gps_degraded: bool = False
    notice: Optional[str] = None
    recalculation_request: Optional[RecalculationRequest] = None


def as_coordinates(points: Sequence) -> Tuple[Coordinate, ...]:
    """Convert (lat, lon) pairs or Coordinate-likes to a tuple of Coordinate."""
    return tuple(
        p if isinstance(p, Coordinate) else Coordinate(float(p[0]), float(p[1]))
        for p in points
    )
