"""
Step tracker - maps progress along the route to the active maneuver.

Works purely in distance travelled along the polyline: each step's end
boundary is its cumulative step distance (see Route.step_ends_m), and the
active step is the first one whose end is still ahead of the vehicle.
"""

from bisect import bisect_right
from dataclasses import dataclass
from typing import Optional

from .instructions import CONTINUE_TEXT, instruction_text
from .models import NavigationProgress, Route, SnapResult


@dataclass(frozen=True)
class StepUpdate:
    """Result of a step lookup."""
    step_index: int
    distance_to_maneuver_m: float
    instruction_text: str


class StepTracker:
    """Determines the current step and distance to the next maneuver."""

    def locate(self, route: Route, travelled_m: float) -> StepUpdate:
        """
        Step lookup for a distance travelled along the route.

        The instruction describes the maneuver at the end of the current
        step, i.e. the next step's maneuver (the last step describes its
        own, normally the arrival).
        """
        remaining = max(0.0, route.polyline_length_m - travelled_m)
        steps = route.steps
        if not steps:
            return StepUpdate(0, remaining, CONTINUE_TEXT)

        ends = route.step_ends_m
        # First step whose end is strictly ahead of the travelled distance
        index = bisect_right(ends, travelled_m)
        if index >= len(steps):
            index = len(steps) - 1
            to_maneuver = remaining
        else:
            to_maneuver = max(0.0, ends[index] - travelled_m)

        upcoming = steps[index + 1] if index + 1 < len(steps) else steps[index]
        return StepUpdate(index, to_maneuver, instruction_text(upcoming))

    def update_step(
        self,
        route: Route,
        snap: Optional[SnapResult],
        progress: NavigationProgress,
    ) -> StepUpdate:
        """
        Update progress with the step for a snap result.

        Reads the travelled distance from `progress.distance_along_route_m`,
        which the distance calculation fills once per fix. Without a snap
        (no geometry yet) the neutral continue instruction is reported
        against the route's full distance.
        """
        if snap is None or not route.has_geometry:
            update = StepUpdate(0, route.distance_m, CONTINUE_TEXT)
        else:
            update = self.locate(route, progress.distance_along_route_m)

        progress.current_step_index = update.step_index
        progress.distance_to_maneuver_m = update.distance_to_maneuver_m
        progress.instruction_text = update.instruction_text
        return update
