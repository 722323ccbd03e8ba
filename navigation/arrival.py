"""One-shot arrival detection."""

import logging
from typing import Optional

import config
from .geometry import distance_between
from .models import Coordinate, GpsFix

logger = logging.getLogger('georacing.nav.arrival')


class ArrivalDetector:
    """
    Detects arrival at the destination exactly once per session.

    `has_arrived` returns True only on the fix that first comes within
    `radius_m` of the destination; later calls return False until reset.
    When `remaining_threshold_m` is set, a remaining route distance below it
    also counts, which catches a destination set back from the road.
    """

    def __init__(
        self,
        radius_m: float = config.ARRIVAL_RADIUS_M,
        remaining_threshold_m: Optional[float] = config.ARRIVAL_REMAINING_DISTANCE_M,
    ):
        self.radius_m = radius_m
        self.remaining_threshold_m = remaining_threshold_m
        self._arrived = False

    @property
    def arrived(self) -> bool:
        return self._arrived

    def has_arrived(
        self,
        fix: GpsFix,
        destination: Optional[Coordinate],
        remaining_m: Optional[float] = None,
    ) -> bool:
        if self._arrived:
            return False

        if destination is not None:
            distance = distance_between(fix, destination)
            if distance < self.radius_m:
                self._arrived = True
                logger.info("Arrived (%.1fm from destination)", distance)
                return True

        if (
            self.remaining_threshold_m is not None
            and remaining_m is not None
            and remaining_m < self.remaining_threshold_m
        ):
            self._arrived = True
            logger.info("Arrived (%.1fm of route remaining)", remaining_m)
            return True
        return False

    def reset(self):
        self._arrived = False
