"""Off-route detection with a confirmation window."""

import logging
from typing import Optional

import config
from .models import GpsFix, SnapResult

logger = logging.getLogger('georacing.nav.off_route')


class OffRouteDetector:
    """
    Flags sustained lateral deviation from the route.

    A single over-threshold reading is never enough: the deviation must
    persist for `confirm_ms` (measured on fix timestamps) before the
    detector reports off route. Any on-route reading resets the timer, so
    a fix oscillating across the threshold never triggers.
    """

    def __init__(
        self,
        threshold_m: float = config.OFF_ROUTE_THRESHOLD_M,
        confirm_ms: int = config.OFF_ROUTE_CONFIRM_MS,
        dynamic_threshold: bool = config.OFF_ROUTE_DYNAMIC_THRESHOLD,
    ):
        self.threshold_m = threshold_m
        self.confirm_ms = confirm_ms
        self.dynamic_threshold = dynamic_threshold
        self._first_off_route_ms: Optional[int] = None

    def threshold_for(self, fix: GpsFix) -> float:
        """Lateral threshold in meters for this fix."""
        if not self.dynamic_threshold:
            return self.threshold_m
        speed_kmh = fix.speed_mps * 3.6
        for max_speed_kmh, threshold in config.OFF_ROUTE_SPEED_THRESHOLDS:
            if speed_kmh < max_speed_kmh:
                return threshold
        return config.OFF_ROUTE_HIGH_SPEED_THRESHOLD_M

    def is_off_route(self, fix: GpsFix, snap: SnapResult) -> bool:
        """True once deviation has exceeded the threshold for the whole window."""
        threshold = self.threshold_for(fix)
        if snap.distance_to_route <= threshold:
            if self._first_off_route_ms is not None:
                logger.info("Back on route (%.1fm)", snap.distance_to_route)
            self._first_off_route_ms = None
            return False

        if self._first_off_route_ms is None:
            self._first_off_route_ms = fix.timestamp_ms
            logger.debug(
                "Deviation %.1fm > %.0fm, waiting %dms to confirm",
                snap.distance_to_route, threshold, self.confirm_ms,
            )
            return False

        elapsed = fix.timestamp_ms - self._first_off_route_ms
        if elapsed >= self.confirm_ms:
            logger.debug("Off route confirmed after %dms (%.1fm)", elapsed, snap.distance_to_route)
            return True
        return False

    def reset(self):
        self._first_off_route_ms = None

    def debug_info(self, now_ms: int) -> str:
        if self._first_off_route_ms is None:
            return "on route"
        return f"deviating for {now_ms - self._first_off_route_ms}ms"
