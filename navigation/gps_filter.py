"""GPS quality gate and staleness tracking."""

import logging
import math
from typing import Optional

import config
from .models import GpsFix

logger = logging.getLogger('georacing.nav.gps_filter')


class GPSQualityFilter:
    """
    Rejects unusable fixes and tracks how long since the last good one.

    A fix is rejected when its accuracy is worse than the limit, when its
    coordinates or accuracy are not finite numbers in range, or when it is
    older than the last accepted fix.

    Staleness is measured on fix timestamps. Before any fix is accepted the
    first fix seen starts the clock.
    """

    def __init__(
        self,
        max_accuracy_m: float = config.GPS_MAX_ACCURACY_M,
        stale_timeout_ms: int = config.GPS_STALE_TIMEOUT_MS,
    ):
        self.max_accuracy_m = max_accuracy_m
        self.stale_timeout_ms = stale_timeout_ms
        self._last_good_fix_ms: Optional[int] = None
        self._first_seen_ms: Optional[int] = None
        self.rejected_count = 0

    @property
    def last_good_fix_ms(self) -> Optional[int]:
        return self._last_good_fix_ms

    def accept(self, fix: GpsFix) -> bool:
        """True if the fix is valid and accurate enough to use."""
        if self._first_seen_ms is None:
            self._first_seen_ms = fix.timestamp_ms

        reason = self._rejection_reason(fix)
        if reason is not None:
            self.rejected_count += 1
            logger.debug("Rejected fix: %s", reason)
            return False

        self._last_good_fix_ms = fix.timestamp_ms
        return True

    def _rejection_reason(self, fix: GpsFix) -> Optional[str]:
        if not all(math.isfinite(v) for v in (fix.lat, fix.lon, fix.accuracy_m)):
            return "non-finite position or accuracy"
        if not (-90.0 <= fix.lat <= 90.0 and -180.0 <= fix.lon <= 180.0):
            return f"coordinates out of range ({fix.lat}, {fix.lon})"
        if fix.accuracy_m > self.max_accuracy_m:
            return f"accuracy {fix.accuracy_m:.1f}m > {self.max_accuracy_m:.1f}m"
        if self._last_good_fix_ms is not None and fix.timestamp_ms < self._last_good_fix_ms:
            return f"timestamp {fix.timestamp_ms} older than last good fix {self._last_good_fix_ms}"
        return None

    def is_stale(self, now_ms: int) -> bool:
        """True when no fix has been accepted for longer than the timeout."""
        reference = self._last_good_fix_ms
        if reference is None:
            reference = self._first_seen_ms
        if reference is None:
            return False
        return self.is_stale_after(now_ms - reference)

    def is_stale_after(self, idle_ms: float) -> bool:
        """True when a gap of `idle_ms` exceeds the timeout."""
        return idle_ms > self.stale_timeout_ms

    def reset(self):
        self._last_good_fix_ms = None
        self._first_seen_ms = None
        self.rejected_count = 0
