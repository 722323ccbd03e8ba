"""Navigation session - runs the route-tracking pipeline once per GPS fix."""

import dataclasses
import logging
import threading
from typing import List, Optional

import config
from .announcer import ProgressiveAnnouncer
from .arrival import ArrivalDetector
from .distance import distance_along_route, remaining_distance
from .eta import remaining_time
from .geometry import distance_between
from .gps_filter import GPSQualityFilter
from .instructions import ARRIVE_TEXT, CONTINUE_TEXT
from .models import (
    Coordinate,
    GpsFix,
    NavigationProgress,
    NavigationStatus,
    NavigationUpdate,
    RecalculationRequest,
    Route,
    SnapResult,
)
from .off_route import OffRouteDetector
from .route_snapper import RouteSnapper, SnapCache
from .routing import RoutingProvider
from .smoothing import FixSmoother
from .step_tracker import StepTracker

logger = logging.getLogger('georacing.nav.session')

RECALCULATING_TEXT = "Recalculating route."
RECALCULATED_TEXT = "Route recalculated."
ROUTE_READY_TEXT = "Route calculated."

NOTICE_RECALCULATING = "Recalculating route"
NOTICE_ROUTE_UPDATED = "Route updated"
NOTICE_RECALCULATION_FAILED = "Recalculation failed"
NOTICE_GPS_DEGRADED = "GPS signal degraded"


class NavigationSession:
    """
    One active turn-by-turn navigation.

    Owns the Route, the NavigationProgress and every stateful pipeline
    component, so several sessions can run side by side (tests, previews)
    without sharing state.

    Pipeline
    --------
    process_fix() runs, in order:

    1. Apply a completed background re-route (atomic swap)
    2. GPS quality gate (rejected fixes leave outputs unchanged; a long
       run of them flags degraded GPS)
    3. Optional smoothing of the accepted fix
    4. Snap to the route (cached until the fix moves > 10 m from the
       cached snapped point)
    5. Remaining distance and traffic-adjusted ETA
    6. Current step, distance to maneuver and progressive announcement
    7. Off-route confirmation, dispatching one re-route request
    8. One-shot arrival, ending the session

    Asynchronous Recalculation
    --------------------------
    The routing provider is called on a daemon thread, never on the fix
    path. While it runs, fixes keep tracking the old route. The thread
    only stores its result in _pending_route/_pending_error; the next
    process_fix() picks it up via _apply_pending_reroute(), replacing the
    Route and resetting progress in one step.

    Each dispatch records the session generation. start() and stop() bump
    the generation, so a result that arrives after stop (or after a newer
    route was accepted) is discarded.

    Thread Safety
    -------------
    - process_fix(), start() and stop() are serialised by _lock
    - The re-route thread takes _lock only to hand over its result
    - UI readers use snapshot(), which returns the last immutable
      NavigationUpdate and never blocks
    """

    def __init__(
        self,
        routing_provider: Optional[RoutingProvider] = None,
        traffic_factor: float = config.TRAFFIC_FACTOR_DEFAULT,
        muted: bool = config.VOICE_MUTED_DEFAULT,
        snapper: Optional[RouteSnapper] = None,
        snap_cache: Optional[SnapCache] = None,
        gps_filter: Optional[GPSQualityFilter] = None,
        off_route_detector: Optional[OffRouteDetector] = None,
        arrival_detector: Optional[ArrivalDetector] = None,
        smoothing: bool = config.FIX_SMOOTHING_ENABLED,
    ):
        self.routing_provider = routing_provider
        self.snapper = snapper or RouteSnapper()
        self.snap_cache = snap_cache or SnapCache()
        self.gps_filter = gps_filter or GPSQualityFilter()
        self.off_route_detector = off_route_detector or OffRouteDetector()
        self.arrival_detector = arrival_detector or ArrivalDetector()
        self.step_tracker = StepTracker()
        self.announcer = ProgressiveAnnouncer(muted=muted)
        self.smoother: Optional[FixSmoother] = FixSmoother() if smoothing else None

        self._traffic_factor = config.TRAFFIC_FACTOR_DEFAULT
        self.set_traffic_factor(traffic_factor)

        self.route: Optional[Route] = None
        self.destination: Optional[Coordinate] = None
        self.destination_name: Optional[str] = None
        self.progress = NavigationProgress()
        self.status = NavigationStatus.INACTIVE

        self._lock = threading.RLock()
        self._generation = 0
        self._recalculation_pending = False
        self._reroute_thread: Optional[threading.Thread] = None
        self._pending_route: Optional[Route] = None
        self._pending_error: Optional[str] = None

        self._last_update = self._build_update(fix_accepted=False)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    @property
    def muted(self) -> bool:
        return self.announcer.muted

    @muted.setter
    def muted(self, value: bool):
        self.announcer.muted = bool(value)

    @property
    def traffic_factor(self) -> float:
        return self._traffic_factor

    def set_traffic_factor(self, factor: float):
        """Set the crowd/traffic multiplier applied to the ETA (>= 1.0)."""
        if factor < config.TRAFFIC_FACTOR_MIN:
            raise ValueError(f"Traffic factor must be >= {config.TRAFFIC_FACTOR_MIN}, got {factor}")
        self._traffic_factor = float(factor)

    @property
    def recalculating(self) -> bool:
        return self._recalculation_pending

    def start(
        self,
        route: Route,
        destination: Optional[Coordinate] = None,
        destination_name: Optional[str] = None,
    ) -> Optional[str]:
        """
        Begin navigating a route.

        Args:
            route: Route from the routing provider (may have no geometry or
                no steps)
            destination: Final destination, defaults to the last route point
            destination_name: Spoken in the arrival announcement

        Returns:
            The "route calculated" announcement, or None when muted
        """
        with self._lock:
            self._generation += 1
            self._clear_pending()
            self.destination = destination or route.destination
            self.destination_name = destination_name
            self.gps_filter.reset()
            self.arrival_detector.reset()
            if self.smoother:
                self.smoother.reset()
            self.progress = NavigationProgress()
            self._accept_route(route)
            self.status = NavigationStatus.NAVIGATING

            spoken = self._announce_route(ROUTE_READY_TEXT)
            self._last_update = self._build_update(
                fix_accepted=False, spoken=[spoken] if spoken else None
            )
            logger.info(
                "Navigation started: %.0fm, %.0fs, %d steps",
                route.distance_m, route.duration_s, len(route.steps),
            )
            return spoken

    def stop(self):
        """End navigation, discarding any in-flight recalculation."""
        with self._lock:
            self._generation += 1
            self._clear_pending()
            self.route = None
            self.progress = NavigationProgress()
            self.snap_cache.clear()
            self.status = NavigationStatus.INACTIVE
            self._last_update = self._build_update(fix_accepted=False)
        logger.info("Navigation stopped")

    def snapshot(self) -> NavigationUpdate:
        """Latest output for UI readers (immutable, lock-free)."""
        return self._last_update

    def wait_for_reroute(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the in-flight re-route thread finishes.

        Returns:
            True if no re-route thread is running afterwards
        """
        thread = self._reroute_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def check_staleness(self, now_ms: int) -> bool:
        """
        Flag degraded GPS when no fix was accepted within the staleness window.

        `now_ms` must be on the same clock as the fix timestamps.
        """
        with self._lock:
            return self._flag_staleness(self.gps_filter.is_stale(now_ms))

    def check_idle(self, idle_ms: float) -> bool:
        """
        Flag degraded GPS after `idle_ms` without an accepted fix.

        For callers measuring the gap on their own clock, which may not
        agree with the receiver's timestamps.
        """
        with self._lock:
            return self._flag_staleness(self.gps_filter.is_stale_after(idle_ms))

    def _flag_staleness(self, stale: bool) -> bool:
        if self.status not in (NavigationStatus.NAVIGATING, NavigationStatus.RECALCULATING):
            return False
        if stale != self.progress.gps_degraded:
            self.progress.gps_degraded = stale
            if stale:
                logger.warning("GPS degraded, freezing navigation outputs")
            self._last_update = self._build_update(
                fix_accepted=False,
                notice=NOTICE_GPS_DEGRADED if stale else None,
            )
        return stale

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def process_fix(self, fix: GpsFix) -> NavigationUpdate:
        """Run the tracking pipeline for one fix and return its output."""
        with self._lock:
            update = self._process(fix)
            self._last_update = update
            return update

    def _process(self, fix: GpsFix) -> NavigationUpdate:
        spoken: List[str] = []
        notice = self._apply_pending_reroute(spoken)

        if self.route is None or self.status in (NavigationStatus.INACTIVE, NavigationStatus.ARRIVED):
            return dataclasses.replace(
                self._last_update, fix_accepted=False, spoken_announcement=None,
                notice=None, recalculation_request=None,
            )

        if not self.gps_filter.accept(fix):
            stale = self.gps_filter.is_stale(fix.timestamp_ms)
            if stale and not self.progress.gps_degraded:
                logger.warning("GPS degraded, freezing navigation outputs")
                notice = notice or NOTICE_GPS_DEGRADED
            self.progress.gps_degraded = stale
            return self._build_update(False, spoken, notice)

        if self.progress.gps_degraded:
            logger.info("GPS recovered")
        self.progress.gps_degraded = False
        self.progress.last_good_fix_ms = fix.timestamp_ms

        if self.smoother:
            fix = self.smoother.smooth(fix)

        route = self.route
        if not route.has_geometry:
            self.step_tracker.update_step(route, None, self.progress)
            return self._build_update(True, spoken, notice)

        snap = self._snap(fix, route)

        remaining = remaining_distance(snap, route)
        total = route.polyline_length_m
        self.progress.remaining_distance_m = remaining
        self.progress.distance_along_route_m = distance_along_route(snap, route)
        self.progress.remaining_duration_s = remaining_time(
            remaining, total, route.duration_s, self._traffic_factor
        )

        step = self.step_tracker.update_step(route, snap, self.progress)
        announcement = self.announcer.update(step.instruction_text, step.distance_to_maneuver_m)
        if announcement:
            spoken.append(announcement)

        request = None
        if self.off_route_detector.is_off_route(fix, snap):
            self.progress.off_route = True
            if not self._recalculation_pending:
                request = self._request_recalculation(fix)
                if request is not None:
                    notice = NOTICE_RECALCULATING
                    if not self.muted:
                        spoken.append(RECALCULATING_TEXT)
        else:
            if self.progress.off_route:
                self.progress.off_route = False
                if self.routing_provider is None:
                    # No background job to wait for, the vehicle rejoined on its own
                    self._recalculation_pending = False
                    self.status = NavigationStatus.NAVIGATING

        if self.arrival_detector.has_arrived(fix, self.destination, remaining):
            self._finish(spoken)

        return self._build_update(True, spoken, notice, request)

    def _snap(self, fix: GpsFix, route: Route) -> SnapResult:
        if self.snap_cache.should_invalidate(fix):
            snap = self.snapper.snap(fix, route.points, self.snap_cache.last_index)
            self.snap_cache.store(snap)
            return snap
        cached = self.snap_cache.snap
        # Reuse the position, refresh the lateral distance for this fix
        return dataclasses.replace(
            cached, distance_to_route=distance_between(fix, cached.closest_point)
        )

    def _finish(self, spoken: List[str]):
        """Arrival: stop tracking and announce once."""
        self._generation += 1
        self._clear_pending()
        self.progress.arrived = True
        self.progress.remaining_distance_m = 0.0
        self.progress.remaining_duration_s = 0.0
        self.progress.distance_to_maneuver_m = 0.0
        self.status = NavigationStatus.ARRIVED

        # Any maneuver prompt from this fix is superseded by the arrival
        spoken.clear()
        if not self.muted:
            if self.destination_name:
                spoken.append(f"You have arrived at {self.destination_name}")
            else:
                spoken.append(ARRIVE_TEXT)
        logger.info("Navigation finished: arrived")

    # ------------------------------------------------------------------
    # Recalculation
    # ------------------------------------------------------------------

    def _request_recalculation(self, fix: GpsFix) -> Optional[RecalculationRequest]:
        if self.destination is None:
            logger.warning("Off route but no destination to route to")
            return None

        request = RecalculationRequest(origin_fix=fix, destination=self.destination)
        self._recalculation_pending = True
        self.status = NavigationStatus.RECALCULATING
        logger.warning(
            "Off route (%.6f, %.6f, %s), requesting new route",
            fix.lat, fix.lon, self.off_route_detector.debug_info(fix.timestamp_ms),
        )

        if self.routing_provider is not None:
            self._fetch_route_async(request)
        return request

    def _fetch_route_async(self, request: RecalculationRequest):
        """Start background thread to fetch a new route."""
        generation = self._generation
        provider = self.routing_provider

        def fetch_in_background():
            route = None
            error = None
            try:
                route = provider.fetch_route(request)
            except Exception as e:
                logger.warning("Route recalculation failed: %s", e)
                route = None
                error = str(e) or e.__class__.__name__

            self._deliver(generation, route, error)

        self._reroute_thread = threading.Thread(target=fetch_in_background, daemon=True)
        self._reroute_thread.start()

    def deliver_route(self, route: Route):
        """
        Hand over a route fetched by an external client for the last
        recalculation request. Applied on the next fix.
        """
        self._deliver(self._generation, route, None)

    def deliver_failure(self, error: str):
        """Report that an externally handled recalculation failed."""
        self._deliver(self._generation, None, error or "unknown error")

    def _deliver(self, generation: int, route: Optional[Route], error: Optional[str]):
        if route is not None and not route.has_geometry:
            logger.warning("Route recalculation returned an empty route")
            route, error = None, "empty route"
        with self._lock:
            if generation != self._generation or self.status is not NavigationStatus.RECALCULATING:
                logger.debug("Discarding re-route result from a stale session")
                return
            self._pending_route = route
            self._pending_error = error

    def _apply_pending_reroute(self, spoken: List[str]) -> Optional[str]:
        """Apply a route (or failure) delivered by the background thread."""
        if self._pending_route is None and self._pending_error is None:
            return None

        route = self._pending_route
        error = self._pending_error
        self._clear_pending()
        self._recalculation_pending = False
        self.status = NavigationStatus.NAVIGATING

        if route is None:
            # Old route stays active; require a fresh confirmation window
            # before asking again
            self.off_route_detector.reset()
            self.progress.off_route = False
            logger.warning("Keeping previous route after failed recalculation: %s", error)
            return NOTICE_RECALCULATION_FAILED

        self._accept_route(route)
        announcement = self._announce_route(RECALCULATED_TEXT)
        if announcement:
            spoken.append(announcement)
        logger.info("Route recalculated: %.0fm, %d steps", route.distance_m, len(route.steps))
        return NOTICE_ROUTE_UPDATED

    def _clear_pending(self):
        self._pending_route = None
        self._pending_error = None
        self._recalculation_pending = False

    def _accept_route(self, route: Route):
        """Swap in a route and reset everything derived from the old one."""
        self.route = route
        if self.destination is None:
            self.destination = route.destination
        self.snap_cache.clear()
        self.off_route_detector.reset()
        self.announcer.reset()

        last_good = self.progress.last_good_fix_ms
        degraded = self.progress.gps_degraded
        self.progress.reset(route)
        self.progress.last_good_fix_ms = last_good
        self.progress.gps_degraded = degraded

        if route.has_geometry:
            length = route.polyline_length_m
            self.progress.remaining_duration_s = remaining_time(
                length, length, route.duration_s, self._traffic_factor
            )
            step = self.step_tracker.locate(route, 0.0)
            self.progress.current_step_index = step.step_index
            self.progress.distance_to_maneuver_m = step.distance_to_maneuver_m
            self.progress.instruction_text = step.instruction_text
        else:
            # Nothing to snap to: report the provider totals and a neutral instruction
            self.progress.remaining_distance_m = route.distance_m
            self.progress.remaining_duration_s = route.duration_s * self._traffic_factor
            self.progress.distance_to_maneuver_m = route.distance_m
            self.progress.instruction_text = CONTINUE_TEXT

    def _announce_route(self, lead: str) -> Optional[str]:
        """Seed the announcer with the first instruction and phrase it."""
        if self.route is None or not self.route.has_geometry:
            return None if self.muted else lead
        text = self.announcer.update(
            self.progress.instruction_text, self.progress.distance_to_maneuver_m
        )
        if text is None:
            return None
        return f"{lead} {text}"

    def _build_update(
        self,
        fix_accepted: bool,
        spoken: Optional[List[str]] = None,
        notice: Optional[str] = None,
        request: Optional[RecalculationRequest] = None,
    ) -> NavigationUpdate:
        p = self.progress
        return NavigationUpdate(
            status=self.status,
            fix_accepted=fix_accepted,
            remaining_distance_m=p.remaining_distance_m,
            remaining_duration_s=p.remaining_duration_s,
            current_step_index=p.current_step_index,
            distance_to_maneuver_m=p.distance_to_maneuver_m,
            instruction_text=p.instruction_text or CONTINUE_TEXT,
            off_route=p.off_route,
            arrived=p.arrived,
            spoken_announcement=" ".join(spoken) if spoken else None,
            gps_degraded=p.gps_degraded,
            notice=notice,
            recalculation_request=request,
        )
