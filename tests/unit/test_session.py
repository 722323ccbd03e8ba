"""
Unit tests for NavigationSession.
Drives the full per-fix pipeline with synthetic fixes; re-routes use an
in-process provider whose completion the test controls.
"""

import dataclasses
import threading

import pytest

from navigation.arrival import ArrivalDetector
from navigation.geometry import point_along_bearing
from navigation.instructions import ARRIVE_TEXT, CONTINUE_TEXT
from navigation.models import GpsFix, NavigationStatus, Route, RouteStep
from navigation.routing import RoutingError
from navigation.session import (
    NOTICE_GPS_DEGRADED,
    NOTICE_RECALCULATING,
    NOTICE_RECALCULATION_FAILED,
    NOTICE_ROUTE_UPDATED,
    RECALCULATING_TEXT,
    NavigationSession,
)
from fixtures.builders import T0_MS, make_fix, offset_point, straight_points


class GatedProvider:
    """Routing provider that blocks until released, then returns or fails."""

    def __init__(self, route=None, error=None):
        self.route = route
        self.error = error
        self.release = threading.Event()
        self.calls = []

    def fetch_route(self, request):
        self.calls.append(request)
        self.release.wait(5)
        if self.error:
            raise RoutingError(self.error)
        return self.route


@pytest.fixture
def detour_route(scenario_route):
    """Replacement route starting 200 m east of the scenario midpoint."""
    start = offset_point(scenario_route.points[5], 200)
    return Route(
        points=straight_points(300, 50, origin=start),
        distance_m=300.0,
        duration_s=40.0,
        steps=[
            RouteStep('depart', road_name='Service Road', distance_m=300.0),
            RouteStep('arrive', distance_m=0.0),
        ],
    )


def drive_off_route(session, route, seconds=4, start_ms=T0_MS):
    """Fixes 200 m east of the route midpoint, one per second."""
    off = offset_point(route.points[5], 200)
    return [
        session.process_fix(make_fix(off, t_ms=start_ms + i * 1000))
        for i in range(seconds)
    ]


class TestTracking:
    """Tests for per-fix outputs on a route."""

    @pytest.mark.unit
    def test_scenario_midpoint(self, scenario_route):
        """Halfway along a 500 m / 60 s route."""
        session = NavigationSession()
        session.start(scenario_route)
        update = session.process_fix(make_fix(scenario_route.points[5]))

        assert update.fix_accepted
        assert update.status == NavigationStatus.NAVIGATING
        assert update.remaining_distance_m == pytest.approx(250, abs=0.5)
        assert update.remaining_duration_s == pytest.approx(30, abs=0.1)
        assert update.current_step_index == 0
        assert update.distance_to_maneuver_m == pytest.approx(250, abs=0.5)
        assert update.instruction_text == "Your destination is on the left"
        assert not update.off_route
        assert not update.arrived

    @pytest.mark.unit
    def test_start_announces_route(self, scenario_route):
        session = NavigationSession()
        spoken = session.start(scenario_route)
        assert spoken.startswith("Route calculated.")
        assert session.snapshot().spoken_announcement == spoken
        assert session.snapshot().remaining_distance_m == pytest.approx(500, abs=0.5)

    @pytest.mark.unit
    def test_remaining_distance_non_increasing(self, long_route):
        session = NavigationSession()
        session.start(long_route)
        remaining = [
            session.process_fix(make_fix(point, t_ms=T0_MS + i * 1000)).remaining_distance_m
            for i, point in enumerate(long_route.points[:60:3])
        ]
        assert all(later <= earlier for earlier, later in zip(remaining, remaining[1:]))

    @pytest.mark.unit
    def test_step_advances_past_turn(self, long_route):
        """Crossing the turn boundary moves to the arrival step."""
        session = NavigationSession()
        session.start(long_route)
        t = T0_MS
        for point in long_route.points[0:80:5]:
            session.process_fix(make_fix(point, t_ms=t))
            t += 1000
        update = session.process_fix(make_fix(long_route.points[80], t_ms=t))
        assert update.current_step_index == 1
        assert update.instruction_text == "Arrive at your destination"

    @pytest.mark.unit
    def test_rejected_fix_leaves_outputs_unchanged(self, scenario_route):
        """An 80 m accuracy fix is ignored."""
        session = NavigationSession()
        session.start(scenario_route)
        before = session.process_fix(make_fix(scenario_route.points[5]))
        after = session.process_fix(
            make_fix(scenario_route.points[8], t_ms=T0_MS + 1000, accuracy_m=80)
        )

        assert not after.fix_accepted
        assert after.remaining_distance_m == before.remaining_distance_m
        assert after.remaining_duration_s == before.remaining_duration_s
        assert after.current_step_index == before.current_step_index

    @pytest.mark.unit
    def test_traffic_factor_scales_eta(self, scenario_route):
        session = NavigationSession(traffic_factor=2.0)
        session.start(scenario_route)
        update = session.process_fix(make_fix(scenario_route.points[5]))
        assert update.remaining_duration_s == pytest.approx(60, abs=0.2)

    @pytest.mark.unit
    def test_traffic_factor_below_one_rejected(self):
        with pytest.raises(ValueError):
            NavigationSession(traffic_factor=0.5)
        session = NavigationSession()
        with pytest.raises(ValueError):
            session.set_traffic_factor(0.99)
        assert session.traffic_factor == 1.0

    @pytest.mark.unit
    def test_fix_before_start_is_ignored(self, scenario_route):
        update = NavigationSession().process_fix(make_fix(scenario_route.points[0]))
        assert not update.fix_accepted
        assert update.status == NavigationStatus.INACTIVE

    @pytest.mark.unit
    def test_smoothing_enabled_still_tracks(self, scenario_route):
        session = NavigationSession(smoothing=True)
        session.start(scenario_route)
        update = None
        for i, point in enumerate(scenario_route.points[:6]):
            update = session.process_fix(make_fix(point, t_ms=T0_MS + i * 1000, speed_mps=50))
        assert update.fix_accepted
        assert update.remaining_distance_m == pytest.approx(250, abs=20)


class TestDegenerateRoutes:
    """Tests for routes without geometry or steps."""

    @pytest.mark.unit
    def test_empty_route(self, empty_route, scenario_route):
        """No geometry: no crash, neutral instruction."""
        session = NavigationSession()
        session.start(empty_route)
        update = session.process_fix(make_fix(scenario_route.points[0]))
        assert update.fix_accepted
        assert update.instruction_text == CONTINUE_TEXT
        assert update.remaining_distance_m == 0.0
        assert not update.arrived

    @pytest.mark.unit
    def test_stepless_route(self, stepless_route):
        session = NavigationSession()
        session.start(stepless_route)
        update = session.process_fix(make_fix(stepless_route.points[2]))
        assert update.instruction_text == CONTINUE_TEXT
        assert update.current_step_index == 0
        assert update.distance_to_maneuver_m == pytest.approx(200, abs=0.5)
        assert update.remaining_distance_m == pytest.approx(200, abs=0.5)


class TestArrival:
    """Tests for one-shot arrival."""

    @pytest.mark.unit
    def test_arrival_announced_once(self, scenario_route):
        session = NavigationSession()
        session.start(scenario_route)
        session.process_fix(make_fix(scenario_route.points[5]))

        destination = scenario_route.points[-1]
        updates = [
            session.process_fix(make_fix(destination, t_ms=T0_MS + i * 1000))
            for i in range(1, 5)
        ]

        first = updates[0]
        assert first.arrived
        assert first.status == NavigationStatus.ARRIVED
        assert first.spoken_announcement == ARRIVE_TEXT
        assert first.remaining_distance_m == 0.0
        assert first.remaining_duration_s == 0.0

        for later in updates[1:]:
            assert later.arrived
            assert later.spoken_announcement is None
            assert not later.fix_accepted

    @pytest.mark.unit
    def test_arrival_uses_destination_name(self, scenario_route):
        session = NavigationSession()
        session.start(scenario_route, destination_name="Paddock Club")
        update = session.process_fix(make_fix(scenario_route.points[-1]))
        assert update.spoken_announcement == "You have arrived at Paddock Club"

    @pytest.mark.unit
    def test_muted_arrival_is_silent(self, scenario_route):
        session = NavigationSession(muted=True)
        assert session.start(scenario_route) is None
        update = session.process_fix(make_fix(scenario_route.points[-1]))
        assert update.arrived
        assert update.spoken_announcement is None

    @pytest.mark.unit
    def test_arrival_on_remaining_distance(self, scenario_route):
        """40 m short of the end, outside the radius, arrives on route distance."""
        session = NavigationSession(arrival_detector=ArrivalDetector(remaining_threshold_m=50))
        session.start(scenario_route)
        start = scenario_route.points[0]
        update = session.process_fix(make_fix(point_along_bearing(start.lat, start.lon, 0.0, 460.0)))
        assert update.arrived
        assert update.status == NavigationStatus.ARRIVED
        assert update.remaining_distance_m == 0.0


class TestRecalculation:
    """Tests for off-route re-routing."""

    @pytest.mark.unit
    def test_dispatch_after_confirmation_window(self, scenario_route, detour_route):
        provider = GatedProvider(route=detour_route)
        session = NavigationSession(routing_provider=provider)
        session.start(scenario_route)

        updates = drive_off_route(session, scenario_route, seconds=4)
        assert [u.recalculation_request is not None for u in updates] == [False, False, False, True]

        dispatched = updates[-1]
        assert dispatched.off_route
        assert dispatched.status == NavigationStatus.RECALCULATING
        assert dispatched.notice == NOTICE_RECALCULATING
        assert RECALCULATING_TEXT in dispatched.spoken_announcement
        assert dispatched.recalculation_request.destination == scenario_route.destination

        provider.release.set()
        assert session.wait_for_reroute(timeout=5)

    @pytest.mark.unit
    def test_single_request_in_flight(self, scenario_route, detour_route):
        """Still off route while waiting: no second request."""
        provider = GatedProvider(route=detour_route)
        session = NavigationSession(routing_provider=provider)
        session.start(scenario_route)

        updates = drive_off_route(session, scenario_route, seconds=7)
        requests = [u for u in updates if u.recalculation_request is not None]
        assert len(requests) == 1
        assert session.route is scenario_route

        provider.release.set()
        assert session.wait_for_reroute(timeout=5)
        assert len(provider.calls) == 1

    @pytest.mark.unit
    def test_new_route_applied_on_next_fix(self, scenario_route, detour_route):
        provider = GatedProvider(route=detour_route)
        session = NavigationSession(routing_provider=provider)
        session.start(scenario_route)
        drive_off_route(session, scenario_route, seconds=4)

        provider.release.set()
        assert session.wait_for_reroute(timeout=5)
        assert session.route is scenario_route

        update = session.process_fix(make_fix(detour_route.points[1], t_ms=T0_MS + 5000))
        assert session.route is detour_route
        assert update.notice == NOTICE_ROUTE_UPDATED
        assert update.status == NavigationStatus.NAVIGATING
        assert not update.off_route
        assert update.remaining_distance_m == pytest.approx(250, abs=0.5)
        assert update.spoken_announcement.startswith("Route recalculated.")

    @pytest.mark.unit
    def test_failure_keeps_route(self, scenario_route):
        provider = GatedProvider(error="network unreachable")
        session = NavigationSession(routing_provider=provider)
        session.start(scenario_route)
        drive_off_route(session, scenario_route, seconds=4)

        provider.release.set()
        assert session.wait_for_reroute(timeout=5)

        update = drive_off_route(session, scenario_route, seconds=1, start_ms=T0_MS + 5000)[0]
        assert session.route is scenario_route
        assert update.notice == NOTICE_RECALCULATION_FAILED
        assert update.status == NavigationStatus.NAVIGATING
        assert not update.off_route

    @pytest.mark.unit
    def test_failure_requires_new_window_before_retry(self, scenario_route):
        provider = GatedProvider(error="timeout")
        provider.release.set()
        session = NavigationSession(routing_provider=provider)
        session.start(scenario_route)
        drive_off_route(session, scenario_route, seconds=4)
        assert session.wait_for_reroute(timeout=5)

        updates = drive_off_route(session, scenario_route, seconds=4, start_ms=T0_MS + 5000)
        assert [u.recalculation_request is not None for u in updates] == [False, False, False, True]
        assert session.wait_for_reroute(timeout=5)
        assert len(provider.calls) == 2

    @pytest.mark.unit
    def test_empty_route_result_is_a_failure(self, scenario_route, empty_route):
        provider = GatedProvider(route=empty_route)
        provider.release.set()
        session = NavigationSession(routing_provider=provider)
        session.start(scenario_route)
        drive_off_route(session, scenario_route, seconds=4)
        assert session.wait_for_reroute(timeout=5)

        update = session.process_fix(make_fix(scenario_route.points[5], t_ms=T0_MS + 5000))
        assert update.notice == NOTICE_RECALCULATION_FAILED
        assert session.route is scenario_route

    @pytest.mark.unit
    def test_stop_discards_late_result(self, scenario_route, detour_route):
        """A route arriving after stop() is never applied."""
        provider = GatedProvider(route=detour_route)
        session = NavigationSession(routing_provider=provider)
        session.start(scenario_route)
        drive_off_route(session, scenario_route, seconds=4)

        session.stop()
        provider.release.set()
        assert session.wait_for_reroute(timeout=5)

        update = session.process_fix(make_fix(detour_route.points[1], t_ms=T0_MS + 5000))
        assert session.route is None
        assert update.status == NavigationStatus.INACTIVE
        assert not update.fix_accepted

    @pytest.mark.unit
    def test_external_delivery_without_provider(self, scenario_route, detour_route):
        """Without a provider the caller fetches and hands over the route."""
        session = NavigationSession()
        session.start(scenario_route)
        updates = drive_off_route(session, scenario_route, seconds=4)
        assert updates[-1].recalculation_request is not None

        session.deliver_route(detour_route)
        update = session.process_fix(make_fix(detour_route.points[1], t_ms=T0_MS + 5000))
        assert session.route is detour_route
        assert update.notice == NOTICE_ROUTE_UPDATED

    @pytest.mark.unit
    def test_rejoining_without_provider(self, scenario_route):
        """Driving back onto the route clears the off-route state."""
        session = NavigationSession()
        session.start(scenario_route)
        drive_off_route(session, scenario_route, seconds=4)
        update = session.process_fix(make_fix(scenario_route.points[6], t_ms=T0_MS + 5000))
        assert not update.off_route
        assert update.status == NavigationStatus.NAVIGATING
        assert not session.recalculating


class TestGpsDegradation:
    """Tests for stale GPS handling."""

    @pytest.mark.unit
    def test_degraded_after_timeout(self, scenario_route):
        session = NavigationSession()
        session.start(scenario_route)
        good = session.process_fix(make_fix(scenario_route.points[2]))

        early = session.process_fix(make_fix(scenario_route.points[3], t_ms=T0_MS + 5000, accuracy_m=80))
        assert not early.gps_degraded

        late = session.process_fix(make_fix(scenario_route.points[4], t_ms=T0_MS + 11000, accuracy_m=80))
        assert late.gps_degraded
        assert late.notice == NOTICE_GPS_DEGRADED
        assert late.remaining_distance_m == good.remaining_distance_m

        recovered = session.process_fix(make_fix(scenario_route.points[4], t_ms=T0_MS + 12000))
        assert not recovered.gps_degraded
        assert recovered.remaining_distance_m < good.remaining_distance_m

    @pytest.mark.unit
    def test_check_staleness_without_fixes(self, scenario_route):
        session = NavigationSession()
        session.start(scenario_route)
        session.process_fix(make_fix(scenario_route.points[2]))

        assert not session.check_staleness(T0_MS + 5000)
        assert session.check_staleness(T0_MS + 10_001)
        assert session.snapshot().gps_degraded

    @pytest.mark.unit
    def test_check_idle_uses_gap_only(self, scenario_route):
        """An idle gap is judged on its length, whatever the fix clock says."""
        session = NavigationSession()
        session.start(scenario_route)
        session.process_fix(make_fix(scenario_route.points[2], t_ms=T0_MS - 20_000))

        assert not session.check_idle(9_000)
        assert session.check_idle(10_001)
        assert session.snapshot().notice == NOTICE_GPS_DEGRADED
        assert not session.check_idle(0)
        assert not session.snapshot().gps_degraded

    @pytest.mark.unit
    def test_nan_fix_is_rejected(self, scenario_route):
        """A fix with a NaN coordinate is dropped, outputs unchanged."""
        session = NavigationSession()
        session.start(scenario_route)
        before = session.process_fix(make_fix(scenario_route.points[5]))

        update = session.process_fix(
            GpsFix(lat=float("nan"), lon=scenario_route.points[5].lon, timestamp_ms=T0_MS + 1000)
        )
        assert not update.fix_accepted
        assert update.remaining_distance_m == before.remaining_distance_m

    @pytest.mark.unit
    def test_out_of_order_fix_is_rejected(self, scenario_route):
        session = NavigationSession()
        session.start(scenario_route)
        session.process_fix(make_fix(scenario_route.points[5], t_ms=T0_MS + 5000))
        update = session.process_fix(make_fix(scenario_route.points[8], t_ms=T0_MS + 4000))
        assert not update.fix_accepted


class TestSnapshots:
    """Tests for immutable outputs and session isolation."""

    @pytest.mark.unit
    def test_snapshot_is_last_update(self, scenario_route):
        session = NavigationSession()
        session.start(scenario_route)
        update = session.process_fix(make_fix(scenario_route.points[5]))
        assert session.snapshot() is update
        with pytest.raises(dataclasses.FrozenInstanceError):
            update.remaining_distance_m = 0.0

    @pytest.mark.unit
    def test_sessions_are_independent(self, scenario_route):
        a = NavigationSession()
        b = NavigationSession()
        a.start(scenario_route)
        b.start(scenario_route)

        a.process_fix(make_fix(scenario_route.points[8]))
        b.process_fix(make_fix(scenario_route.points[2]))

        assert a.snapshot().remaining_distance_m == pytest.approx(100, abs=0.5)
        assert b.snapshot().remaining_distance_m == pytest.approx(400, abs=0.5)
