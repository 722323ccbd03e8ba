"""
Unit tests for GPS geometry calculations.
Tests pure functions from navigation/geometry.py with no mocking required.
"""

import pytest

from navigation.geometry import (
    bearing,
    cumulative_distances,
    distance_between,
    haversine_distance,
    interpolate,
    point_along_bearing,
    project_onto_segment,
    segment_lengths,
)
from navigation.models import Coordinate
from fixtures.builders import straight_points
from fixtures.route_test_data import CIRCUIT_ORIGIN, PARKING_P5


class TestHaversineDistance:
    """Tests for great circle distance calculation."""

    @pytest.mark.unit
    def test_same_point_zero_distance(self):
        """Test that distance from a point to itself is zero."""
        lat, lon = CIRCUIT_ORIGIN
        assert haversine_distance(lat, lon, lat, lon) == 0

    @pytest.mark.unit
    def test_short_distance(self):
        """Test a short distance (~100 metres north)."""
        result = haversine_distance(41.5700, 2.2611, 41.5709, 2.2611)
        assert 95 < result < 105

    @pytest.mark.unit
    def test_circuit_scale_distance(self):
        """Entrance to P5 is roughly 1.2 km."""
        result = haversine_distance(*CIRCUIT_ORIGIN, *PARKING_P5)
        assert 1100 < result < 1300

    @pytest.mark.unit
    def test_symmetry(self):
        """Test that distance A->B equals distance B->A."""
        ab = haversine_distance(*CIRCUIT_ORIGIN, *PARKING_P5)
        ba = haversine_distance(*PARKING_P5, *CIRCUIT_ORIGIN)
        assert ab == pytest.approx(ba, rel=1e-12)

    @pytest.mark.unit
    def test_distance_between_accepts_tuples_and_coordinates(self):
        """Point-like helper gives the same answer for both point types."""
        a = Coordinate(*CIRCUIT_ORIGIN)
        assert distance_between(a, PARKING_P5) == pytest.approx(
            haversine_distance(*CIRCUIT_ORIGIN, *PARKING_P5)
        )


class TestSegmentLengths:
    """Tests for the vectorised polyline segment lengths."""

    @pytest.mark.unit
    def test_matches_scalar_haversine(self):
        """Each vectorised length equals the scalar haversine."""
        points = [CIRCUIT_ORIGIN, (41.5705, 2.2615), PARKING_P5]
        lengths = segment_lengths(points)
        assert len(lengths) == 2
        assert lengths[0] == pytest.approx(haversine_distance(*points[0], *points[1]), rel=1e-9)
        assert lengths[1] == pytest.approx(haversine_distance(*points[1], *points[2]), rel=1e-9)

    @pytest.mark.unit
    def test_fewer_than_two_points(self):
        """No segments for 0 or 1 points."""
        assert len(segment_lengths([])) == 0
        assert len(segment_lengths([CIRCUIT_ORIGIN])) == 0

    @pytest.mark.unit
    def test_cumulative_distances(self):
        """Cumulative distances start at zero and grow by the spacing."""
        points = straight_points(200, 50)
        cumulative = cumulative_distances(points)
        assert len(cumulative) == 5
        assert cumulative[0] == 0.0
        assert cumulative[-1] == pytest.approx(200.0, abs=0.01)
        assert all(b > a for a, b in zip(cumulative, cumulative[1:]))

    @pytest.mark.unit
    def test_cumulative_empty(self):
        assert len(cumulative_distances([])) == 0


class TestBearing:
    """Tests for bearing and destination point helpers."""

    @pytest.mark.unit
    def test_cardinal_directions(self):
        """North is 0, east is 90."""
        lat, lon = CIRCUIT_ORIGIN
        assert bearing(lat, lon, lat + 0.01, lon) == pytest.approx(0.0, abs=0.01)
        assert bearing(lat, lon, lat, lon + 0.01) == pytest.approx(90.0, abs=0.1)

    @pytest.mark.unit
    def test_point_along_bearing_distance(self):
        """Point projected 250 m away is 250 m away."""
        lat, lon = point_along_bearing(*CIRCUIT_ORIGIN, 45.0, 250.0)
        assert haversine_distance(*CIRCUIT_ORIGIN, lat, lon) == pytest.approx(250.0, abs=0.01)

    @pytest.mark.unit
    def test_interpolate_midpoint(self):
        mid = interpolate((0.0, 0.0), (2.0, 4.0), 0.5)
        assert mid == (1.0, 2.0)


class TestProjectOntoSegment:
    """Tests for orthogonal projection onto a segment."""

    @pytest.mark.unit
    def test_point_beside_midpoint(self):
        """A point abeam the middle projects to fraction 0.5."""
        start, end = straight_points(100, 100)
        mid = point_along_bearing(*CIRCUIT_ORIGIN, 0.0, 50.0)
        beside = point_along_bearing(*mid, 90.0, 20.0)

        projected, fraction = project_onto_segment(beside, start, end)
        assert fraction == pytest.approx(0.5, abs=0.01)
        assert haversine_distance(*projected, *mid) < 1.0

    @pytest.mark.unit
    def test_clamped_before_start(self):
        """Points behind the start clamp to fraction 0."""
        start, end = straight_points(100, 100)
        behind = point_along_bearing(*CIRCUIT_ORIGIN, 180.0, 30.0)
        projected, fraction = project_onto_segment(behind, start, end)
        assert fraction == 0.0
        assert projected == pytest.approx(start)

    @pytest.mark.unit
    def test_clamped_past_end(self):
        """Points beyond the end clamp to fraction 1."""
        start, end = straight_points(100, 100)
        beyond = point_along_bearing(*CIRCUIT_ORIGIN, 0.0, 150.0)
        projected, fraction = project_onto_segment(beyond, start, end)
        assert fraction == 1.0
        assert projected == pytest.approx(end)

    @pytest.mark.unit
    def test_degenerate_segment(self):
        """Zero-length segment returns its start."""
        projected, fraction = project_onto_segment(PARKING_P5, CIRCUIT_ORIGIN, CIRCUIT_ORIGIN)
        assert projected == CIRCUIT_ORIGIN
        assert fraction == 0.0

    @pytest.mark.unit
    def test_accepts_coordinates(self):
        """Coordinate objects work as well as tuples."""
        start, end = (Coordinate(*p) for p in straight_points(100, 100))
        _, fraction = project_onto_segment(Coordinate(*CIRCUIT_ORIGIN), start, end)
        assert fraction == 0.0
