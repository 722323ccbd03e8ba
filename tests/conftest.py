"""
Shared pytest fixtures for navigation tests.
"""

import os
import sys
import tempfile

import pytest

# Add project root (and this directory, for fixtures/) to path for imports
TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(TESTS_DIR)
sys.path.insert(0, PROJECT_ROOT)
sys.path.insert(0, TESTS_DIR)

from navigation.models import Route, RouteStep  # noqa: E402
from fixtures.builders import straight_points  # noqa: E402


@pytest.fixture
def scenario_route():
    """500 m northbound route: depart 500 m, then turn-left arrive, 60 s."""
    return Route(
        points=straight_points(500, 50),
        distance_m=500.0,
        duration_s=60.0,
        steps=[
            RouteStep('depart', road_name='Access Road', distance_m=500.0),
            RouteStep('arrive', modifier='left', distance_m=0.0),
        ],
    )


@pytest.fixture
def long_route():
    """2 km northbound route every 20 m with a turn at 1500 m, 240 s."""
    return Route(
        points=straight_points(2000, 20),
        distance_m=2000.0,
        duration_s=240.0,
        steps=[
            RouteStep('depart', road_name='Access Road', distance_m=1500.0),
            RouteStep('turn', modifier='right', road_name='Paddock Lane', distance_m=500.0),
            RouteStep('arrive', distance_m=0.0),
        ],
    )


@pytest.fixture
def stepless_route():
    """Route with geometry but no maneuvers."""
    return Route(points=straight_points(300, 50), distance_m=300.0, duration_s=40.0, steps=[])


@pytest.fixture
def empty_route():
    """Routing result with no geometry."""
    return Route(points=[], distance_m=0.0, duration_s=0.0, steps=[])


@pytest.fixture
def temp_settings_file():
    """Create a temporary settings file for testing SettingsManager."""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
        f.write('{}')
        temp_path = f.name
    yield temp_path
    # Cleanup
    for path in (temp_path, temp_path + '.tmp'):
        if os.path.exists(path):
            os.remove(path)
