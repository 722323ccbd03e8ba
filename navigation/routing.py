"""Routing provider interface used for recalculation."""

import logging
from typing import Protocol

from .geometry import distance_between
from .models import Route, RouteStep, RecalculationRequest

logger = logging.getLogger('georacing.nav.routing')


class RoutingError(RuntimeError):
    """Routing provider could not produce a route (network error, bad response)."""


class RoutingProvider(Protocol):
    """
    Protocol for routing backends (OSRM client, GraphHopper client, ...).

    Called from a background thread; implementations own their network
    timeouts and raise RoutingError on failure.
    """
    def fetch_route(self, request: RecalculationRequest) -> Route: ...


class DirectRoutingProvider:
    """
    Straight-line routes from origin to destination.

    Used when no routing backend is configured (replay and simulation).
    Duration assumes `speed_mps`.
    """

    def __init__(self, speed_mps: float = 8.3):
        if speed_mps <= 0:
            raise ValueError("speed_mps must be > 0")
        self.speed_mps = speed_mps

    def fetch_route(self, request: RecalculationRequest) -> Route:
        origin = request.origin_fix.coordinate
        destination = request.destination
        distance = distance_between(origin, destination)
        logger.debug("Direct route %.0fm", distance)
        return Route(
            points=(origin, destination),
            distance_m=distance,
            duration_s=distance / self.speed_mps,
            steps=(
                RouteStep('depart', distance_m=distance),
                RouteStep('arrive', distance_m=0.0),
            ),
        )
