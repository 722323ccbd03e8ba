"""
Route loader - builds Route objects from routing provider responses.

Supports:
- The plain route contract ({points, distanceMeters, durationSeconds, steps})
- OSRM route/v1 responses (encoded polyline or GeoJSON geometry)
- JSON files in either shape
"""

import json
import logging
from typing import Any, Dict, List, Optional

import polyline

from .models import Route, RouteStep

logger = logging.getLogger('georacing.nav.routes')

# OSRM is queried with geometries=polyline6
OSRM_POLYLINE_PRECISION = 6


class RouteParseError(ValueError):
    """Raised when routing data is missing or malformed."""


def _first(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Value of the first key present (camelCase and snake_case spellings)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _parse_point(raw: Any):
    if isinstance(raw, dict):
        return float(raw['lat']), float(_first(raw, 'lon', 'lng'))
    return float(raw[0]), float(raw[1])


def _parse_exit(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    return int(raw)


def parse_step(raw: Dict[str, Any]) -> RouteStep:
    """Parse one step of the plain route contract."""
    return RouteStep(
        maneuver_type=str(_first(raw, 'type', 'maneuver_type', default='continue')),
        modifier=str(_first(raw, 'modifier', default='')),
        road_name=str(_first(raw, 'roadName', 'road_name', default='')),
        distance_m=float(_first(raw, 'distanceMeters', 'distance_m', default=0.0)),
        exit_ordinal=_parse_exit(_first(raw, 'exitOrdinal', 'exit_ordinal')),
    )


def route_from_dict(data: Dict[str, Any]) -> Route:
    """
    Build a Route from the plain route contract.

    Args:
        data: {points: [(lat, lon)...], distanceMeters, durationSeconds,
            steps: [{type, modifier, roadName, distanceMeters, exitOrdinal?}]}.
            snake_case keys (distance_m, duration_s, road_name, ...) are
            accepted too. Empty points and steps are allowed.

    Returns:
        Route

    Raises:
        RouteParseError: If a field has the wrong type
    """
    try:
        points = [_parse_point(p) for p in data.get('points') or []]
        steps = [parse_step(s) for s in data.get('steps') or []]
        distance = float(_first(data, 'distanceMeters', 'distance_m', default=0.0))
        duration = float(_first(data, 'durationSeconds', 'duration_s', default=0.0))
    except (TypeError, ValueError, KeyError, IndexError) as e:
        raise RouteParseError(f"Malformed route data: {e}") from e

    route = Route(points=points, distance_m=distance, duration_s=duration, steps=steps)
    logger.debug(
        "Route parsed: %d points, %d steps, %.0fm, %.0fs",
        len(route.points), len(route.steps), distance, duration,
    )
    return route


def _decode_geometry(geometry: Any, precision: int) -> List:
    """OSRM geometry (encoded polyline string or GeoJSON LineString) to (lat, lon) list."""
    if isinstance(geometry, str):
        return polyline.decode(geometry, precision)
    if isinstance(geometry, dict) and geometry.get('type') == 'LineString':
        # GeoJSON is [lon, lat]
        return [(float(c[1]), float(c[0])) for c in geometry['coordinates']]
    raise RouteParseError(f"Unsupported geometry: {type(geometry).__name__}")


def _parse_osrm_step(raw: Dict[str, Any]) -> RouteStep:
    maneuver = raw.get('maneuver') or {}
    return RouteStep(
        maneuver_type=str(maneuver.get('type', 'continue')),
        modifier=str(maneuver.get('modifier') or ''),
        road_name=str(raw.get('name') or ''),
        distance_m=float(raw.get('distance', 0.0)),
        exit_ordinal=_parse_exit(maneuver.get('exit')),
    )


def route_from_osrm(response: Dict[str, Any], precision: int = OSRM_POLYLINE_PRECISION) -> Route:
    """
    Build a Route from an OSRM route/v1 response (first route, all legs).

    Args:
        response: Decoded JSON response
        precision: Encoded polyline precision (6 for polyline6, 5 for polyline)

    Raises:
        RouteParseError: If the response is an error or has no route
    """
    code = response.get('code')
    if code is not None and code != 'Ok':
        raise RouteParseError(f"Routing error: {code} {response.get('message', '')}".strip())

    routes = response.get('routes') or []
    if not routes:
        raise RouteParseError("Response contains no routes")
    best = routes[0]

    try:
        points = _decode_geometry(best.get('geometry', ''), precision)
        steps = [
            _parse_osrm_step(step)
            for leg in best.get('legs') or []
            for step in leg.get('steps') or []
        ]
        route = Route(
            points=points,
            distance_m=float(best.get('distance', 0.0)),
            duration_s=float(best.get('duration', 0.0)),
            steps=steps,
        )
    except (TypeError, ValueError, KeyError, IndexError) as e:
        raise RouteParseError(f"Malformed OSRM route: {e}") from e

    logger.info(
        "OSRM route: %.0fm, %.0fs, %d points, %d steps",
        route.distance_m, route.duration_s, len(route.points), len(route.steps),
    )
    return route


def route_from_json(data: Dict[str, Any]) -> Route:
    """Build a Route from either supported JSON shape."""
    if 'routes' in data:
        return route_from_osrm(data)
    return route_from_dict(data)


def load_route_file(path: str) -> Route:
    """
    Load a route from a JSON file.

    Raises:
        RouteParseError: If the file is not valid JSON or not a route
        OSError: If the file cannot be read
    """
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise RouteParseError(f"Invalid route file {path}: {e}") from e
    if not isinstance(data, dict):
        raise RouteParseError(f"Invalid route file {path}: expected an object")
    return route_from_json(data)
