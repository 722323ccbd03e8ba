"""ETA calculation from remaining distance and a traffic multiplier."""

import math


def remaining_time(
    remaining_distance: float,
    total_distance: float,
    total_duration: float,
    traffic_factor: float = 1.0,
) -> float:
    """
    Traffic-adjusted remaining time in seconds.

    Scales the route's total duration by the fraction of distance left and
    by the external traffic factor, which is applied as-is.

    Args:
        remaining_distance: Meters left along the route
        total_distance: Route length in meters
        total_duration: Route duration in seconds
        traffic_factor: Multiplier from the crowd/traffic signal (>= 1.0)

    Returns:
        Seconds remaining, 0.0 for a zero-length route
    """
    if total_distance <= 0:
        return 0.0
    return total_duration * (remaining_distance / total_distance) * traffic_factor


def arrival_timestamp_ms(remaining_s: float, now_ms: int) -> int:
    """Estimated arrival time in epoch milliseconds."""
    return now_ms + int(round(remaining_s * 1000))


def format_duration(seconds: float) -> str:
    """
    Human readable duration for the ETA display.

    Rounded up to whole minutes: "1 min", "45 min", "1 h 30 min", "2 h",
    "1 d 3 h".
    """
    minutes = max(0, int(math.ceil(seconds / 60.0)))
    if minutes < 60:
        return f"{minutes} min"

    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours} h {minutes} min" if minutes else f"{hours} h"

    days, hours = divmod(hours, 24)
    return f"{days} d {hours} h" if hours else f"{days} d"


def format_distance(meters: float) -> str:
    """Distance for the maneuver panel: "80 m", "400 m", "1.2 km"."""
    if meters < 100:
        return f"{int(meters)} m"
    if meters < 1000:
        return f"{int(meters // 100) * 100} m"
    return f"{meters / 1000:.1f} km"
