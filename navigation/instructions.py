"""Maneuver to instruction text conversion."""

from typing import Optional

from .models import RouteStep

CONTINUE_TEXT = "Continue along the route"
ARRIVE_TEXT = "You have arrived at your destination"

TURN_PHRASES = {
    'left': "Turn left",
    'right': "Turn right",
    'slight left': "Bear left",
    'slight right': "Bear right",
    'sharp left': "Turn sharp left",
    'sharp right': "Turn sharp right",
    'uturn': "Make a U-turn",
    'straight': "Continue straight",
}

ORDINALS = {
    1: "first", 2: "second", 3: "third", 4: "fourth", 5: "fifth",
    6: "sixth", 7: "seventh", 8: "eighth", 9: "ninth", 10: "tenth",
}


def exit_ordinal_text(exit_number: int) -> str:
    """Spoken ordinal for a roundabout exit ("third", "12th")."""
    if exit_number in ORDINALS:
        return ORDINALS[exit_number]
    if 10 <= exit_number % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(exit_number % 10, "th")
    return f"{exit_number}{suffix}"


def _road(step: RouteStep) -> str:
    name = step.road_name.strip()
    if not name or name.lower() == "unknown":
        return ""
    return name


def instruction_text(step: Optional[RouteStep]) -> str:
    """
    Human readable instruction for a maneuver.

    Returns the neutral continue text when there is no step.
    """
    if step is None:
        return CONTINUE_TEXT

    road = _road(step)
    onto = f" onto {road}" if road else ""
    kind = step.maneuver_type

    if kind == 'arrive':
        if step.modifier in ('left', 'right', 'slight left', 'slight right', 'sharp left', 'sharp right'):
            side = step.modifier.split()[-1]
            return f"Your destination is on the {side}"
        return "Arrive at your destination"
    if kind == 'depart':
        return f"Head off{onto}" if road else "Start the route"
    if kind in ('roundabout', 'rotary'):
        if step.exit_ordinal and step.exit_ordinal > 0:
            return f"At the roundabout, take the {exit_ordinal_text(step.exit_ordinal)} exit{onto}"
        if road:
            return f"At the roundabout, take the exit{onto}"
        return "At the roundabout, continue straight"
    if kind == 'continue':
        return f"Continue straight{onto}"
    if kind in ('turn', 'end of road', 'fork', 'merge', 'on ramp', 'off ramp', 'new name'):
        phrase = TURN_PHRASES.get(step.modifier)
        if phrase:
            return f"{phrase}{onto}"
        return f"Continue{onto}"

    if road:
        return f"Continue on {road}"
    return CONTINUE_TEXT
