"""Progressive voice announcements as a maneuver approaches."""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple

import config

logger = logging.getLogger('georacing.nav.announcer')


class AnnouncementBand(IntEnum):
    """
    Distance bands before a maneuver, ordered by urgency (lower = closer).

    NONE is the state before anything has been spoken for a route.
    """
    NONE = -1
    NOW = 0    # <= 100 m
    M100 = 1   # > 100 m
    M250 = 2   # > 250 m
    M500 = 3   # > 500 m
    KM1 = 4    # > 1000 m

    @classmethod
    def for_distance(cls, distance_m: float) -> 'AnnouncementBand':
        if distance_m > config.ANNOUNCE_BAND_KM1_M:
            return cls.KM1
        if distance_m > config.ANNOUNCE_BAND_M500_M:
            return cls.M500
        if distance_m > config.ANNOUNCE_BAND_M250_M:
            return cls.M250
        if distance_m > config.ANNOUNCE_BAND_M100_M:
            return cls.M100
        return cls.NOW

    @property
    def prefix(self) -> str:
        return BAND_PREFIXES[self]


BAND_PREFIXES = {
    AnnouncementBand.NONE: "",
    AnnouncementBand.NOW: "",
    AnnouncementBand.M100: "In 100 metres, ",
    AnnouncementBand.M250: "In 250 metres, ",
    AnnouncementBand.M500: "In 500 metres, ",
    AnnouncementBand.KM1: "In one kilometre, ",
}


@dataclass(frozen=True)
class AnnouncerState:
    """Last band spoken (or silently passed) and the instruction it was for."""
    last_band: AnnouncementBand = AnnouncementBand.NONE
    last_instruction: Optional[str] = None


def transition(
    state: AnnouncerState,
    band: AnnouncementBand,
    instruction: str,
) -> Tuple[AnnouncerState, bool]:
    """
    Advance the announcement state machine.

    Speaks when the band drops below the last band (getting closer) or the
    instruction changed (a new maneuver became current). A band above the
    last one (distance grew, e.g. after a detour) is adopted silently so a
    stale announcement is not repeated.

    Returns:
        (new_state, speak)
    """
    if band < state.last_band or instruction != state.last_instruction:
        return AnnouncerState(band, instruction), True
    if band > state.last_band:
        return AnnouncerState(band, state.last_instruction), False
    return state, False


def compose(band: AnnouncementBand, instruction: str) -> str:
    """Spoken text for an instruction in a band ("In 500 metres, turn left")."""
    prefix = band.prefix
    if prefix and instruction:
        instruction = instruction[0].lower() + instruction[1:]
    return prefix + instruction


class ProgressiveAnnouncer:
    """
    Decides when to (re-)speak the current instruction.

    The state machine always advances, muted or not; muting only
    suppresses the returned text. Unmuting mid-route therefore never
    repeats a band that was passed while muted.
    """

    def __init__(self, muted: bool = config.VOICE_MUTED_DEFAULT):
        self.muted = muted
        self._state = AnnouncerState()

    @property
    def state(self) -> AnnouncerState:
        return self._state

    def update(self, instruction: str, distance_to_maneuver_m: float) -> Optional[str]:
        """
        Feed the current instruction and distance.

        Returns:
            Text to speak now, or None
        """
        band = AnnouncementBand.for_distance(distance_to_maneuver_m)
        self._state, speak = transition(self._state, band, instruction)
        if not speak:
            return None

        text = compose(band, instruction)
        if self.muted:
            logger.debug("Muted: %s", text)
            return None
        logger.debug("Announce: %s", text)
        return text

    def reset(self):
        """Forget announced bands (new route)."""
        self._state = AnnouncerState()
