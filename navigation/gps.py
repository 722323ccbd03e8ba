"""GPS interface reading NMEA fixes from a serial receiver."""

import logging
import time
from datetime import datetime, timezone
from typing import Optional, Protocol

import serial

import config
from .models import GpsFix

logger = logging.getLogger('georacing.nav.gps')

KNOTS_TO_MPS = 0.514444


class GPSInterface(Protocol):
    """Protocol for location sources."""
    def connect(self) -> None: ...
    def disconnect(self) -> None: ...
    def read_fix(self) -> Optional[GpsFix]: ...


def nmea_checksum(body: str) -> str:
    """XOR checksum of the characters between '$' and '*', as two hex digits."""
    checksum = 0
    for char in body:
        checksum ^= ord(char)
    return f"{checksum:02X}"


def strip_checksum(sentence: str) -> Optional[str]:
    """
    Validate and strip the checksum of an NMEA sentence.

    Returns:
        Sentence without '$' and '*hh', or None if the checksum is wrong.
        Sentences without a checksum are accepted as-is.
    """
    sentence = sentence.strip()
    if sentence.startswith('$'):
        sentence = sentence[1:]
    if '*' not in sentence:
        return sentence
    body, _, given = sentence.partition('*')
    if nmea_checksum(body) != given[:2].upper():
        return None
    return body


def parse_coord(value: str, direction: str) -> float:
    """Convert NMEA ddmm.mmmm / dddmm.mmmm to decimal degrees."""
    if not value:
        raise ValueError("empty coordinate")
    dot = value.index('.') if '.' in value else len(value)
    degrees = float(value[:dot - 2])
    minutes = float(value[dot - 2:])
    result = degrees + minutes / 60
    if direction in ("S", "W"):
        result = -result
    return result


class GPSReader:
    """
    Reads NMEA data from a GPS module via serial.

    RMC sentences provide position, speed, course and time; the most recent
    GGA HDOP is turned into a horizontal accuracy estimate (HDOP x UERE).
    A GpsFix is produced for each valid RMC sentence.
    """

    def __init__(
        self,
        port: str = config.GPS_SERIAL_PORT,
        baudrate: int = config.GPS_SERIAL_BAUD,
        uere_m: float = config.GPS_UERE_M,
    ):
        self.port = port
        self.baudrate = baudrate
        self.uere_m = uere_m
        self._serial: Optional[serial.Serial] = None
        self._hdop: Optional[float] = None

    def connect(self) -> None:
        self._serial = serial.Serial(self.port, self.baudrate, timeout=config.GPS_SERIAL_TIMEOUT_S)
        logger.info("GPS connected on %s at %d baud", self.port, self.baudrate)

    def disconnect(self) -> None:
        if self._serial:
            self._serial.close()
            self._serial = None

    def read_fix(self) -> Optional[GpsFix]:
        """Read one line from the receiver. Returns a fix for valid RMC sentences."""
        if not self._serial:
            return None

        try:
            line = self._serial.readline().decode("ascii", errors="ignore")
        except serial.SerialException as e:
            logger.warning("GPS read failed: %s", e)
            return None
        return self.parse_sentence(line)

    def parse_sentence(self, line: str) -> Optional[GpsFix]:
        body = strip_checksum(line)
        if not body:
            return None

        talker = body.split(",", 1)[0]
        if talker in ("GPGGA", "GNGGA"):
            self._parse_gga(body)
            return None
        if talker in ("GPRMC", "GNRMC"):
            return self._parse_rmc(body)
        return None

    @property
    def accuracy_m(self) -> float:
        if self._hdop is None:
            return config.GPS_MAX_ACCURACY_M  # Unknown until a GGA arrives
        return self._hdop * self.uere_m

    def _parse_gga(self, body: str):
        """Track HDOP from GGA (field 8); fix quality 0 invalidates it."""
        parts = body.split(",")
        if len(parts) < 9:
            return
        try:
            quality = int(parts[6] or 0)
            self._hdop = float(parts[8]) if quality > 0 and parts[8] else None
        except ValueError:
            self._hdop = None

    def _parse_rmc(self, body: str) -> Optional[GpsFix]:
        """Parse RMC sentence for position, speed, course and time."""
        parts = body.split(",")
        if len(parts) < 10 or parts[2] != "A":  # A = valid fix
            return None

        try:
            lat = parse_coord(parts[3], parts[4])
            lon = parse_coord(parts[5], parts[6])
            speed_knots = float(parts[7]) if parts[7] else 0.0
            course = float(parts[8]) if parts[8] else 0.0
        except (ValueError, IndexError):
            return None

        return GpsFix(
            lat=lat,
            lon=lon,
            accuracy_m=self.accuracy_m,
            bearing_deg=course,
            speed_mps=speed_knots * KNOTS_TO_MPS,
            timestamp_ms=self._parse_time_ms(parts[1], parts[9]),
        )

    @staticmethod
    def _parse_time_ms(hhmmss: str, ddmmyy: str) -> int:
        """UTC epoch ms from RMC time/date fields, wall clock if unparseable."""
        try:
            stamp = datetime.strptime(f"{ddmmyy}{hhmmss.split('.')[0]}", "%d%m%y%H%M%S")
            fraction = float("0." + hhmmss.split('.')[1]) if '.' in hhmmss else 0.0
            stamp = stamp.replace(tzinfo=timezone.utc)
            return int((stamp.timestamp() + fraction) * 1000)
        except (ValueError, IndexError):
            return int(time.time() * 1000)
