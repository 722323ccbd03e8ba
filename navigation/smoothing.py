"""
Fix smoothing for accepted GPS fixes.

Constant velocity Kalman filter run in a local east/north frame (metres)
anchored at the first fix. Each fix's reported accuracy is used as its
measurement noise, so a 4 m fix pulls the estimate harder than a 40 m one.
Disabled by default (FIX_SMOOTHING_ENABLED); the session feeds it only
fixes that passed the quality gate.
"""

import dataclasses
import math
from typing import Optional

import numpy as np

import config
from .geometry import METRES_PER_DEG_LAT, METRES_PER_DEG_LON_EQUATOR
from .models import GpsFix


class FixSmoother:
    """
    Kalman filter over GpsFix positions.

    State vector: [east, north, velocity_east, velocity_north] in metres and
    m/s relative to the anchor.
    """

    def __init__(
        self,
        process_noise: float = config.SMOOTHING_PROCESS_NOISE,
        measurement_noise: float = config.SMOOTHING_MEASUREMENT_NOISE,
        max_gap_s: float = config.SMOOTHING_MAX_GAP_S,
    ):
        """
        Args:
            process_noise: Vehicle acceleration uncertainty in m/s^2
            measurement_noise: Fallback fix noise in metres when a fix
                reports no accuracy
            max_gap_s: Reinitialise when fixes are further apart than this
        """
        self.process_noise = process_noise
        self.measurement_noise = measurement_noise
        self.max_gap_s = max_gap_s

        self.state: Optional[np.ndarray] = None
        self.covariance: Optional[np.ndarray] = None
        self._last_ms: Optional[int] = None
        self._anchor_lat = 0.0
        self._anchor_lon = 0.0
        self._lon_scale = METRES_PER_DEG_LON_EQUATOR

    def reset(self):
        self.state = None
        self.covariance = None
        self._last_ms = None

    def smooth(self, fix: GpsFix) -> GpsFix:
        """Return the fix with its position replaced by the filtered estimate."""
        if self.state is None:
            self._initialise(fix)
            return fix

        dt = (fix.timestamp_ms - self._last_ms) / 1000.0
        if dt <= 0 or dt > self.max_gap_s:
            self._initialise(fix)
            return fix

        self._predict(dt)
        self._update(fix)
        self._last_ms = fix.timestamp_ms

        lat, lon = self._to_lat_lon(self.state[0], self.state[1])
        return dataclasses.replace(fix, lat=lat, lon=lon)

    @property
    def uncertainty_m(self) -> float:
        """RMS position uncertainty of the current estimate."""
        if self.covariance is None:
            return float('inf')
        return float(np.sqrt(self.covariance[0, 0] + self.covariance[1, 1]))

    def _initialise(self, fix: GpsFix):
        self._anchor_lat = fix.lat
        self._anchor_lon = fix.lon
        self._lon_scale = METRES_PER_DEG_LON_EQUATOR * math.cos(math.radians(fix.lat))

        # Seed velocity from the reported course and speed
        heading = math.radians(fix.bearing_deg)
        self.state = np.array([
            0.0,
            0.0,
            fix.speed_mps * math.sin(heading),
            fix.speed_mps * math.cos(heading),
        ])
        sigma = self._noise_for(fix)
        self.covariance = np.diag([sigma**2, sigma**2, 4.0, 4.0])
        self._last_ms = fix.timestamp_ms

    def _noise_for(self, fix: GpsFix) -> float:
        return fix.accuracy_m if fix.accuracy_m > 0 else self.measurement_noise

    def _predict(self, dt: float):
        F = np.array([
            [1, 0, dt, 0],
            [0, 1, 0, dt],
            [0, 0, 1, 0],
            [0, 0, 0, 1],
        ])
        q = self.process_noise**2
        Q = q * np.array([
            [dt**4 / 4, 0, dt**3 / 2, 0],
            [0, dt**4 / 4, 0, dt**3 / 2],
            [dt**3 / 2, 0, dt**2, 0],
            [0, dt**3 / 2, 0, dt**2],
        ])
        self.state = F @ self.state
        self.covariance = F @ self.covariance @ F.T + Q

    def _update(self, fix: GpsFix):
        H = np.array([
            [1, 0, 0, 0],
            [0, 1, 0, 0],
        ])
        sigma = self._noise_for(fix)
        R = np.diag([sigma**2, sigma**2])

        measurement = np.array(self._to_local(fix.lat, fix.lon))
        innovation = measurement - H @ self.state
        S = H @ self.covariance @ H.T + R
        K = self.covariance @ H.T @ np.linalg.inv(S)

        self.state = self.state + K @ innovation
        self.covariance = (np.eye(4) - K @ H) @ self.covariance

    def _to_local(self, lat: float, lon: float):
        return (
            (lon - self._anchor_lon) * self._lon_scale,
            (lat - self._anchor_lat) * METRES_PER_DEG_LAT,
        )

    def _to_lat_lon(self, east: float, north: float):
        return (
            float(self._anchor_lat + north / METRES_PER_DEG_LAT),
            float(self._anchor_lon + east / self._lon_scale),
        )
