"""
Configuration settings for the GeoRacing navigation core.
Contains constants for the route-tracking pipeline run during turn-by-turn
navigation around the circuit.

Organised into logical sections:
1. GPS Quality (accuracy gate, staleness, NMEA reader)
2. Route Snapping (search radii, escalation, cache)
3. Off-Route Detection (thresholds, confirmation window)
4. Arrival
5. Voice Announcements (distance bands, mute default)
6. ETA (traffic factor)
7. Fix Smoothing (optional Kalman filter)
8. Threading & Settings (queues, timeouts, preferences file)
9. Simulation
"""

import os

# ==============================================================================
# APPLICATION VERSION
# ==============================================================================
APP_VERSION = "0.3.0"

# ==============================================================================
# GPS QUALITY
# ==============================================================================
# Fixes with a reported accuracy worse than this are dropped
GPS_MAX_ACCURACY_M = 50.0

# No accepted fix for this long freezes ETA/distance and flags degraded GPS
GPS_STALE_TIMEOUT_MS = 10_000

# NMEA serial reader
GPS_SERIAL_PORT = "/dev/ttyUSB0"
GPS_SERIAL_BAUD = 9600
GPS_SERIAL_TIMEOUT_S = 1.0
# User equivalent range error, HDOP * UERE ~ horizontal accuracy
GPS_UERE_M = 5.0

# ==============================================================================
# ROUTE SNAPPING
# ==============================================================================
# Vertex window either side of the previous snap index (first pass)
SNAP_FIRST_RADIUS = 30
# Wider window used when the first pass finds nothing close (second pass)
SNAP_SECOND_RADIUS = 100
# Best first-pass distance above which the wider search runs
SNAP_ESCALATION_DISTANCE_M = 80.0
# Vertices the snap may move backwards from the previous index (GPS noise)
SNAP_BACKWARD_TOLERANCE = 5
# Refine the nearest vertex by projecting onto its adjacent segments
SNAP_PROJECT_ONTO_SEGMENTS = True
# Re-snap only once the fix has moved this far from the cached snapped point
SNAP_CACHE_DISTANCE_M = 10.0

# ==============================================================================
# OFF-ROUTE DETECTION
# ==============================================================================
# Fixed lateral threshold (used when the dynamic threshold is disabled)
OFF_ROUTE_THRESHOLD_M = 50.0
# Over-threshold readings must persist this long before reporting off route
OFF_ROUTE_CONFIRM_MS = 3000
# Scale the threshold with speed
OFF_ROUTE_DYNAMIC_THRESHOLD = True
# (upper speed bound km/h, threshold m), first matching bound wins
OFF_ROUTE_SPEED_THRESHOLDS = (
    (40.0, 30.0),   # Urban
    (80.0, 50.0),   # Rural
)
OFF_ROUTE_HIGH_SPEED_THRESHOLD_M = 80.0  # Highway

# ==============================================================================
# ARRIVAL
# ==============================================================================
ARRIVAL_RADIUS_M = 30.0

# Also arrive when the remaining route distance drops below this (m).
# None keeps the radius check only.
ARRIVAL_REMAINING_DISTANCE_M = None

# ==============================================================================
# VOICE ANNOUNCEMENTS
# ==============================================================================
# Lower bounds (exclusive) of each announcement band, metres
ANNOUNCE_BAND_KM1_M = 1000.0
ANNOUNCE_BAND_M500_M = 500.0
ANNOUNCE_BAND_M250_M = 250.0
ANNOUNCE_BAND_M100_M = 100.0

# Start muted (overridden by the stored user preference)
VOICE_MUTED_DEFAULT = False

# ==============================================================================
# ETA
# ==============================================================================
TRAFFIC_FACTOR_DEFAULT = 1.0
TRAFFIC_FACTOR_MIN = 1.0

# ==============================================================================
# FIX SMOOTHING
# ==============================================================================
FIX_SMOOTHING_ENABLED = False
SMOOTHING_PROCESS_NOISE = 0.5  # m/s^2
SMOOTHING_MEASUREMENT_NOISE = 5.0  # m
SMOOTHING_MAX_GAP_S = 2.0  # Reinitialise after a longer gap between fixes

# ==============================================================================
# THREADING & SETTINGS
# ==============================================================================
# Fix queue depth for the navigation worker (1 current + 1 buffer)
NAV_WORKER_QUEUE_DEPTH = 2
# Blocking get timeout in the worker loop
NAV_WORKER_POLL_TIMEOUT_S = 0.2
# Join timeout when stopping threads
THREAD_JOIN_TIMEOUT_S = 5.0

# Persistent user preferences (voice mute, traffic factor)
SETTINGS_FILE = os.path.expanduser("~/.georacing_nav_settings.json")

# ==============================================================================
# SIMULATION
# ==============================================================================
SIM_SPEED_MPS = 13.4  # ~48 km/h
SIM_INTERVAL_MS = 1000  # 1 Hz, typical phone location provider
SIM_ACCURACY_M = 5.0
