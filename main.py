#!/usr/bin/env python3
"""
GeoRacing navigation - route-tracking core.

Replays a route file through a navigation session (simulated fixes) or
tracks a live NMEA GPS receiver, printing progress and voice prompts.

Usage:
    python main.py route.json [--speed 13.4] [--detour 300 600 150]
    python main.py route.json --live --port /dev/ttyUSB0
"""

import argparse
import logging
import sys
import time
from datetime import datetime
from typing import Optional

import config
from navigation.eta import arrival_timestamp_ms, format_distance, format_duration
from navigation.gps import GPSInterface, GPSReader
from navigation.models import NavigationUpdate
from navigation.route_loader import RouteParseError, load_route_file
from navigation.routing import DirectRoutingProvider
from navigation.session import NavigationSession
from navigation.simulator import RouteSimulator
from navigation.worker import NavigationWorker
from utils.settings import get_settings

logger = logging.getLogger('georacing.main')


def format_update(update: NavigationUpdate, now_ms: Optional[int] = None) -> str:
    """One status line for the console, with the arrival clock time when `now_ms` is given."""
    flags = []
    if not update.fix_accepted:
        flags.append("rejected")
    if update.off_route:
        flags.append("OFF ROUTE")
    if update.gps_degraded:
        flags.append("GPS degraded")
    if update.arrived:
        flags.append("ARRIVED")
    line = (
        f"[{update.status.value:>13}] step {update.current_step_index} "
        f"{format_distance(update.distance_to_maneuver_m):>8} | "
        f"{update.instruction_text} | "
        f"left {format_distance(update.remaining_distance_m)}, "
        f"{format_duration(update.remaining_duration_s)}"
    )
    if now_ms is not None and not update.arrived:
        eta = datetime.fromtimestamp(arrival_timestamp_ms(update.remaining_duration_s, now_ms) / 1000)
        line += f" (ETA {eta:%H:%M})"
    if flags:
        line += " (" + ", ".join(flags) + ")"
    return line


def replay(session: NavigationSession, simulator: RouteSimulator) -> int:
    """Drive the simulator through the session. Returns the process exit code."""
    for fix in simulator.fixes():
        update = session.process_fix(fix)
        print(format_update(update, fix.timestamp_ms))
        if update.spoken_announcement:
            print(f"    >> {update.spoken_announcement}")
        if update.notice:
            print(f"    !! {update.notice}")
        if update.recalculation_request is not None:
            # Keep the replay deterministic: apply the new route on the next fix
            session.wait_for_reroute(timeout=config.THREAD_JOIN_TIMEOUT_S)
        if update.arrived:
            return 0
    print("Replay finished before arrival")
    return 1


def track_live(session: NavigationSession, reader: GPSInterface) -> int:
    """Feed a serial receiver into the session on a worker thread until Ctrl+C."""
    worker = NavigationWorker(session, on_announcement=lambda text: print(f"    >> {text}"))
    reader.connect()
    worker.start()
    last_sequence = 0
    try:
        while True:
            fix = reader.read_fix()
            if fix is not None:
                worker.submit_fix(fix)
            snapshot = worker.get_snapshot()
            if snapshot and snapshot.sequence != last_sequence:
                last_sequence = snapshot.sequence
                print(format_update(snapshot.data, int(time.time() * 1000)))
                if snapshot.data.arrived:
                    return 0
            if fix is None:
                time.sleep(0.05)
    except KeyboardInterrupt:
        print("\nStopped")
        return 0
    finally:
        worker.stop()
        session.stop()
        reader.disconnect()


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="GeoRacing navigation - replay or track a route"
    )
    parser.add_argument("route", help="Route JSON file (plain route or OSRM response)")
    parser.add_argument(
        "--speed", type=float, default=config.SIM_SPEED_MPS,
        help=f"Simulated speed in m/s (default: {config.SIM_SPEED_MPS})",
    )
    parser.add_argument(
        "--interval", type=int, default=config.SIM_INTERVAL_MS,
        help=f"Milliseconds between simulated fixes (default: {config.SIM_INTERVAL_MS})",
    )
    parser.add_argument(
        "--offset", type=float, default=0.0,
        help="Constant lateral offset of simulated fixes in metres",
    )
    parser.add_argument(
        "--detour", type=float, nargs=3, metavar=("START_M", "END_M", "OFFSET_M"),
        help="Push simulated fixes OFFSET_M sideways between START_M and END_M",
    )
    parser.add_argument(
        "--traffic-factor", type=float, default=None,
        help="ETA multiplier >= 1.0 (default: stored preference)",
    )
    parser.add_argument("--muted", action="store_true", help="Suppress voice prompts")
    parser.add_argument("--destination-name", default=None, help="Name used in the arrival prompt")
    parser.add_argument("--live", action="store_true", help="Track a serial NMEA receiver instead")
    parser.add_argument("--port", default=config.GPS_SERIAL_PORT, help="GPS serial port")
    parser.add_argument("--baud", type=int, default=config.GPS_SERIAL_BAUD, help="GPS baud rate")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    try:
        route = load_route_file(args.route)
    except (OSError, RouteParseError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    settings = get_settings()
    traffic_factor = args.traffic_factor if args.traffic_factor is not None else settings.traffic_factor()
    try:
        session = NavigationSession(
            routing_provider=DirectRoutingProvider(speed_mps=args.speed),
            traffic_factor=traffic_factor,
            muted=args.muted or settings.voice_muted(),
        )
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    announcement = session.start(route, destination_name=args.destination_name)
    if announcement:
        print(f"    >> {announcement}")

    if args.live:
        return track_live(session, GPSReader(port=args.port, baudrate=args.baud))

    if len(route.points) < 2:
        print("ERROR: route has no geometry to replay", file=sys.stderr)
        return 2
    simulator = RouteSimulator(
        route.points,
        speed_mps=args.speed,
        interval_ms=args.interval,
        lateral_offset_m=args.offset,
        detour=tuple(args.detour) if args.detour else None,
        start_ms=int(time.time() * 1000),
    )
    return replay(session, simulator)


if __name__ == "__main__":
    sys.exit(main())
