"""Manual live check for a selected backend.

Run from the repository root with:
  PYTHONPATH=src BACKEND_ID=memory USERNAME=demo PASSWORD=secret \
  python scripts/backend_live_check.py

  PYTHONPATH=src BACKEND_ID=remote BASE_URL=http://localhost:5000 \
  USERNAME=... PASSWORD=... \
  python scripts/backend_live_check.py --book 1 --release-last

Optional environment variables:
  BACKEND_ID
  BASE_URL
  API_URI
  USERNAME
  PASSWORD
  SESSION_FILE

When SESSION_FILE is set and no credentials are given, the saved session is
reused instead of logging in.
Debug helpers:
  --debug enables debug logging and prints the resolved config.
  --traceback prints full tracebacks on errors.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import traceback
from pathlib import Path

from pyparkingspot import Client, ParkingApp
from pyparkingspot.models import ParkingLot, Reservation
from pyparkingspot.session import SessionStore

_LOGGER = logging.getLogger(__name__)


def _require_value(name: str, value: str | None) -> str:
    if not value:
        print(f"Missing required value: {name}", file=sys.stderr)
        raise SystemExit(2)
    return value


def _format_lot(lot: ParkingLot) -> str:
    return (
        f"{lot.id} {lot.name} | ₹{lot.price_per_hour:.2f}/hr | "
        f"available={lot.available_spots} occupied={lot.occupied_spots} "
        f"total={lot.total_spots}"
    )


def _format_reservation(app: ParkingApp, reservation: Reservation) -> str:
    spot = reservation.spot_number if reservation.spot_number is not None else "-"
    return (
        f"{reservation.id} {reservation.lot_name} | spot={spot} | "
        f"status={reservation.status} | cost=₹{reservation.cost:.2f} | "
        f"duration={app.reservation_duration(reservation)}"
    )


def _print_notice(app: ParkingApp) -> None:
    if app.notice is None:
        return
    stream = sys.stderr if app.notice.level == "error" else sys.stdout
    print(f"{app.notice.level.upper()}: {app.notice.message}", file=stream)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a backend live check.")
    parser.add_argument("--backend", dest="backend_id", help="Backend id (memory or remote).")
    parser.add_argument("--base-url", dest="base_url", help="REST API base URL.")
    parser.add_argument("--api-uri", dest="api_uri", help="REST API URI prefix.")
    parser.add_argument("--username", dest="username", help="Username for login.")
    parser.add_argument("--password", dest="password", help="Password for login.")
    parser.add_argument(
        "--session-file",
        dest="session_file",
        help="Session file to save to and restore from.",
    )
    parser.add_argument("--book", dest="book_lot_id", help="Book a spot in this lot id.")
    parser.add_argument(
        "--release",
        dest="release_id",
        help="Release the reservation with this id.",
    )
    parser.add_argument(
        "--release-last",
        action="store_true",
        help="Release the most recent active reservation.",
    )
    parser.add_argument(
        "--export-dir",
        dest="export_dir",
        help="Export the reservation history CSV into this directory.",
    )
    parser.add_argument("--search", dest="search", help="Filter listed lots by text.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug output.")
    parser.add_argument(
        "--traceback",
        action="store_true",
        help="Print full tracebacks on errors.",
    )
    return parser.parse_args()


async def _run_actions(app: ParkingApp, args: argparse.Namespace) -> bool:
    ok = True
    if args.book_lot_id:
        ok = await app.book(args.book_lot_id) and ok
        _print_notice(app)
    release_id = args.release_id
    if args.release_last and not release_id and app.active_reservations:
        release_id = app.active_reservations[0].id
    if release_id:
        ok = await app.release(release_id) and ok
        _print_notice(app)
    if args.export_dir:
        ok = await app.export_csv(Path(args.export_dir)) and ok
        _print_notice(app)
        if app.last_export is not None:
            print(f"Export: {app.last_export}")
    return ok


def _print_summary(app: ParkingApp, search: str | None) -> None:
    identity = app.session.identity if app.session else None
    if identity is not None:
        print(f"User: {identity.username} ({identity.role})")
    if app.stats is not None:
        print(f"Dashboard: {app.stats}")
    lots = app.search_lots(search)
    print(f"Parking lots: {len(lots)}")
    for lot in lots:
        print(f"- {_format_lot(lot)}")
    if not app.is_admin:
        print(f"Reservations: {len(app.reservations)}")
        for reservation in app.reservations:
            print(f"- {_format_reservation(app, reservation)}")
        stats = app.user_stats
        print(
            f"Active: {stats.active_count} | Completed: {stats.completed_count} | "
            f"Spent: ₹{stats.total_spent:.2f}"
        )


async def main() -> int:
    args = _parse_args()
    log_level = args.log_level.upper()
    if args.debug and log_level == "INFO":
        log_level = "DEBUG"
    logging.basicConfig(level=log_level)

    backend_id = _require_value("backend_id", args.backend_id or os.getenv("BACKEND_ID"))
    base_url = args.base_url or os.getenv("BASE_URL")
    api_uri = args.api_uri or os.getenv("API_URI")
    username = args.username or os.getenv("USERNAME")
    password = args.password or os.getenv("PASSWORD")
    session_file = args.session_file or os.getenv("SESSION_FILE")

    if args.debug:
        print(
            "Debug config: "
            f"backend_id={backend_id} base_url={base_url} api_uri={api_uri} "
            f"session_file={session_file}",
            file=sys.stderr,
        )

    try:
        async with Client(base_url=base_url, api_uri=api_uri) as client:
            backend = await client.get_backend(backend_id)
            store = SessionStore(Path(session_file)) if session_file else SessionStore()
            app = ParkingApp(backend, store)
            if username and password:
                ready = await app.login(username, password)
            elif session_file:
                ready = await app.restore()
            else:
                ready = await app.login(
                    _require_value("username", username),
                    _require_value("password", password),
                )
            _print_notice(app)
            if not ready:
                return 1
            _LOGGER.info("Using backend %s (%s)", backend.backend_name, backend.backend_id)
            ok = await _run_actions(app, args)
            _print_summary(app, args.search)
    except Exception as exc:
        print(f"Error: {exc.__class__.__name__}: {exc}", file=sys.stderr)
        if args.traceback:
            traceback.print_exc()
        return 1
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
