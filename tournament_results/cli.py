"""
Command-line entry point for operators and schedulers.

  python -m tournament_results.cli update-statuses            # periodic job
  python -m tournament_results.cli pending-statuses
  python -m tournament_results.cli change-status T1 COMPLETED --actor admin-1 --process-results
  python -m tournament_results.cli process T1

Every command prints its result as JSON on stdout. Domain errors go to stderr
with exit status 1.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from tournament_results.config import configure_logging, get_settings
from tournament_results.errors import TournamentResultsError
from tournament_results.persistence.db import get_connection, get_db_path, init_db, set_db_path
from tournament_results.services import CancellationService, ResultsService, StatusService

logger = logging.getLogger(__name__)


def _parse_now(value: str | None) -> datetime | None:
    if value is None:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _emit(result: Any) -> None:
    if isinstance(result, BaseModel):
        payload = result.model_dump(mode="json")
    elif isinstance(result, list):
        payload = [r.model_dump(mode="json") if isinstance(r, BaseModel) else r for r in result]
    else:
        payload = result
    print(json.dumps(payload, indent=2))


def _run(args: argparse.Namespace) -> Any:
    if args.command == "init-db":
        return {"db_path": str(get_db_path())}

    now = _parse_now(getattr(args, "now", None))
    conn = get_connection()
    try:
        if args.command == "update-statuses":
            return StatusService().update_tournament_statuses_automatically(conn, now=now)
        if args.command == "pending-statuses":
            if args.tournament:
                suggestion = StatusService().check_tournament_status(conn, args.tournament, now=now)
                return [suggestion] if suggestion is not None else []
            return StatusService().tournaments_needing_status_update(conn, now=now)
        if args.command == "cancel-unconfirmed":
            return CancellationService().cancel_unconfirmed_registrations(conn, args.tournament_id, args.actor)
        if args.command == "process":
            return ResultsService().process_completed_tournament(conn, args.tournament_id, now=now)
        if args.command == "revert":
            return ResultsService().revert_tournament_results(conn, args.tournament_id, now=now)
        if args.command == "change-status":
            return StatusService().change_tournament_status(
                conn, args.tournament_id, args.status, args.actor, now=now, process_results=args.process_results
            )
        raise ValueError(f"unknown command {args.command}")
    finally:
        conn.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tournament-results",
        description="Tournament status automation and results processing.",
    )
    parser.add_argument("--db", type=Path, default=None, help="SQLite file (default: RESULTS_DB_PATH)")
    parser.add_argument("--log-level", default=None, help="Override RESULTS_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the schema if missing")

    p = sub.add_parser("update-statuses", help="Apply the date-driven status rules once")
    p.add_argument("--now", default=None, help="ISO timestamp to evaluate against (default: current time)")

    p = sub.add_parser("pending-statuses", help="List tournaments due for an automatic change (read-only)")
    p.add_argument("--now", default=None)
    p.add_argument("--tournament", default=None, help="Check a single tournament")

    p = sub.add_parser("cancel-unconfirmed", help="Run the cancellation cascade for one tournament")
    p.add_argument("tournament_id")
    p.add_argument("--actor", default=None, help="Actor recorded in the audit log (default: RESULTS_SYSTEM_ACTOR)")

    p = sub.add_parser("process", help="Positions, points and rankings for a COMPLETED tournament")
    p.add_argument("tournament_id")
    p.add_argument("--now", default=None)

    p = sub.add_parser("revert", help="Undo a tournament's ranking contribution")
    p.add_argument("tournament_id")
    p.add_argument("--now", default=None)

    p = sub.add_parser("change-status", help="Administrative status change")
    p.add_argument("tournament_id")
    p.add_argument("status")
    p.add_argument("--actor", required=True)
    p.add_argument("--now", default=None)
    p.add_argument("--process-results", action="store_true", help="Run the results pipeline on COMPLETED")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    if args.db is not None:
        set_db_path(args.db)
    if getattr(args, "actor", "") is None:
        args.actor = get_settings().system_actor
    init_db()

    try:
        result = _run(args)
    except TournamentResultsError as e:
        logger.error("%s failed: %s", args.command, e)
        print(json.dumps({"error": type(e).__name__, "message": str(e)}), file=sys.stderr)
        return 1
    _emit(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
