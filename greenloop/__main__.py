"""
greenloop.__main__ — Entry point for ``python -m greenloop``
============================================================

Admin and operations CLI over the gamification engine.

Wiring:
1. Load .env (``DATABASE_URL``).
2. Load config.yaml (organization, time zone, lock timeout).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Build and warm the ConfigCache.
5. Dispatch the subcommand; results are printed as JSON.

Run with::

    python -m greenloop leaderboard --timeframe weekly
"""

from __future__ import annotations

import argparse
import dataclasses
import enum
import json
import logging
import sys
from datetime import date, datetime
from typing import Any

from dotenv import load_dotenv

from greenloop.config import load_config
from greenloop.constants import PROGRESS_DAYS
from greenloop.database.engine import create_db_engine, init_db
from greenloop.engine.cache import ConfigCache
from greenloop.errors import GreenloopError
from greenloop.services import action_service, badge_service, leaderboard_service, ledger_service
from greenloop.services.gamification import GamificationEngine
from greenloop.services.reconciliation_service import reconcile_points
from greenloop.services.retry import retry_on_concurrency
from greenloop.services.seed import seed_database

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stderr,
)
logger = logging.getLogger("greenloop")


def _json_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _emit(payload: Any) -> None:
    print(json.dumps(payload, default=_json_default, indent=2, ensure_ascii=False))


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer (got {number})")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="greenloop",
        description="Sustainability gamification engine: points, streaks, badges",
    )
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create tables and seed settings, categories, badges")

    verify_p = subparsers.add_parser("verify", help="Verify (or reject) an action and score it")
    verify_p.add_argument("action_id")
    verify_p.add_argument("--admin", required=True, help="Id of the verifying admin")
    verify_p.add_argument("--reject", action="store_true", help="Reject instead of verify")
    verify_p.add_argument("--notes", default=None)

    pending_p = subparsers.add_parser("pending", help="Actions awaiting verification")
    pending_p.add_argument("--user", default=None, help="Only this user's actions")
    pending_p.add_argument("--limit", type=_positive_int, default=100)

    score_p = subparsers.add_parser("score", help="Credit a verified action (idempotent)")
    score_p.add_argument("action_id")

    award_p = subparsers.add_parser("award", help="Award a badge if the user qualifies")
    award_p.add_argument("user_id")
    award_p.add_argument("badge_id")

    claim_p = subparsers.add_parser("claimable", help="Badges a user could claim now")
    claim_p.add_argument("user_id")

    summary_p = subparsers.add_parser("summary", help="Points summary for a user")
    summary_p.add_argument("user_id")

    cat_p = subparsers.add_parser("catalogue", help="Badge catalogue with progress")
    cat_p.add_argument("user_id")

    prog_p = subparsers.add_parser("progress", help="Daily activity and per-category points")
    prog_p.add_argument("user_id")
    prog_p.add_argument("--days", type=_positive_int, default=PROGRESS_DAYS)

    ach_p = subparsers.add_parser("achievements", help="Recent and claimable badges")
    ach_p.add_argument("user_id")

    lb_p = subparsers.add_parser("leaderboard", help="Ranked standings")
    lb_p.add_argument("--timeframe", choices=["weekly", "monthly", "all"], default="all")
    lb_p.add_argument("--limit", type=_positive_int, default=None)
    lb_p.add_argument("--user", default=None, help="Include this user's rank")

    rec_p = subparsers.add_parser("reconcile", help="Check user_points against the ledger")
    rec_p.add_argument("--dry-run", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI.  Returns the process exit code."""
    args = build_parser().parse_args(argv)

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config(args.config)
    logger.info("Config loaded: %s (tz=%s)", cfg.organization_name, cfg.timezone)

    # 3. Database.
    engine = create_db_engine(args.database_url)

    try:
        if args.command == "init-db":
            init_db(engine)
            _emit(seed_database(engine))
            return 0

        # 4. Build and warm the ConfigCache.
        cache = ConfigCache(engine)
        cache.load_all()
        gamification = GamificationEngine(engine, cache, cfg)

        if args.command == "verify":
            _emit(gamification.verify_action(
                args.action_id,
                admin_id=args.admin,
                status="rejected" if args.reject else "verified",
                notes=args.notes,
            ))
        elif args.command == "pending":
            _emit(action_service.list_actions(
                engine, status="pending", user_id=args.user, limit=args.limit,
            ))
        elif args.command == "score":
            _emit(retry_on_concurrency(gamification.compute_and_apply_points, args.action_id))
        elif args.command == "award":
            _emit(gamification.award_badge(args.user_id, args.badge_id))
        elif args.command == "claimable":
            _emit(gamification.check_badge_eligibility(args.user_id))
        elif args.command == "summary":
            _emit(ledger_service.get_points_summary(engine, args.user_id))
        elif args.command == "catalogue":
            _emit(badge_service.get_badge_catalogue(engine, args.user_id))
        elif args.command == "progress":
            _emit({
                "user": action_service.get_user(engine, args.user_id),
                **ledger_service.get_progress(
                    engine, args.user_id, days=args.days, tz=cfg.tz,
                ),
            })
        elif args.command == "achievements":
            _emit(badge_service.get_achievements(engine, cache, args.user_id))
        elif args.command == "leaderboard":
            _emit(leaderboard_service.get_leaderboard_view(
                engine,
                args.timeframe,
                user_id=args.user,
                limit=args.limit if args.limit is not None else cfg.leaderboard_limit,
            ))
        elif args.command == "reconcile":
            _emit(reconcile_points(
                engine, dry_run=args.dry_run, lock_timeout_ms=cfg.ledger_lock_timeout_ms,
            ))
    except GreenloopError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        _emit({"error": type(exc).__name__, "message": str(exc)})
        return 1
    finally:
        engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
