"""
greenloop.services.leaderboard_service — Leaderboard Queries
=============================================================

Sums ``point_transactions`` per active user inside a trailing window and
hands the totals to :func:`greenloop.engine.leaderboard.rank_entries`.
Standings are recomputed on every call and never persisted.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from greenloop.database.models import PointTransaction, User
from greenloop.engine.leaderboard import rank_entries, window_start
from greenloop.engine.records import LeaderboardEntry

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def _window_totals(
    session: Session, timeframe: str, now: datetime | None,
) -> tuple[list[tuple[str, int]], dict[str, str]]:
    points = func.sum(PointTransaction.points)
    stmt = (
        select(User.id, User.display_name, points.label("points"))
        .join(PointTransaction, PointTransaction.user_id == User.id)
        .where(User.is_active.is_(True))
        .group_by(User.id, User.display_name)
    )
    start = window_start(timeframe, now)
    if start is not None:
        stmt = stmt.where(PointTransaction.created_at >= start)

    rows = session.execute(stmt).all()
    totals = [(r.id, int(r.points or 0)) for r in rows]
    names = {r.id: r.display_name for r in rows}
    return totals, names


def rank_leaderboard(
    engine: Engine,
    timeframe: str = "all",
    *,
    now: datetime | None = None,
    limit: int | None = None,
) -> list[LeaderboardEntry]:
    """Ranked standings for *timeframe* (``weekly``, ``monthly`` or ``all``).

    Raises
    ------
    ValidationError
        Unknown timeframe.
    """
    window_start(timeframe, now)  # validates before touching the store
    with Session(engine) as session:
        totals, names = _window_totals(session, timeframe, now)
    return rank_entries(totals, names, limit=limit)


def get_leaderboard_view(
    engine: Engine,
    timeframe: str = "all",
    *,
    user_id: str | None = None,
    limit: int = 50,
    now: datetime | None = None,
) -> dict:
    """Top *limit* entries plus the requesting user's own standing."""
    ranked = rank_leaderboard(engine, timeframe, now=now)
    mine = next((e for e in ranked if e.user_id == user_id), None) if user_id else None
    return {
        "timeframe": timeframe,
        "entries": ranked[:limit],
        "total_participants": len(ranked),
        "user_rank": mine.rank if mine else None,
        "user_entry": mine,
    }
