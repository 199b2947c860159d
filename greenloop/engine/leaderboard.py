"""
greenloop.engine.leaderboard — Leaderboard Ranking
====================================================

Pure ordering of per-user point sums into ranked entries.  The SQL that
produces the sums lives in :mod:`greenloop.services.leaderboard_service`.

Ordering is deterministic: points descending, then ``user_id`` ascending.
Ranks are dense positions 1..N with no gaps, so tied users still receive
distinct consecutive ranks.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime

from greenloop.constants import TIMEFRAME_WINDOWS
from greenloop.engine.records import LeaderboardEntry
from greenloop.errors import ValidationError

__all__ = ["rank_entries", "validate_timeframe", "window_start"]


def validate_timeframe(timeframe: str) -> str:
    """Return *timeframe* normalised, or raise :class:`ValidationError`."""
    key = (timeframe or "").strip().lower()
    if key not in TIMEFRAME_WINDOWS:
        raise ValidationError(
            f"Unknown timeframe {timeframe!r}; expected one of {sorted(TIMEFRAME_WINDOWS)}"
        )
    return key


def window_start(timeframe: str, now: datetime | None = None) -> datetime | None:
    """Lower bound (inclusive) of the transaction window, ``None`` for all-time."""
    window = TIMEFRAME_WINDOWS[validate_timeframe(timeframe)]
    if window is None:
        return None
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now - window


def rank_entries(
    totals: Iterable[tuple[str, int]],
    names: Mapping[str, str] | None = None,
    limit: int | None = None,
) -> list[LeaderboardEntry]:
    """Sort ``(user_id, points)`` pairs and assign ranks.

    Parameters
    ----------
    totals : per-user point sums.  Users may appear with 0 points.
    names : optional ``user_id → display_name`` lookup.
    limit : truncate to the top *limit* entries after ranking.
    """
    names = names or {}
    ordered = sorted(totals, key=lambda row: (-int(row[1] or 0), row[0]))
    if limit is not None:
        ordered = ordered[:limit]
    return [
        LeaderboardEntry(
            user_id=user_id,
            points=int(points or 0),
            rank=position,
            display_name=names.get(user_id),
        )
        for position, (user_id, points) in enumerate(ordered, start=1)
    ]
