"""
greenloop.engine.streaks — Streak Tracker
==========================================

Consecutive-day activity streaks.  Pure: takes the stored aggregate and the
new action's timestamp, returns the new streak state.

Day boundaries are calendar days in ONE canonical zone (``timezone`` in
``config.yaml``), never the user's local zone, so two workers scoring the
same action always agree.  Naive datetimes are taken to be UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, tzinfo

from greenloop.engine.records import AggregateRecord

__all__ = ["StreakUpdate", "calendar_day", "streak_before", "update_streak"]


@dataclass(frozen=True, slots=True)
class StreakUpdate:
    current_streak: int
    longest_streak: int
    last_action_date: date | None


def calendar_day(moment: datetime | date, tz: tzinfo = UTC) -> date:
    """The calendar day of *moment* in *tz*."""
    if not isinstance(moment, datetime):
        return moment
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(tz).date()


def update_streak(
    aggregate: AggregateRecord,
    new_action_date: datetime | date,
    tz: tzinfo = UTC,
) -> StreakUpdate:
    """Advance the streak for an action on *new_action_date*.

    * same day as ``last_action_date``  → unchanged (no double count)
    * exactly the next day             → ``current_streak + 1``
    * larger gap, or no prior activity → reset to 1
    * an action dated before ``last_action_date`` (late verification of
      an older action) leaves the streak untouched

    ``longest_streak`` is always ``max(longest_streak, current_streak)``.
    """
    day = calendar_day(new_action_date, tz)
    last = aggregate.last_action_date

    if last is None:
        current = 1
        last = day
    else:
        gap = (day - last).days
        if gap <= 0:
            current = max(aggregate.current_streak, 1)
        elif gap == 1:
            current = aggregate.current_streak + 1
            last = day
        else:
            current = 1
            last = day

    return StreakUpdate(
        current_streak=current,
        longest_streak=max(aggregate.longest_streak, current),
        last_action_date=last,
    )


def streak_before(
    aggregate: AggregateRecord,
    new_action_date: datetime | date,
    tz: tzinfo = UTC,
) -> int:
    """The streak a user holds going into an action on *new_action_date*.

    This is what the action is scored against.  A streak that has lapsed
    (gap of two or more days) counts as 0; a same-day, next-day or older
    action sees the stored ``current_streak``.
    """
    last = aggregate.last_action_date
    if last is None:
        return 0
    gap = (calendar_day(new_action_date, tz) - last).days
    return 0 if gap > 1 else aggregate.current_streak
