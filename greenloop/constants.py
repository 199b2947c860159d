"""
greenloop.constants — Shared Constants
=======================================

Single source of truth for leaderboard windows, rarity ordering and the
default points policy.  Import from here instead of duplicating values in
services and the CLI.
"""

from __future__ import annotations

from datetime import timedelta

# ---------------------------------------------------------------------------
# Leaderboard timeframes (trailing windows; None = unbounded)
# ---------------------------------------------------------------------------
TIMEFRAME_WINDOWS: dict[str, timedelta | None] = {
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
    "all": None,
}

# ---------------------------------------------------------------------------
# Badge rarity presentation order (catalogue views)
# ---------------------------------------------------------------------------
RARITY_ORDER: dict[str, int] = {
    "common": 0,
    "rare": 1,
    "epic": 2,
    "legendary": 3,
}

# ---------------------------------------------------------------------------
# Points policy defaults (overridable via the ``settings`` table)
# ---------------------------------------------------------------------------
DEFAULT_FLAT_BASE_POINTS = 10

# (min_streak_days, bonus_fraction); applied to the base, rounded down
DEFAULT_STREAK_BONUS_TIERS: tuple[tuple[int, float], ...] = (
    (7, 0.10),
    (30, 0.25),
)

# Point transaction types written to the ledger
TRANSACTION_ACTION_CREDIT = "action_credit"

RECENT_TRANSACTIONS_LIMIT = 10
RECENT_BADGES_DAYS = 30
PROGRESS_DAYS = 30

# Impact unit summed into the progress series as CO2 saved
IMPACT_UNIT_CO2 = "kg_co2"
