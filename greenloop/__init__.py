"""
GreenLoop — Workplace Sustainability Gamification Engine
=========================================================
Turns verified sustainability actions into points, keeps daily streaks,
unlocks badges exactly once, and ranks colleagues on rolling leaderboards.
The surrounding CRUD layer (routing, validation, reports) talks to this
package only through :class:`~greenloop.services.gamification.GamificationEngine`.

Package layout::

    greenloop/
    ├── config.py          # YAML → typed Python config
    ├── errors.py          # Error taxonomy surfaced to callers
    ├── constants.py       # Timeframe windows, rarity ordering, defaults
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, unit of work, async bridge
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default gameplay settings
    ├── engine/
    │   ├── records.py     # Typed records built at the storage boundary
    │   ├── points.py      # Points calculator (pure)
    │   ├── streaks.py     # Streak tracker (pure)
    │   ├── badges.py      # Badge rule engine (pure)
    │   ├── leaderboard.py # Deterministic ranking (pure)
    │   └── cache.py       # In-memory settings + badge cache
    ├── services/
    │   ├── ledger_service.py      # Apply-transaction protocol
    │   ├── badge_service.py       # At-most-once badge awarding
    │   ├── leaderboard_service.py # Windowed point aggregation
    │   ├── action_service.py      # Action/category/user repositories + verification
    │   ├── gamification.py        # GamificationEngine facade
    │   ├── reconciliation_service.py
    │   ├── settings_service.py
    │   ├── retry.py
    │   └── seed.py                # Default categories and badges
    └── __main__.py        # Operator CLI
"""

__version__ = "0.1.0"
