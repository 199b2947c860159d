"""
greenloop.config — YAML Configuration Loader
=============================================

This module reads ``config.yaml`` for **process-wide** settings: the
organization identity, the canonical time zone used for streak day
boundaries, and the ledger lock timeout.  Gameplay tuning (flat base points,
streak bonus tiers) lives in the ``settings`` database table so admins can
change it without a redeploy.

Usage::

    from greenloop.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.organization_name) # "Acme Corp"
    print(cfg.tz)                # zoneinfo.ZoneInfo(key='UTC')
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo

import yaml

DEFAULT_TIMEZONE = "UTC"
DEFAULT_LOCK_TIMEOUT_MS = 2000
DEFAULT_LEADERBOARD_LIMIT = 50


# ---------------------------------------------------------------------------
# Typed settings object: infrastructure/identity only.
# Gameplay tuning lives in the DB ``settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GreenloopConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    organization_name: str

    # Streak day boundaries are computed in this zone, for every user
    timezone: str = DEFAULT_TIMEZONE

    # Ledger
    ledger_lock_timeout_ms: int = DEFAULT_LOCK_TIMEOUT_MS

    # Leaderboard
    leaderboard_limit: int = DEFAULT_LEADERBOARD_LIMIT

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> GreenloopConfig:
    """Read *path* and return a :class:`GreenloopConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    zoneinfo.ZoneInfoNotFoundError
        If ``timezone`` names an unknown zone.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    cfg = GreenloopConfig(
        organization_name=raw["organization_name"],
        timezone=str(raw.get("timezone") or DEFAULT_TIMEZONE),
        ledger_lock_timeout_ms=int(
            raw.get("ledger_lock_timeout_ms", DEFAULT_LOCK_TIMEOUT_MS)
        ),
        leaderboard_limit=int(raw.get("leaderboard_limit", DEFAULT_LEADERBOARD_LIMIT)),
    )
    cfg.tz  # noqa: B018  (unknown zone names raise here)
    return cfg
