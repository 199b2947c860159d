"""
greenloop.services.gamification — Gamification Engine Facade
=============================================================

The operations the surrounding route layer calls.  One
:class:`GamificationEngine` is built at startup with an injected
SQLAlchemy engine, a loaded :class:`~greenloop.engine.cache.ConfigCache`
and the process :class:`~greenloop.config.GreenloopConfig`::

    engine = create_db_engine()
    cache = ConfigCache(engine)
    cache.load_all()
    gamification = GamificationEngine(engine, cache, load_config())

    result = gamification.compute_and_apply_points(action_id)

Every method is synchronous; async callers wrap them in
:func:`greenloop.database.engine.run_db`.

Pipeline for one verified action:
  ledger apply (points + streak, one transaction)
  → automatic badge awards (each badge its own transaction)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from greenloop.engine.points import compute_points
from greenloop.engine.records import AggregateRecord, BadgeRecord, LeaderboardEntry
from greenloop.errors import ConcurrencyError, GreenloopError, ValidationError
from greenloop.services import action_service, badge_service, leaderboard_service, ledger_service
from greenloop.services.badge_service import AwardResult
from greenloop.services.retry import DEFAULT_ATTEMPTS, retry_on_concurrency

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from greenloop.config import GreenloopConfig
    from greenloop.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScoringResult:
    """What one call to :meth:`GamificationEngine.compute_and_apply_points` did."""
    action_id: str
    user_id: str
    points: int
    applied: bool
    aggregate: AggregateRecord
    awards: tuple[AwardResult, ...] = ()

    @property
    def new_badges(self) -> list[str]:
        return [a.badge_id for a in self.awards if a.awarded]


@dataclass(frozen=True, slots=True)
class VerificationOutcome:
    action_id: str
    status: str | None
    changed: bool = False
    scoring: ScoringResult | None = None
    error: str | None = None
    details: dict = field(default_factory=dict)


class GamificationEngine:
    """Points, streaks, badges and leaderboards over one database."""

    def __init__(
        self, engine: Engine, cache: ConfigCache, config: GreenloopConfig,
    ) -> None:
        self._engine = engine
        self._cache = cache
        self._config = config

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def cache(self) -> ConfigCache:
        return self._cache

    # -------------------------------------------------------------------
    # Scoring
    # -------------------------------------------------------------------
    def compute_and_apply_points(self, action_id: str) -> ScoringResult:
        """Score a verified action, credit it once, then award badges.

        Calling it again for the same action changes nothing in the ledger
        (``applied`` is False) but still re-runs automatic badge awards,
        which are idempotent.

        Raises
        ------
        NotFoundError
            Unknown action or category.
        ValidationError
            The action is not verified, or its inputs cannot be scored.
        ConcurrencyError
            The user's ledger lock was not acquired in time.
        """
        action = action_service.get_action(self._engine, action_id)
        if not action.is_verified:
            raise ValidationError(
                f"Action {action_id} is {action.verification_status}, not verified"
            )
        category = action_service.get_category(self._engine, action.category_id)
        policy = self._cache.get_points_policy()

        # Fail fast on bad input before taking the user's lock
        compute_points(action, category, 0, policy)

        ledger = ledger_service.apply_action(
            self._engine,
            action,
            lambda streak: compute_points(action, category, streak, policy),
            tz=self._config.tz,
            lock_timeout_ms=self._config.ledger_lock_timeout_ms,
            description=f"{category.name or 'Action'} credit",
        )

        awards: tuple[AwardResult, ...] = ()
        if self._cache.get_bool("badges.auto_award", default=True):
            awards = tuple(self.process_automatic_badge_awards(action.user_id))

        return ScoringResult(
            action_id=action.id,
            user_id=action.user_id,
            points=ledger.points,
            applied=ledger.applied,
            aggregate=ledger.aggregate,
            awards=awards,
        )

    # -------------------------------------------------------------------
    # Badges
    # -------------------------------------------------------------------
    def process_automatic_badge_awards(self, user_id: str) -> list[AwardResult]:
        return badge_service.process_automatic_badge_awards(self._engine, self._cache, user_id)

    def check_badge_eligibility(self, user_id: str) -> list[BadgeRecord]:
        """Badges the user could claim right now.  No side effects."""
        return badge_service.check_badge_eligibility(self._engine, self._cache, user_id)

    def award_badge(self, user_id: str, badge_id: str) -> AwardResult:
        return badge_service.award_badge(self._engine, user_id, badge_id)

    # -------------------------------------------------------------------
    # Leaderboard
    # -------------------------------------------------------------------
    def rank_leaderboard(
        self, timeframe: str = "all", *, limit: int | None = None,
    ) -> list[LeaderboardEntry]:
        return leaderboard_service.rank_leaderboard(self._engine, timeframe, limit=limit)

    # -------------------------------------------------------------------
    # Verification workflow
    # -------------------------------------------------------------------
    def verify_action(
        self,
        action_id: str,
        *,
        admin_id: str,
        status: str,
        notes: str | None = None,
        attempts: int = DEFAULT_ATTEMPTS,
    ) -> VerificationOutcome:
        """Record an admin decision, then score the action if verified.

        The decision is committed first.  Scoring is retried on lock
        timeouts; if it still fails, the decision stands and the outcome
        carries the error so the caller can re-score later.
        """
        record, changed = action_service.record_verification(
            self._engine, action_id, admin_id=admin_id, status=status, notes=notes,
        )
        if not record.is_verified:
            return VerificationOutcome(action_id, record.verification_status, changed)

        try:
            scoring = retry_on_concurrency(
                self.compute_and_apply_points, action_id, attempts=attempts,
            )
        except ConcurrencyError as exc:
            logger.error("Action %s verified but scoring failed: %s", action_id, exc)
            return VerificationOutcome(
                action_id, record.verification_status, changed, error=str(exc),
            )
        return VerificationOutcome(action_id, record.verification_status, changed, scoring)

    def bulk_verify_actions(
        self,
        action_ids: list[str],
        *,
        admin_id: str,
        status: str,
        notes: str | None = None,
    ) -> list[VerificationOutcome]:
        """Apply one decision to many actions; each succeeds or fails alone."""
        if not action_ids:
            raise ValidationError("At least one action id is required")

        outcomes: list[VerificationOutcome] = []
        for action_id in dict.fromkeys(action_ids):
            try:
                outcomes.append(self.verify_action(
                    action_id, admin_id=admin_id, status=status, notes=notes,
                ))
            except GreenloopError as exc:
                logger.warning("Bulk verify skipped %s: %s", action_id, exc)
                outcomes.append(VerificationOutcome(
                    action_id, None, error=str(exc),
                    details={"error_type": type(exc).__name__},
                ))
        return outcomes
