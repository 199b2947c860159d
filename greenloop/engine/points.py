"""
greenloop.engine.points — Points Calculator
============================================

Pure calculation: no DB I/O, deterministic given its inputs.

Pipeline:
  ActionRecord → Base (impact × multiplier, or flat base) → Streak bonus → points

The flat base and the streak tiers come from the ``settings`` table via
:meth:`~greenloop.engine.cache.ConfigCache.get_points_policy`.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from greenloop.constants import DEFAULT_FLAT_BASE_POINTS, DEFAULT_STREAK_BONUS_TIERS
from greenloop.engine.records import ActionRecord, CategoryRecord
from greenloop.errors import InvalidInputError, ValidationError


__all__ = [
    "DEFAULT_POLICY",
    "PointsPolicy",
    "StreakTier",
    "base_points",
    "compute_points",
    "streak_bonus",
]


@dataclass(frozen=True, slots=True)
class StreakTier:
    min_streak: int
    bonus: float


@dataclass(frozen=True, slots=True)
class PointsPolicy:
    """Tunable scoring parameters.

    ``tiers`` is sorted by ``min_streak``; bonuses never decrease as the
    required streak grows.
    """

    flat_base: int = DEFAULT_FLAT_BASE_POINTS
    tiers: tuple[StreakTier, ...] = tuple(
        StreakTier(days, bonus) for days, bonus in DEFAULT_STREAK_BONUS_TIERS
    )

    @classmethod
    def build(cls, flat_base: int, tiers: Iterable) -> PointsPolicy:
        """Validate raw settings values and return a policy.

        *tiers* accepts ``{"min_streak": 7, "bonus": 0.1}`` dicts or
        ``(7, 0.1)`` pairs, in any order.

        Raises
        ------
        ValidationError
            Non-numeric or malformed values, negative flat base,
            non-positive ``min_streak``, negative bonus, or bonuses that
            shrink as the streak grows.
        """
        try:
            base = int(flat_base)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"points.flat_base must be an integer (got {flat_base!r})") from exc
        if base < 0:
            raise ValidationError(f"points.flat_base must be >= 0 (got {flat_base})")

        parsed: list[StreakTier] = []
        try:
            for raw in tiers:
                if isinstance(raw, dict):
                    tier = StreakTier(int(raw["min_streak"]), float(raw["bonus"]))
                else:
                    days, bonus = raw
                    tier = StreakTier(int(days), float(bonus))
                parsed.append(tier)
        except (TypeError, ValueError, KeyError) as exc:
            raise ValidationError(f"Malformed streak bonus tiers: {tiers!r}") from exc

        for tier in parsed:
            if tier.min_streak <= 0 or tier.bonus < 0:
                raise ValidationError(f"Invalid streak tier: {tier}")

        parsed.sort(key=lambda t: t.min_streak)
        for lower, higher in zip(parsed, parsed[1:]):
            if higher.bonus < lower.bonus:
                raise ValidationError(
                    "Streak bonus tiers must not decrease: "
                    f"{lower.min_streak}d={lower.bonus} > {higher.min_streak}d={higher.bonus}"
                )
        return cls(flat_base=base, tiers=tuple(parsed))


DEFAULT_POLICY = PointsPolicy()


# ---------------------------------------------------------------------------
# Stage 1: Base points
# ---------------------------------------------------------------------------
def base_points(
    action: ActionRecord, category: CategoryRecord, policy: PointsPolicy = DEFAULT_POLICY,
) -> int:
    """``round(impact_value × multiplier)`` (half up), or the flat base."""
    if action.impact_value is None:
        return policy.flat_base
    if action.impact_value <= 0:
        raise InvalidInputError(
            f"impact_value must be positive (action {action.id}: {action.impact_value})"
        )
    raw = Decimal(str(action.impact_value)) * Decimal(str(category.points_multiplier))
    return int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Stage 2: Streak bonus
# ---------------------------------------------------------------------------
def streak_bonus(current_streak: int, policy: PointsPolicy = DEFAULT_POLICY) -> float:
    """Bonus fraction of the highest tier reached (0.0 below the first tier)."""
    bonus = 0.0
    for tier in policy.tiers:
        if current_streak >= tier.min_streak:
            bonus = tier.bonus
    return bonus


# ---------------------------------------------------------------------------
# Full calculation
# ---------------------------------------------------------------------------
def compute_points(
    action: ActionRecord,
    category: CategoryRecord,
    current_streak: int,
    policy: PointsPolicy = DEFAULT_POLICY,
) -> int:
    """Convert an action into a non-negative integer point value.

    Parameters
    ----------
    action : the action being scored.
    category : the action's category (must be active).
    current_streak : streak in days credited to this action.
    policy : flat base and streak tiers.

    Raises
    ------
    InvalidInputError
        Non-positive ``impact_value``, inactive or mismatched category,
        negative multiplier or negative streak.
    """
    if not category.is_active:
        raise InvalidInputError(f"Category {category.id} is inactive")
    if action.category_id != category.id:
        raise InvalidInputError(
            f"Action {action.id} belongs to category {action.category_id}, not {category.id}"
        )
    if category.points_multiplier < 0:
        raise InvalidInputError(
            f"Category {category.id} has a negative multiplier ({category.points_multiplier})"
        )
    if current_streak < 0:
        raise InvalidInputError(f"current_streak must be >= 0 (got {current_streak})")

    base = base_points(action, category, policy)
    bonus = streak_bonus(current_streak, policy)
    extra = (Decimal(base) * Decimal(str(bonus))).to_integral_value(rounding=ROUND_FLOOR)
    return base + int(extra)
