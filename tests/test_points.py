"""
tests/test_points.py — Points Calculator Tests
===============================================
Pure calculation: base points, rounding, streak tiers, input validation
and policy construction from settings values.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from greenloop.engine.points import (
    DEFAULT_POLICY,
    PointsPolicy,
    base_points,
    compute_points,
    streak_bonus,
)
from greenloop.engine.records import ActionRecord, CategoryRecord
from greenloop.errors import InvalidInputError, ValidationError


def _action(impact: float | None = None, category_id: str = "cat-1") -> ActionRecord:
    return ActionRecord(
        id="act-1",
        user_id="user-1",
        category_id=category_id,
        action_date=datetime(2026, 3, 2, 9, 0, tzinfo=UTC),
        verification_status="verified",
        impact_value=impact,
    )


def _category(multiplier: float = 1.0, active: bool = True) -> CategoryRecord:
    return CategoryRecord(id="cat-1", points_multiplier=multiplier, is_active=active)


class TestBasePoints:
    def test_impact_times_multiplier(self):
        assert base_points(_action(5), _category(2.0)) == 10

    def test_flat_base_without_impact(self):
        assert base_points(_action(None), _category(3.0)) == DEFAULT_POLICY.flat_base

    def test_flat_base_from_policy(self):
        policy = PointsPolicy.build(25, [])
        assert base_points(_action(None), _category(), policy) == 25

    def test_rounds_half_up(self):
        # 2.5 → 3, not banker's rounding to 2
        assert base_points(_action(2.5), _category(1.0)) == 3
        assert base_points(_action(1.25), _category(2.0)) == 3

    def test_binary_float_artifacts_do_not_leak(self):
        # 0.1 * 3 == 0.30000000000000004 in binary floating point
        assert base_points(_action(0.1), _category(3.0)) == 0
        assert base_points(_action(1.15), _category(10.0)) == 12

    def test_zero_multiplier_yields_zero(self):
        assert base_points(_action(40), _category(0.0)) == 0

    @pytest.mark.parametrize("impact", [0, -1, -0.5])
    def test_non_positive_impact_rejected(self, impact):
        with pytest.raises(InvalidInputError):
            base_points(_action(impact), _category())


class TestStreakBonus:
    @pytest.mark.parametrize(
        ("streak", "expected"),
        [(0, 0.0), (6, 0.0), (7, 0.10), (29, 0.10), (30, 0.25), (400, 0.25)],
    )
    def test_default_tiers(self, streak, expected):
        assert streak_bonus(streak) == expected


class TestComputePoints:
    def test_multiplier_scenario(self):
        assert compute_points(_action(5), _category(2.0), current_streak=0) == 10

    def test_seven_day_streak_adds_ten_percent(self):
        assert compute_points(_action(100), _category(1.0), current_streak=7) == 110

    def test_thirty_day_streak_adds_twenty_five_percent(self):
        assert compute_points(_action(100), _category(1.0), current_streak=30) == 125

    def test_bonus_rounds_down(self):
        # base 15, +10% = 1.5 → 1
        assert compute_points(_action(15), _category(1.0), current_streak=7) == 16

    def test_deterministic(self):
        results = {compute_points(_action(7.3), _category(1.7), 12) for _ in range(20)}
        assert len(results) == 1

    def test_never_negative(self):
        assert compute_points(_action(1), _category(0.0), current_streak=50) == 0

    def test_inactive_category_rejected(self):
        with pytest.raises(InvalidInputError, match="inactive"):
            compute_points(_action(5), _category(active=False), current_streak=0)

    def test_category_mismatch_rejected(self):
        with pytest.raises(InvalidInputError):
            compute_points(_action(5, category_id="other"), _category(), current_streak=0)

    def test_negative_multiplier_rejected(self):
        with pytest.raises(InvalidInputError):
            compute_points(_action(5), _category(-1.0), current_streak=0)

    def test_negative_streak_rejected(self):
        with pytest.raises(InvalidInputError):
            compute_points(_action(5), _category(), current_streak=-1)

    def test_invalid_input_is_a_validation_error(self):
        assert issubclass(InvalidInputError, ValidationError)


class TestPointsPolicy:
    def test_accepts_dicts_in_any_order(self):
        policy = PointsPolicy.build(
            10, [{"min_streak": 30, "bonus": 0.25}, {"min_streak": 7, "bonus": 0.1}],
        )
        assert [t.min_streak for t in policy.tiers] == [7, 30]

    def test_accepts_pairs(self):
        policy = PointsPolicy.build(5, [(3, 0.05)])
        assert policy.flat_base == 5
        assert streak_bonus(3, policy) == 0.05

    def test_decreasing_bonus_rejected(self):
        with pytest.raises(ValidationError, match="must not decrease"):
            PointsPolicy.build(10, [(7, 0.5), (30, 0.1)])

    def test_negative_flat_base_rejected(self):
        with pytest.raises(ValidationError):
            PointsPolicy.build(-1, [])

    @pytest.mark.parametrize("tier", [(0, 0.1), (7, -0.1)])
    def test_bad_tier_rejected(self, tier):
        with pytest.raises(ValidationError):
            PointsPolicy.build(10, [tier])

    def test_custom_tiers_drive_compute(self):
        policy = PointsPolicy.build(10, [(2, 0.5)])
        assert compute_points(_action(10), _category(), 2, policy) == 15
