"""
tests/test_badges.py — Badge Rule Engine Tests
===============================================
Handler registry, eligibility variants and progress reporting.  No DB.
"""

from __future__ import annotations

import pytest

from greenloop.engine.badges import (
    CRITERIA_HANDLERS,
    Eligibility,
    badge_progress,
    check_eligibility,
    evaluate,
)
from greenloop.engine.records import BadgeRecord, StatsSnapshot
from greenloop.errors import ValidationError


def _badge(
    criteria_type: str,
    value: int,
    *,
    badge_id: str = "b1",
    category_id: str | None = None,
    active: bool = True,
) -> BadgeRecord:
    return BadgeRecord(
        id=badge_id,
        name=f"Badge {badge_id}",
        criteria_type=criteria_type,
        criteria_value=value,
        category_id=category_id,
        is_active=active,
    )


def _snap(**kw) -> StatsSnapshot:
    return StatsSnapshot(user_id="u1", **kw)


class TestHandlers:
    def test_every_criteria_type_has_a_handler(self):
        assert set(CRITERIA_HANDLERS) == {
            "action_count", "points_total", "streak_days", "category_master",
        }

    @pytest.mark.parametrize(
        ("criteria", "snapshot", "met"),
        [
            ("action_count", {"verified_actions": 5}, True),
            ("action_count", {"verified_actions": 4}, False),
            ("points_total", {"total_points": 5}, True),
            ("points_total", {"total_points": 4}, False),
            ("streak_days", {"current_streak": 5}, True),
            ("streak_days", {"current_streak": 4, "longest_streak": 10}, False),
        ],
    )
    def test_threshold(self, criteria, snapshot, met):
        badge = _badge(criteria, 5)
        expected = Eligibility.ELIGIBLE if met else Eligibility.NOT_ELIGIBLE
        assert check_eligibility(badge, _snap(**snapshot)) is expected

    def test_category_master_counts_only_its_category(self):
        badge = _badge("category_master", 3, category_id="transport")
        snap = _snap(verified_actions=10, category_actions={"transport": 2, "energy": 8})
        assert check_eligibility(badge, snap) is Eligibility.NOT_ELIGIBLE

        snap = _snap(verified_actions=3, category_actions={"transport": 3})
        assert check_eligibility(badge, snap) is Eligibility.ELIGIBLE

    def test_category_master_without_category_never_met(self):
        badge = _badge("category_master", 1)
        snap = _snap(category_actions={"transport": 50})
        assert check_eligibility(badge, snap) is Eligibility.NOT_ELIGIBLE


class TestEligibilityVariants:
    def test_owned_wins(self):
        badge = _badge("points_total", 1)
        assert check_eligibility(badge, _snap(total_points=0), {"b1"}) is Eligibility.ALREADY_OWNED

    def test_inactive(self):
        badge = _badge("points_total", 1, active=False)
        assert check_eligibility(badge, _snap(total_points=50)) is Eligibility.INACTIVE

    def test_unknown_criteria_is_not_eligible(self):
        badge = _badge("moon_phase", 1)
        assert check_eligibility(badge, _snap(total_points=50)) is Eligibility.NOT_ELIGIBLE


class TestEvaluate:
    def test_returns_newly_met_badges_only(self):
        badges = [
            _badge("points_total", 100, badge_id="century"),
            _badge("points_total", 1000, badge_id="thousand"),
            _badge("action_count", 1, badge_id="first"),
            _badge("action_count", 1, badge_id="retired", active=False),
        ]
        snap = _snap(total_points=150, verified_actions=3)
        assert evaluate("u1", snap, badges, owned={"first"}) == {"century"}

    def test_empty_when_nothing_met(self):
        assert evaluate("u1", _snap(), [_badge("points_total", 10)]) == set()

    def test_snapshot_must_match_user(self):
        with pytest.raises(ValidationError):
            evaluate("someone-else", _snap(), [])

    def test_user_mismatch_is_not_a_value_error(self):
        with pytest.raises(ValidationError) as exc_info:
            evaluate("someone-else", _snap(), [_badge("points_total", 0)])
        assert not isinstance(exc_info.value, ValueError)


class TestProgress:
    def test_progress_and_percent(self):
        progress = badge_progress(_badge("points_total", 200), _snap(total_points=50))
        assert (progress.current, progress.target) == (50, 200)
        assert progress.percent == 25
        assert not progress.met

    def test_percent_capped(self):
        progress = badge_progress(_badge("action_count", 2), _snap(verified_actions=9))
        assert progress.percent == 100
        assert progress.met
