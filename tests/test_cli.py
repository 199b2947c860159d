"""
tests/test_cli.py — Command-Line Entry Point Tests
===================================================
Drives ``greenloop.__main__.main`` against a temporary SQLite file.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from greenloop.__main__ import build_parser, main
from greenloop.database.models import Action, Category, User


@pytest.fixture
def cli_env(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("organization_name: Test Org\ntimezone: UTC\n", encoding="utf-8")
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    return ["--config", str(config_path), "--database-url", url], url


def _run(capsys, argv) -> tuple[int, object]:
    code = main(argv)
    out = capsys.readouterr().out
    return code, json.loads(out)


def _add_pending_action(url: str) -> tuple[str, str]:
    engine = create_engine(url)
    try:
        with Session(engine) as session:
            user = User(email="ada@example.com", display_name="Ada")
            session.add(user)
            category = session.scalars(select(Category).where(Category.name == "Transportation")).one()
            session.flush()
            action = Action(
                user_id=user.id,
                category_id=category.id,
                title="Cycled to work",
                impact_value=5.0,
                impact_unit="kg_co2",
                action_date=datetime(2026, 3, 2, 8, 0, tzinfo=UTC),
            )
            session.add(action)
            session.commit()
            return user.id, action.id
    finally:
        engine.dispose()


class TestCli:
    def test_init_db_seeds(self, cli_env, capsys):
        base, _ = cli_env
        code, payload = _run(capsys, [*base, "init-db"])
        assert code == 0
        assert payload == {"categories": 5, "badges": 8}

    def test_verify_then_summary(self, cli_env, capsys):
        base, url = cli_env
        _run(capsys, [*base, "init-db"])
        user_id, action_id = _add_pending_action(url)

        code, outcome = _run(capsys, [*base, "verify", action_id, "--admin", "admin-1"])
        assert code == 0
        assert outcome["status"] == "verified"
        # 5.0 × 2.0 Transportation multiplier
        assert outcome["scoring"]["points"] == 10
        assert [a["status"] for a in outcome["scoring"]["awards"]] == ["awarded"]

        code, summary = _run(capsys, [*base, "summary", user_id])
        assert code == 0
        assert summary["total_points"] == 10
        assert summary["category_breakdown"]["Transportation"] == {"actions": 1, "points": 10}

        code, board = _run(capsys, [*base, "leaderboard", "--user", user_id])
        assert board["user_rank"] == 1
        assert board["entries"][0]["display_name"] == "Ada"

    def test_engine_error_exit_code(self, cli_env, capsys):
        base, _ = cli_env
        _run(capsys, [*base, "init-db"])
        code, payload = _run(capsys, [*base, "summary", "nobody"])
        assert code == 1
        assert payload["error"] == "NotFoundError"

    def test_pending_lists_unverified_actions(self, cli_env, capsys):
        base, url = cli_env
        _run(capsys, [*base, "init-db"])
        user_id, action_id = _add_pending_action(url)

        code, pending = _run(capsys, [*base, "pending", "--user", user_id])
        assert code == 0
        assert [a["id"] for a in pending] == [action_id]

        _run(capsys, [*base, "verify", action_id, "--admin", "admin-1"])
        _, pending = _run(capsys, [*base, "pending"])
        assert pending == []

    def test_progress_and_achievements(self, cli_env, capsys):
        base, url = cli_env
        _run(capsys, [*base, "init-db"])
        user_id, action_id = _add_pending_action(url)
        _run(capsys, [*base, "verify", action_id, "--admin", "admin-1"])

        code, progress = _run(capsys, [*base, "progress", user_id])
        assert code == 0
        assert progress["user"]["display_name"] == "Ada"
        assert [(d["actions"], d["points"], d["kg_co2"]) for d in progress["daily"]] == [(1, 10, 5.0)]
        assert progress["categories"][0]["name"] == "Transportation"
        assert progress["categories"][0]["average_points"] == 10.0

        code, achievements = _run(capsys, [*base, "achievements", user_id])
        assert code == 0
        assert achievements["recent_count"] == 1
        assert achievements["claimable_count"] == len(achievements["claimable"])

    def test_progress_unknown_user(self, cli_env, capsys):
        base, _ = cli_env
        _run(capsys, [*base, "init-db"])
        code, payload = _run(capsys, [*base, "progress", "nobody"])
        assert code == 1
        assert payload["error"] == "NotFoundError"

    def test_reconcile_dry_run(self, cli_env, capsys):
        base, _ = cli_env
        _run(capsys, [*base, "init-db"])
        code, report = _run(capsys, [*base, "reconcile", "--dry-run"])
        assert code == 0
        assert report["drifted"] == 0


def test_parser_rejects_unknown_timeframe():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["leaderboard", "--timeframe", "yearly"])


@pytest.mark.parametrize("value", ["0", "-3", "ten"])
def test_limit_must_be_positive(value):
    with pytest.raises(SystemExit):
        build_parser().parse_args(["leaderboard", "--limit", value])


def test_limit_and_days_parsed():
    args = build_parser().parse_args(["leaderboard", "--limit", "5"])
    assert args.limit == 5
    args = build_parser().parse_args(["progress", "u1", "--days", "7"])
    assert args.days == 7
