"""
tests/test_config.py — config.yaml Loader Tests
================================================
"""

from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from greenloop.config import DEFAULT_LOCK_TIMEOUT_MS, load_config


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_full_file(self, tmp_path):
        path = _write(tmp_path, (
            "organization_name: Acme Corp\n"
            "timezone: Europe/Berlin\n"
            "ledger_lock_timeout_ms: 500\n"
            "leaderboard_limit: 25\n"
        ))
        cfg = load_config(path)
        assert cfg.organization_name == "Acme Corp"
        assert cfg.tz == ZoneInfo("Europe/Berlin")
        assert cfg.ledger_lock_timeout_ms == 500
        assert cfg.leaderboard_limit == 25

    def test_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, "organization_name: Acme\n"))
        assert cfg.timezone == "UTC"
        assert cfg.ledger_lock_timeout_ms == DEFAULT_LOCK_TIMEOUT_MS

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "timezone: UTC\n"))

    def test_unknown_timezone(self, tmp_path):
        path = _write(tmp_path, "organization_name: Acme\ntimezone: Mars/Olympus\n")
        with pytest.raises(ZoneInfoNotFoundError):
            load_config(path)
