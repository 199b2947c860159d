"""
tests/test_retry.py — Caller-Side Retry Tests
==============================================
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from greenloop.errors import ConcurrencyError, ValidationError
from greenloop.services.retry import backoff_delay, retry_on_concurrency


class TestRetryOnConcurrency:
    def test_returns_first_success(self):
        func = MagicMock(return_value=42)
        sleep = MagicMock()
        assert retry_on_concurrency(func, "a", key="b", sleep=sleep) == 42
        func.assert_called_once_with("a", key="b")
        sleep.assert_not_called()

    def test_retries_then_succeeds(self):
        func = MagicMock(side_effect=[ConcurrencyError("busy"), ConcurrencyError("busy"), "ok"])
        sleep = MagicMock()
        assert retry_on_concurrency(func, attempts=3, sleep=sleep) == "ok"
        assert func.call_count == 3
        assert sleep.call_count == 2

    def test_gives_up_after_attempts(self):
        func = MagicMock(side_effect=ConcurrencyError("busy"))
        sleep = MagicMock()
        with pytest.raises(ConcurrencyError):
            retry_on_concurrency(func, attempts=4, sleep=sleep)
        assert func.call_count == 4
        assert sleep.call_count == 3

    def test_other_errors_not_retried(self):
        func = MagicMock(side_effect=ValidationError("bad"))
        with pytest.raises(ValidationError):
            retry_on_concurrency(func, attempts=5, sleep=MagicMock())
        func.assert_called_once()

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            retry_on_concurrency(MagicMock(), attempts=0)


class TestBackoff:
    def test_grows_and_caps(self):
        for attempt, base in ((1, 0.1), (2, 0.2), (3, 0.4)):
            delay = backoff_delay(attempt, 0.1, 2.0)
            assert base <= delay <= base * 1.5 + 1e-9
        assert backoff_delay(10, 0.1, 2.0) <= 3.0
