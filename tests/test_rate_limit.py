"""Tests for the fixed-window rate limiter."""

from __future__ import annotations

from clinic_assistant.api.rate_limit import RateLimiter


class TestRateLimiter:
    def test_allows_up_to_the_limit_per_window(self):
        limiter = RateLimiter(3)
        results = [limiter.check_and_increment("user:7", now=120.0) for _ in range(4)]
        assert results == [True, True, True, False]

    def test_new_window_resets(self):
        limiter = RateLimiter(1)
        assert limiter.check_and_increment("guest:1.2.3.4", now=59.0) is True
        assert limiter.check_and_increment("guest:1.2.3.4", now=59.5) is False
        assert limiter.check_and_increment("guest:1.2.3.4", now=60.0) is True

    def test_keys_are_independent(self):
        limiter = RateLimiter(1)
        assert limiter.check_and_increment("user:1", now=0.0) is True
        assert limiter.check_and_increment("user:2", now=0.0) is True

    def test_reset(self):
        limiter = RateLimiter(1)
        limiter.check_and_increment("user:1", now=0.0)
        limiter.reset()
        assert limiter.check_and_increment("user:1", now=0.0) is True

    def test_keys_from_earlier_windows_are_dropped(self):
        limiter = RateLimiter(5)
        for i in range(100):
            limiter.check_and_increment(f"guest:10.0.0.{i}", now=0.0)
        assert limiter.tracked_keys() == 100

        limiter.check_and_increment("guest:10.0.1.1", now=60.0)
        assert limiter.tracked_keys() == 1
        # A dropped key starts over with a full budget.
        assert limiter.check_and_increment("guest:10.0.0.1", now=61.0) is True
