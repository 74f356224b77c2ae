"""
Tests for rate limiting.

Uses a controllable clock so window boundaries can be crossed without
sleeping.
"""

import sqlite3
from unittest.mock import Mock

import pytest

import timecraft.core.rate_limiter as rate_limiter_module
from timecraft.config.loader import RateLimitConfig
from timecraft.core.rate_limiter import (
    RateLimiter,
    format_reset_time,
    get_rate_limiter
)
from timecraft.storage.models import LedgerEntry, deserialize_ledger, serialize_ledger
from timecraft.storage.repository import InMemoryLedgerStore


START = 1_700_000_000.0


class FakeClock:
    """Clock returning a settable epoch time in seconds."""

    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRateLimiter:
    """Test sliding-window admission control."""

    def setup_method(self):
        self.clock = FakeClock()
        self.store = InMemoryLedgerStore()

    def create_limiter(self, per_minute=10, per_hour=60, per_day=200):
        """Create a limiter over the test store and clock."""
        config = RateLimitConfig(
            max_requests_per_minute=per_minute,
            max_requests_per_hour=per_hour,
            max_requests_per_day=per_day
        )
        return RateLimiter(config, self.store, clock=self.clock)

    def test_empty_ledger_allows(self):
        decision = self.create_limiter().can_make_request()
        assert decision.allowed
        assert decision.reason is None
        assert decision.reset_in is None

    def test_minute_cap(self):
        """Two requests in the same second exhaust a cap of two per minute."""
        limiter = self.create_limiter(per_minute=2)
        limiter.log_request()
        limiter.log_request()

        decision = limiter.can_make_request()

        assert not decision.allowed
        assert decision.reason == "Rate limit: 2 requests per minute"
        assert decision.reset_in == 60

    def test_minute_window_expires(self):
        limiter = self.create_limiter(per_minute=2)
        limiter.log_request()
        limiter.log_request()

        self.clock.advance(61)

        assert limiter.can_make_request().allowed

    def test_reset_in_tracks_oldest_entry_in_window(self):
        limiter = self.create_limiter(per_minute=2)
        limiter.log_request()
        self.clock.advance(20)
        limiter.log_request()
        self.clock.advance(10.5)

        decision = limiter.can_make_request()

        # oldest entry leaves the window 60s after it was logged: 60 - 30.5
        assert decision.reset_in == 30

    def test_entry_exactly_one_window_old_is_outside(self):
        limiter = self.create_limiter(per_minute=1)
        limiter.log_request()
        self.clock.advance(60)
        assert limiter.can_make_request().allowed

    def test_hour_cap_checked_after_minute(self):
        limiter = self.create_limiter(per_minute=5, per_hour=3)
        for _ in range(3):
            limiter.log_request()
            self.clock.advance(120)

        decision = limiter.can_make_request()

        assert not decision.allowed
        assert decision.reason == "Rate limit: 3 requests per hour"
        # oldest logged 360s ago
        assert decision.reset_in == 3600 - 360

    def test_minute_reported_before_hour(self):
        """When both caps are hit the minute cap is reported."""
        limiter = self.create_limiter(per_minute=2, per_hour=2)
        limiter.log_request()
        limiter.log_request()
        assert limiter.can_make_request().reason == "Rate limit: 2 requests per minute"

    def test_day_cap(self):
        limiter = self.create_limiter(per_minute=5, per_hour=5, per_day=2)
        limiter.log_request()
        self.clock.advance(2 * 3600)
        limiter.log_request()
        self.clock.advance(3600)

        decision = limiter.can_make_request()

        assert not decision.allowed
        assert decision.reason == "Rate limit: 2 requests per day"
        assert decision.reset_in == 86400 - 3 * 3600

    def test_old_entries_compacted(self):
        limiter = self.create_limiter()
        limiter.log_request()
        self.clock.advance(86400 + 1)
        limiter.log_request()

        assert deserialize_ledger(self.store.load()) == [
            LedgerEntry(timestamp=int(self.clock.now * 1000), tokens_used=650)
        ]

    def test_compaction_on_read_is_persisted(self):
        limiter = self.create_limiter()
        limiter.log_request()
        self.clock.advance(86400 + 1)

        limiter.can_make_request()

        assert deserialize_ledger(self.store.load()) == []

    def test_log_request_persists_immediately(self):
        limiter = self.create_limiter()
        limiter.log_request(tokens_used=900)

        assert deserialize_ledger(self.store.load()) == [
            LedgerEntry(timestamp=int(START * 1000), tokens_used=900)
        ]

    def test_loads_prior_ledger(self):
        self.store.save(serialize_ledger([
            LedgerEntry(timestamp=int((START - 10) * 1000), tokens_used=650),
            LedgerEntry(timestamp=int((START - 5) * 1000), tokens_used=650),
        ]))

        limiter = self.create_limiter(per_minute=2)

        assert not limiter.can_make_request().allowed

    def test_loading_drops_expired_entries(self):
        self.store.save(serialize_ledger([
            LedgerEntry(timestamp=int((START - 90000) * 1000), tokens_used=650),
        ]))

        limiter = self.create_limiter()

        assert limiter.get_usage_stats().requests_last_day == 0
        assert deserialize_ledger(self.store.load()) == []

    def test_corrupt_ledger_starts_empty(self):
        self.store.save(b"{corrupt")
        limiter = self.create_limiter()
        assert limiter.get_usage_stats().requests_last_day == 0

    def test_unreadable_store_starts_empty(self):
        store = Mock()
        store.load.side_effect = sqlite3.OperationalError("disk I/O error")

        limiter = RateLimiter(RateLimitConfig(), store, clock=self.clock)

        assert limiter.can_make_request().allowed

    def test_save_failure_is_not_fatal(self):
        store = Mock()
        store.load.return_value = None
        store.save.side_effect = OSError("read-only file system")
        limiter = RateLimiter(RateLimitConfig(max_requests_per_minute=1), store, clock=self.clock)

        limiter.log_request()

        assert not limiter.can_make_request().allowed

    def test_reset_clears_ledger(self):
        limiter = self.create_limiter(per_minute=1)
        limiter.log_request()

        limiter.reset()

        assert limiter.can_make_request().allowed
        assert deserialize_ledger(self.store.load()) == []


class TestUsageStats:
    """Test usage statistics."""

    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(RateLimitConfig(), InMemoryLedgerStore(), clock=self.clock)

    def test_window_counts(self):
        self.limiter.log_request()
        self.clock.advance(2 * 3600)
        self.limiter.log_request()
        self.clock.advance(600)
        self.limiter.log_request()

        stats = self.limiter.get_usage_stats()

        assert stats.requests_last_minute == 1
        assert stats.requests_last_hour == 2
        assert stats.requests_last_day == 3
        assert stats.total_tokens_today == 3 * 650

    def test_estimated_cost(self):
        self.limiter.log_request(tokens_used=1_000_000)
        assert self.limiter.get_usage_stats().estimated_cost_today == pytest.approx(0.30)

    def test_cost_scales_linearly_with_tokens(self):
        """Doubling every logged token count doubles the estimate."""
        other = RateLimiter(RateLimitConfig(), InMemoryLedgerStore(), clock=self.clock)
        for tokens in (650, 1200, 333):
            self.limiter.log_request(tokens)
            other.log_request(tokens * 2)

        single = self.limiter.get_usage_stats().estimated_cost_today
        double = other.get_usage_stats().estimated_cost_today

        assert double == pytest.approx(2 * single)

    def test_custom_unit_cost(self):
        limiter = RateLimiter(
            RateLimitConfig(), InMemoryLedgerStore(), clock=self.clock, cost_per_million_tokens=1.0
        )
        limiter.log_request(tokens_used=500_000)
        assert limiter.get_usage_stats().estimated_cost_today == pytest.approx(0.5)


class TestGetRateLimiter:
    """Test the process-wide limiter accessor."""

    def setup_method(self):
        rate_limiter_module._default_rate_limiter = None

    def teardown_method(self):
        rate_limiter_module._default_rate_limiter = None

    def test_default_config(self):
        limiter = get_rate_limiter()
        assert limiter.config == RateLimitConfig(10, 60, 200)

    def test_same_instance_and_later_config_ignored(self):
        first = get_rate_limiter(RateLimitConfig(max_requests_per_minute=1))
        second = get_rate_limiter(RateLimitConfig(max_requests_per_minute=99))

        assert first is second
        assert second.config.max_requests_per_minute == 1


class TestFormatResetTime:
    """Test reset time display."""

    @pytest.mark.parametrize("seconds,expected", [
        (1, "1 second"),
        (45, "45 seconds"),
        (60, "1 minute"),
        (61, "2 minutes"),
        (3540, "59 minutes"),
        (3599, "1 hour"),
        (3600, "1 hour"),
        (5400, "2 hours"),
    ])
    def test_format(self, seconds, expected):
        assert format_reset_time(seconds) == expected
