"""Test the velocity CircuitBreaker rules, ordering and window expiry."""

import pytest

from settlement_governance.core.config import CircuitBreakerConfig
from settlement_governance.core.enums import BreakerStatus, TripType
from settlement_governance.core.interfaces import ICircuitBreaker
from settlement_governance.governance.circuit_breaker import (
    CircuitBreaker,
    NullCircuitBreaker,
)


def _config(**overrides):
    base = dict(
        max_settlements_per_hour=100,
        max_settlements_per_day=500,
        max_value_per_hour_base_units=10_000_000,
        max_same_recipient_per_minute=5,
        max_same_recipient_per_hour=20,
        max_global_settlements_per_minute=30,
    )
    base.update(overrides)
    return CircuitBreakerConfig(**base)


class TestRecipientVelocity:
    def test_open_below_per_minute_limit(self, clock):
        cb = CircuitBreaker(_config(max_same_recipient_per_minute=3), clock=clock)
        for _ in range(2):
            cb.record("agent", "merchant", 1)
        assert cb.check("agent", "merchant", 1).status == BreakerStatus.OPEN

    def test_trips_at_per_minute_limit(self, clock):
        cb = CircuitBreaker(_config(max_same_recipient_per_minute=3), clock=clock)
        for _ in range(3):
            cb.record("agent", "merchant", 1)
        result = cb.check("agent", "merchant", 1)
        assert result.status == BreakerStatus.TRIPPED
        assert result.trip_type == TripType.RECIPIENT_VELOCITY
        assert result.reason == "Same recipient merchant exceeded 3 settlements/minute"
        assert result.window_stats.settlements_in_window == 3
        assert result.window_stats.value_in_window == 3
        assert result.window_stats.same_recipient_count_in_window == 3

    def test_other_recipient_unaffected(self, clock):
        cb = CircuitBreaker(_config(max_same_recipient_per_minute=3), clock=clock)
        for _ in range(3):
            cb.record("agent", "merchant", 1)
        assert cb.check("agent", "someone-else", 1).status == BreakerStatus.OPEN

    def test_recipient_limit_spans_agents(self, clock):
        cb = CircuitBreaker(_config(max_same_recipient_per_minute=2), clock=clock)
        cb.record("agent-a", "merchant", 1)
        cb.record("agent-b", "merchant", 1)
        result = cb.check("agent-c", "merchant", 1)
        assert result.trip_type == TripType.RECIPIENT_VELOCITY

    def test_reopens_after_minute_window(self, clock):
        cb = CircuitBreaker(_config(max_same_recipient_per_minute=3), clock=clock)
        for _ in range(3):
            cb.record("agent", "merchant", 1)
        assert cb.check("agent", "merchant", 1).tripped
        clock.advance(61)
        assert cb.check("agent", "merchant", 1).status == BreakerStatus.OPEN

    def test_per_hour_limit(self, clock):
        cb = CircuitBreaker(
            _config(max_same_recipient_per_minute=5, max_same_recipient_per_hour=6),
            clock=clock,
        )
        for _ in range(6):
            cb.record("agent", "merchant", 1)
            clock.advance(61)
        result = cb.check("agent", "merchant", 1)
        assert result.trip_type == TripType.RECIPIENT_VELOCITY
        assert "settlements/hour" in result.reason


class TestAgentVelocity:
    def test_hourly_count(self, clock):
        cb = CircuitBreaker(_config(max_settlements_per_hour=3), clock=clock)
        for i in range(3):
            cb.record("agent", f"merchant-{i}", 1)
        result = cb.check("agent", "merchant-new", 1)
        assert result.trip_type == TripType.AGENT_VELOCITY
        assert result.reason == "Agent agent exceeded 3 settlements/hour"

    def test_daily_count(self, clock):
        cb = CircuitBreaker(
            _config(max_settlements_per_hour=2, max_settlements_per_day=4),
            clock=clock,
        )
        for i in range(4):
            cb.record("agent", f"merchant-{i}", 1)
            clock.advance(3600 / 2 + 1)
        result = cb.check("agent", "merchant-new", 1)
        assert result.trip_type == TripType.AGENT_VELOCITY
        assert "settlements/day" in result.reason

    def test_hourly_value_includes_prospective_amount(self, clock):
        cb = CircuitBreaker(_config(max_value_per_hour_base_units=100), clock=clock)
        cb.record("agent", "m1", 60)
        assert cb.check("agent", "m2", 40).status == BreakerStatus.OPEN
        result = cb.check("agent", "m2", 41)
        assert result.trip_type == TripType.AGENT_VELOCITY
        assert result.reason == "Agent agent value 101 exceeds hourly cap 100"
        assert result.window_stats.value_in_window == 60

    def test_single_oversized_payment_trips_with_empty_history(self, clock):
        cb = CircuitBreaker(_config(max_value_per_hour_base_units=100), clock=clock)
        assert cb.check("agent", "m1", 101).trip_type == TripType.AGENT_VELOCITY


class TestGlobalVelocity:
    def test_global_per_minute(self, clock):
        cb = CircuitBreaker(_config(max_global_settlements_per_minute=3), clock=clock)
        for i in range(3):
            cb.record(f"agent-{i}", f"merchant-{i}", 1)
        result = cb.check("agent-new", "merchant-new", 1)
        assert result.trip_type == TripType.GLOBAL_VELOCITY
        assert result.reason == "Global settlements exceeded 3/minute"


class TestRuleOrdering:
    def test_recipient_checked_before_agent(self, clock):
        cb = CircuitBreaker(
            _config(max_same_recipient_per_minute=2, max_settlements_per_hour=2),
            clock=clock,
        )
        cb.record("agent", "merchant", 1)
        cb.record("agent", "merchant", 1)
        assert cb.check("agent", "merchant", 1).trip_type == TripType.RECIPIENT_VELOCITY

    def test_agent_checked_before_global(self, clock):
        cb = CircuitBreaker(
            _config(max_settlements_per_hour=2, max_global_settlements_per_minute=2),
            clock=clock,
        )
        cb.record("agent", "m1", 1)
        cb.record("agent", "m2", 1)
        assert cb.check("agent", "m3", 1).trip_type == TripType.AGENT_VELOCITY


class TestPruneAndStats:
    def test_prune_drops_records_older_than_a_day(self, clock):
        cb = CircuitBreaker(clock=clock)
        cb.record("agent", "m", 1)
        clock.advance(3600)
        cb.record("agent", "m", 1)
        clock.advance(23 * 3600 + 1)
        assert cb.prune() == 1
        assert cb.record_count() == 1

    def test_stats_reports_windows(self, clock):
        cb = CircuitBreaker(clock=clock)
        cb.record("agent", "m", 5)
        clock.advance(120)
        cb.record("agent", "m", 7)
        stats = cb.stats()
        assert stats["minute"].settlements_in_window == 1
        assert stats["hour"].settlements_in_window == 2
        assert stats["hour"].value_in_window == 12

    def test_destroy_clears_records(self, clock):
        cb = CircuitBreaker(_config(max_same_recipient_per_minute=1), clock=clock)
        cb.record("agent", "m", 1)
        cb.destroy()
        assert cb.check("agent", "m", 1).status == BreakerStatus.OPEN


class TestNullCircuitBreaker:
    def test_both_satisfy_protocol(self, clock):
        assert isinstance(CircuitBreaker(clock=clock), ICircuitBreaker)
        assert isinstance(NullCircuitBreaker(), ICircuitBreaker)

    def test_always_skip(self):
        cb = NullCircuitBreaker()
        cb.record("agent", "m", 1)
        assert cb.check("agent", "m", 10**12).status == BreakerStatus.SKIP

    @pytest.mark.asyncio
    async def test_lifecycle_noop(self):
        cb = NullCircuitBreaker()
        await cb.start()
        await cb.stop()
        cb.destroy()
