"""Test WallClock and SimClock."""

from datetime import datetime, timedelta, timezone

import pytest

from settlement_governance.core.clock import SimClock, WallClock


class TestWallClock:
    def test_now_returns_utc(self):
        now = WallClock().now()
        assert now.tzinfo == timezone.utc

    def test_now_ms_is_recent(self):
        ms = WallClock().now_ms()
        expected = int(datetime.now(timezone.utc).timestamp() * 1000)
        assert abs(ms - expected) < 1000


class TestSimClock:
    def test_default_start(self, clock):
        assert clock.now() == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_custom_start(self):
        start = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert SimClock(start).now() == start

    def test_set_time_cannot_go_backwards(self, clock):
        with pytest.raises(ValueError, match="cannot go backwards"):
            clock.set_time(clock.now() - timedelta(seconds=1))

    def test_set_time_same_time_ok(self, clock):
        same = clock.now()
        clock.set_time(same)
        assert clock.now() == same

    def test_advance_seconds(self, clock):
        before = clock.now_ms()
        clock.advance(1.5)
        assert clock.now_ms() - before == 1500

    def test_advance_ms(self, clock):
        before = clock.now_ms()
        clock.advance_ms(60_000)
        assert clock.now_ms() - before == 60_000
