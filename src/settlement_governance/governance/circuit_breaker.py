"""Velocity circuit breaker with same-recipient tracking.

Tracks three dimensions over sliding windows of successful settlements:

1. Per-recipient settlements per minute/hour (prompt injection defense:
   an agent tricked into paying one address over and over)
2. Per-agent settlement count per hour/day and value per hour
3. Global settlement rate per minute

Rules are evaluated in that order and the first violation short-circuits.

Restart behaviour: all window records reset on restart, which briefly
allows bursts that would normally trip.  Limits recover within one
window period.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Iterable

from pydantic import BaseModel

from settlement_governance.core.clock import IClock, WallClock
from settlement_governance.core.config import CircuitBreakerConfig
from settlement_governance.core.enums import BreakerStatus, TripType

logger = logging.getLogger(__name__)

ONE_MINUTE_MS = 60 * 1000
ONE_HOUR_MS = 60 * ONE_MINUTE_MS
ONE_DAY_MS = 24 * ONE_HOUR_MS


# ----------------------------------------------------------------------
# Records and results
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class SettlementRecord:
    timestamp_ms: int
    agent_id: str
    recipient: str
    amount: int


class WindowStats(BaseModel):
    settlements_in_window: int = 0
    value_in_window: int = 0
    same_recipient_count_in_window: int = 0


class CircuitBreakerResult(BaseModel):
    status: BreakerStatus
    trip_type: TripType | None = None
    reason: str | None = None
    window_stats: WindowStats | None = None

    @property
    def tripped(self) -> bool:
        return self.status == BreakerStatus.TRIPPED


def _total(records: Iterable[SettlementRecord]) -> int:
    return sum(r.amount for r in records)


# ----------------------------------------------------------------------
# Breaker
# ----------------------------------------------------------------------

class CircuitBreaker:
    """Sliding-window velocity tracker.

    :meth:`check` is read-only; :meth:`record` is called by the
    coordinator only after a settlement actually succeeds.  Records older
    than 24h are pruned by a background task (see :meth:`start`).
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: IClock | None = None,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._clock = clock or WallClock()
        self._lock = threading.Lock()
        self._records: deque[SettlementRecord] = deque()
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Core logic
    # ------------------------------------------------------------------

    def check(self, agent_id: str, recipient: str, amount: int) -> CircuitBreakerResult:
        """Evaluate the six velocity rules for a prospective settlement."""
        cfg = self._config
        with self._lock:
            now = self._clock.now_ms()
            records = list(self._records)

        # 1. Same-recipient per minute
        recipient_minute = [
            r for r in records
            if r.recipient == recipient and r.timestamp_ms >= now - ONE_MINUTE_MS
        ]
        if len(recipient_minute) >= cfg.max_same_recipient_per_minute:
            return self._trip(
                TripType.RECIPIENT_VELOCITY,
                f"Same recipient {recipient} exceeded "
                f"{cfg.max_same_recipient_per_minute} settlements/minute",
                recipient_minute,
                same_recipient=len(recipient_minute),
            )

        # 2. Same-recipient per hour
        recipient_hour = [
            r for r in records
            if r.recipient == recipient and r.timestamp_ms >= now - ONE_HOUR_MS
        ]
        if len(recipient_hour) >= cfg.max_same_recipient_per_hour:
            return self._trip(
                TripType.RECIPIENT_VELOCITY,
                f"Same recipient {recipient} exceeded "
                f"{cfg.max_same_recipient_per_hour} settlements/hour",
                recipient_hour,
                same_recipient=len(recipient_hour),
            )

        # 3. Agent count per hour
        agent_hour = [
            r for r in records
            if r.agent_id == agent_id and r.timestamp_ms >= now - ONE_HOUR_MS
        ]
        if len(agent_hour) >= cfg.max_settlements_per_hour:
            return self._trip(
                TripType.AGENT_VELOCITY,
                f"Agent {agent_id} exceeded "
                f"{cfg.max_settlements_per_hour} settlements/hour",
                agent_hour,
            )

        # 4. Agent count per day
        agent_day = [
            r for r in records
            if r.agent_id == agent_id and r.timestamp_ms >= now - ONE_DAY_MS
        ]
        if len(agent_day) >= cfg.max_settlements_per_day:
            return self._trip(
                TripType.AGENT_VELOCITY,
                f"Agent {agent_id} exceeded "
                f"{cfg.max_settlements_per_day} settlements/day",
                agent_day,
            )

        # 5. Agent value per hour, including the amount under evaluation
        hourly_value = _total(agent_hour)
        if hourly_value + amount > cfg.max_value_per_hour_base_units:
            return self._trip(
                TripType.AGENT_VELOCITY,
                f"Agent {agent_id} value {hourly_value + amount} exceeds "
                f"hourly cap {cfg.max_value_per_hour_base_units}",
                agent_hour,
            )

        # 6. Global per minute
        global_minute = [r for r in records if r.timestamp_ms >= now - ONE_MINUTE_MS]
        if len(global_minute) >= cfg.max_global_settlements_per_minute:
            return self._trip(
                TripType.GLOBAL_VELOCITY,
                f"Global settlements exceeded "
                f"{cfg.max_global_settlements_per_minute}/minute",
                global_minute,
            )

        return CircuitBreakerResult(status=BreakerStatus.OPEN)

    def record(self, agent_id: str, recipient: str, amount: int) -> None:
        """Append a successful settlement to the window history."""
        with self._lock:
            self._records.append(SettlementRecord(
                timestamp_ms=self._clock.now_ms(),
                agent_id=agent_id,
                recipient=recipient,
                amount=int(amount),
            ))

    def prune(self) -> int:
        """Drop records older than 24h.  Returns the number dropped."""
        with self._lock:
            cutoff = self._clock.now_ms() - ONE_DAY_MS
            dropped = 0
            while self._records and self._records[0].timestamp_ms < cutoff:
                self._records.popleft()
                dropped += 1
        return dropped

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, WindowStats]:
        """Global window statistics for health reporting."""
        with self._lock:
            now = self._clock.now_ms()
            records = list(self._records)
        windows = {"minute": ONE_MINUTE_MS, "hour": ONE_HOUR_MS, "day": ONE_DAY_MS}
        out: dict[str, WindowStats] = {}
        for name, span in windows.items():
            in_window = [r for r in records if r.timestamp_ms >= now - span]
            out[name] = WindowStats(
                settlements_in_window=len(in_window),
                value_in_window=_total(in_window),
            )
        return out

    def record_count(self) -> int:
        with self._lock:
            return len(self._records)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background prune loop."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(
            self._prune_loop(), name="circuit-breaker-prune",
        )
        logger.info(
            "CircuitBreaker started (prune_interval=%.0fs)",
            self._config.prune_interval_seconds,
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def destroy(self) -> None:
        """Cancel the prune loop and clear all records."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        with self._lock:
            self._records.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _prune_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.prune_interval_seconds)
            self.prune()

    @staticmethod
    def _trip(
        trip_type: TripType,
        reason: str,
        window: list[SettlementRecord],
        same_recipient: int = 0,
    ) -> CircuitBreakerResult:
        logger.warning("Circuit breaker TRIPPED: type=%s, %s", trip_type.value, reason)
        return CircuitBreakerResult(
            status=BreakerStatus.TRIPPED,
            trip_type=trip_type,
            reason=reason,
            window_stats=WindowStats(
                settlements_in_window=len(window),
                value_in_window=_total(window),
                same_recipient_count_in_window=same_recipient,
            ),
        )


class NullCircuitBreaker:
    """Stand-in when velocity tracking is disabled.  Always ``skip``."""

    def check(self, agent_id: str, recipient: str, amount: int) -> CircuitBreakerResult:
        return CircuitBreakerResult(status=BreakerStatus.SKIP)

    def record(self, agent_id: str, recipient: str, amount: int) -> None:
        return None

    def stats(self) -> dict[str, WindowStats]:
        return {}

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    def destroy(self) -> None:
        return None
