"""In-memory settlement signature deduplication with TTL expiry.

Signatures are stored with an expiry timestamp.  Expired entries are
dropped lazily by :meth:`ReplayGuard.check` and swept by a background
task (default every 60s) so memory stays bounded even without reads.

Restart behaviour: state resets on process restart, opening a brief
window where a recently settled transaction passes this guard.  The
ledger still rejects the stale transaction reference, so this guard
narrows the attack window rather than being the sole defense.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading

from settlement_governance.core.clock import IClock, WallClock

logger = logging.getLogger(__name__)


class ReplayGuard:
    """Tracks settled signatures until their TTL elapses.

    Usage::

        guard = ReplayGuard()
        await guard.start()
        if guard.check(sig):
            ...  # replay
        guard.record(sig, ttl_seconds=360)
        guard.destroy()
    """

    def __init__(
        self,
        evict_interval_seconds: float = 60.0,
        clock: IClock | None = None,
    ) -> None:
        self._interval = evict_interval_seconds
        self._clock = clock or WallClock()
        self._lock = threading.Lock()
        self._entries: dict[str, int] = {}  # signature -> expiry (epoch ms)
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def check(self, signature: str) -> bool:
        """Return ``True`` if *signature* was settled and has not expired."""
        with self._lock:
            expiry = self._entries.get(signature)
            if expiry is None:
                return False
            if expiry <= self._clock.now_ms():
                del self._entries[signature]
                return False
            return True

    def record(self, signature: str, ttl_seconds: float) -> None:
        """Track *signature* for *ttl_seconds*.  Last write wins."""
        with self._lock:
            self._entries[signature] = self._clock.now_ms() + int(ttl_seconds * 1000)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def evict(self) -> int:
        """Drop every expired entry.  Returns the number evicted."""
        with self._lock:
            now = self._clock.now_ms()
            expired = [sig for sig, expiry in self._entries.items() if expiry <= now]
            for sig in expired:
                del self._entries[sig]
        if expired:
            logger.debug("ReplayGuard evicted %d expired signatures", len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the background eviction loop."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(
            self._evict_loop(), name="replay-guard-evict",
        )
        logger.info("ReplayGuard started (evict_interval=%.0fs)", self._interval)

    async def stop(self) -> None:
        """Stop the eviction loop and wait for it to exit."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def destroy(self) -> None:
        """Cancel the eviction loop and clear all state."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        with self._lock:
            self._entries.clear()

    async def _evict_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.evict()
