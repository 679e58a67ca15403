"""Pure local checks and the per-minute settlement rate counter.

These are the cheapest and most deterministic checks in the pipeline, so
the coordinator runs them first in both before-verify and before-settle.
"""

from __future__ import annotations

import threading
from collections import deque

from settlement_governance.core.clock import IClock, WallClock
from settlement_governance.core.config import GovernanceConfig
from settlement_governance.core.models import CheckResult, PaymentRequirements

_ALLOWED = CheckResult(allowed=True)


def check_token_allowlist(
    asset: str,
    allowed: list[str] | None = None,
) -> CheckResult:
    if not allowed:
        return _ALLOWED
    if asset in allowed:
        return _ALLOWED
    return CheckResult(allowed=False, reason=f"Token {asset} is not in the allowlist")


def check_recipient_allowlist(
    pay_to: str,
    allowed: list[str] | None = None,
) -> CheckResult:
    if not allowed:
        return _ALLOWED
    if pay_to in allowed:
        return _ALLOWED
    return CheckResult(
        allowed=False, reason=f"Recipient {pay_to} is not in the allowlist"
    )


def check_amount_cap(amount: int, max_amount: int | None = None) -> CheckResult:
    """Boundary-inclusive: ``amount == max_amount`` is allowed."""
    if max_amount is None:
        return _ALLOWED
    if int(amount) <= int(max_amount):
        return _ALLOWED
    return CheckResult(
        allowed=False, reason=f"Amount {amount} exceeds cap {max_amount}"
    )


def check_rate_limit(count: int, max_count: int) -> CheckResult:
    if count < max_count:
        return _ALLOWED
    return CheckResult(
        allowed=False,
        reason=f"Rate limit exceeded: {count}/{max_count} per minute",
    )


def run_local_checks(
    requirements: PaymentRequirements,
    config: GovernanceConfig,
) -> CheckResult:
    """Token allowlist -> recipient allowlist -> amount cap."""
    result = check_token_allowlist(requirements.asset, config.allowed_tokens)
    if not result.allowed:
        return result

    result = check_recipient_allowlist(requirements.pay_to, config.allowed_recipients)
    if not result.allowed:
        return result

    return check_amount_cap(requirements.amount, config.max_settlement_amount)


# ---------------------------------------------------------------------------
# Rate counter
# ---------------------------------------------------------------------------

class RateCounter:
    """Counts successful settlements in a trailing window (default 60s).

    Timestamps older than the window are dropped on every read, so no
    background timer is needed.  Thread-safe.
    """

    def __init__(self, window_seconds: float = 60.0, clock: IClock | None = None) -> None:
        self._window_ms = int(window_seconds * 1000)
        self._clock = clock or WallClock()
        self._lock = threading.Lock()
        self._hits: deque[int] = deque()

    def increment(self) -> None:
        with self._lock:
            self._hits.append(self._clock.now_ms())

    def count(self) -> int:
        with self._lock:
            cutoff = self._clock.now_ms() - self._window_ms
            while self._hits and self._hits[0] <= cutoff:
                self._hits.popleft()
            return len(self._hits)

    def destroy(self) -> None:
        with self._lock:
            self._hits.clear()
