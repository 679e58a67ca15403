"""Cumulative spend tracking against the on-chain delegated cap.

Tracks spend per ``payer:funding_account`` key.  The delegated cap is
never stored here: the caller passes the live on-chain value on every
check, since the owner can revoke or lower it at any time.
"""

from __future__ import annotations

import logging
import threading

from pydantic import BaseModel

from settlement_governance.core.enums import BudgetStatus

logger = logging.getLogger(__name__)


class BudgetCheckResult(BaseModel):
    status: BudgetStatus
    total_spent: int
    remaining_budget: int
    payment_amount: int
    delegated_amount: int

    @property
    def allowed(self) -> bool:
        """An exact fit (``at_cap`` with the payment equal to what remains) settles."""
        if self.status == BudgetStatus.OK:
            return True
        return (
            self.status == BudgetStatus.AT_CAP
            and self.payment_amount <= self.remaining_budget
        )


class BudgetEnforcer:
    """In-memory cumulative spend per delegate/account pair.

    ``record`` must only be called after a settlement is confirmed.
    Thread-safe.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._spent: dict[str, int] = {}

    def check(
        self,
        key: str,
        proposed_amount: int,
        delegated_cap: int,
    ) -> BudgetCheckResult:
        """Compare ``spent + proposed_amount`` against *delegated_cap*.

        ``ok`` when the payment leaves budget over, ``at_cap`` when it uses
        up exactly what remains or nothing remains at all, ``over_cap`` when
        it does not fit.
        """
        with self._lock:
            spent = self._spent.get(key, 0)
        remaining = max(delegated_cap - spent, 0)

        if proposed_amount > remaining:
            status = BudgetStatus.AT_CAP if remaining == 0 else BudgetStatus.OVER_CAP
        elif proposed_amount == remaining:
            status = BudgetStatus.AT_CAP
        else:
            status = BudgetStatus.OK

        if proposed_amount > remaining:
            logger.info(
                "Budget %s: key=%s spent=%d proposed=%d cap=%d",
                status.value, key, spent, proposed_amount, delegated_cap,
            )
        return BudgetCheckResult(
            status=status,
            total_spent=spent,
            remaining_budget=remaining,
            payment_amount=proposed_amount,
            delegated_amount=delegated_cap,
        )

    def record(self, key: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Cannot record negative spend {amount} for {key}")
        with self._lock:
            self._spent[key] = self._spent.get(key, 0) + amount

    def reset(self, key: str) -> None:
        """Forget spend for *key* (e.g. after a fresh delegation approval)."""
        with self._lock:
            self._spent.pop(key, None)

    def total_spent(self, key: str) -> int:
        with self._lock:
            return self._spent.get(key, 0)

    def destroy(self) -> None:
        with self._lock:
            self._spent.clear()
