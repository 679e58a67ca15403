"""Wire and audit models shared between the host facilitator and the guards.

All amounts are integers in token base units.  The payment protocol sends
them as decimal strings; pydantic coerces them on construction.
"""

from __future__ import annotations

import time
from datetime import datetime

from pydantic import BaseModel, Field

from .enums import AuditAction, AuditStatus, GuardStatus
from .ids import new_id, utc_now


# ---------------------------------------------------------------------------
# Protocol context
# ---------------------------------------------------------------------------

class PaymentRequirements(BaseModel):
    """What the resource server asked to be paid."""

    model_config = {"populate_by_name": True}

    scheme: str = "exact"
    network: str
    asset: str  # Token mint address
    amount: int = Field(ge=0)
    pay_to: str = Field(alias="payTo")
    max_timeout_seconds: int | None = Field(default=None, alias="maxTimeoutSeconds")


class PaymentPayload(BaseModel):
    """What the paying agent submitted."""

    model_config = {"populate_by_name": True}

    payer: str
    transaction: str | None = None  # Settlement signature / serialized tx
    source_token_account: str | None = Field(
        default=None, alias="sourceTokenAccount"
    )
    agent_id: str | None = Field(default=None, alias="agentId")

    @property
    def effective_agent_id(self) -> str:
        """Velocity is tracked per agent; the payer stands in when unset."""
        return self.agent_id or self.payer


class SettleResult(BaseModel):
    """Outcome reported by the host after a settlement attempt."""

    success: bool = True
    transaction: str | None = None
    network: str = ""
    payer: str = ""
    error_reason: str | None = None


class HookContext(BaseModel):
    """Argument passed to every lifecycle hook."""

    requirements: PaymentRequirements
    payment_payload: PaymentPayload
    result: SettleResult | None = None
    error_reason: str | None = None
    trace_id: str = Field(default_factory=new_id)
    started_at: float = Field(default_factory=time.monotonic)

    def latency_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000


class HookResult(BaseModel):
    """Return value of a before-hook.  ``abort=True`` rejects the request."""

    model_config = {"frozen": True}

    abort: bool = False
    reason: str | None = None

    @classmethod
    def proceed(cls) -> HookResult:
        return cls()

    @classmethod
    def reject(cls, reason: str) -> HookResult:
        return cls(abort=True, reason=reason)


class CheckResult(BaseModel):
    """Outcome of a pure local check."""

    model_config = {"frozen": True}

    allowed: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

class GovernanceResult(BaseModel):
    """Per-guard verdict map attached to every audit entry."""

    ofac: GuardStatus = GuardStatus.SKIP
    delegation: GuardStatus = GuardStatus.SKIP
    budget: GuardStatus = GuardStatus.SKIP
    circuit_breaker: GuardStatus = GuardStatus.SKIP


class AuditLogEntry(BaseModel):
    """Immutable compliance record of one verify or settle outcome."""

    model_config = {"frozen": True}

    timestamp: datetime = Field(default_factory=utc_now)
    action: AuditAction
    status: AuditStatus

    # Payment details
    payer_address: str
    recipient_address: str
    amount: int
    token_mint: str
    network: str

    governance_result: GovernanceResult = Field(default_factory=GovernanceResult)

    # Settlement details (settle only)
    tx_signature: str | None = None

    # Context
    agent_id: str | None = None
    trace_id: str = ""
    latency_ms: float = 0.0
    error_reason: str | None = None
