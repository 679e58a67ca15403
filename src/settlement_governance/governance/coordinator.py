"""Governance coordinator: binds every guard into the payment lifecycle.

The host facilitator calls one coroutine per lifecycle event:

- :meth:`on_before_verify`  local checks, then sanctions screening
- :meth:`on_after_verify` / :meth:`on_verify_failure`  audit only
- :meth:`on_before_settle`  local checks, rate limit, replay, sanctions,
  circuit breaker, delegation, budget (strictly in that order, first
  failure aborts)
- :meth:`on_after_settle`  record replay signature, rate, velocity, spend
- :meth:`on_settle_failure`  audit only; the signature stays retryable

Local checks run at both verify and settle because the two may be far
apart in time.  Velocity, delegation and budget are only checked at
settle.

Usage::

    coordinator = GovernanceCoordinator(settings.governance, rpc=rpc)
    await coordinator.start()
    result = await coordinator.on_before_settle(ctx)
    if result.abort:
        ...  # reject with result.reason
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from settlement_governance.audit.logger import ConsoleAuditLogger
from settlement_governance.core.clock import IClock, WallClock
from settlement_governance.core.config import GovernanceConfig
from settlement_governance.core.enums import (
    AuditAction,
    AuditStatus,
    BreakerStatus,
    DelegationStatus,
    GuardStatus,
    Hook,
    ScreeningStatus,
)
from settlement_governance.core.errors import ConfigError
from settlement_governance.core.ids import budget_key
from settlement_governance.core.interfaces import (
    IAccountInfoRpc,
    IAuditLogger,
    ICircuitBreaker,
    ISanctionsScreener,
)
from settlement_governance.core.models import (
    AuditLogEntry,
    GovernanceResult,
    HookContext,
    HookResult,
)
from settlement_governance.observability import metrics
from settlement_governance.observability.logger import set_trace_id

from .budget import BudgetEnforcer
from .checks import RateCounter, check_rate_limit, run_local_checks
from .circuit_breaker import CircuitBreaker, NullCircuitBreaker
from .delegation import DelegationVerifier
from .replay import ReplayGuard
from .sanctions import NullSanctionsScreener, SanctionsScreener

logger = logging.getLogger(__name__)

_SCREENING_TO_GUARD: dict[ScreeningStatus, GuardStatus] = {
    ScreeningStatus.PASS: GuardStatus.PASS,
    ScreeningStatus.FAIL: GuardStatus.FAIL,
    ScreeningStatus.ERROR: GuardStatus.ERROR,
    ScreeningStatus.SKIP: GuardStatus.SKIP,
}

_BREAKER_TO_GUARD: dict[BreakerStatus, GuardStatus] = {
    BreakerStatus.OPEN: GuardStatus.PASS,
    BreakerStatus.TRIPPED: GuardStatus.FAIL,
    BreakerStatus.SKIP: GuardStatus.SKIP,
}

# Verdicts waiting for their after-hook; bounded in case a host never
# reports the outcome of a request.
_MAX_PENDING = 10_000


def _request_key(ctx: HookContext) -> str:
    """Identity of a payment that survives across host events.

    Hosts build a fresh context per lifecycle event, so the trace id cannot
    link a before-hook to its after-hook.  The payload transaction can; the
    payer, recipient, asset and amount stand in when it is absent.
    """
    payload = ctx.payment_payload
    if payload.transaction:
        return payload.transaction
    req = ctx.requirements
    return f"{payload.payer}:{req.pay_to}:{req.asset}:{req.amount}"


@dataclass
class _Rejection:
    guard: str
    reason: str


# A settle step inspects the context, updates the verdict map, and
# returns a rejection or None.
_Step = Callable[[HookContext, GovernanceResult], Awaitable["_Rejection | None"]]


class GovernanceCoordinator:
    """Owns the guards and their combined lifecycle.

    Parameters
    ----------
    config:
        Immutable governance configuration.
    audit_logger:
        Audit sink.  Defaults to JSON lines on stdout.
    rpc:
        On-chain account reader.  Required when delegation checks are on.
    sanctions:
        Screener override (e.g. a :class:`ProviderSanctionsScreener`).
        Defaults to a :class:`SanctionsScreener` over
        ``config.ofac_blocklist_path`` when OFAC screening is on.
    clock:
        Time source shared by every guard.
    close_rpc_on_stop:
        Close *rpc* (via its ``aclose``) in :meth:`stop`.  Set when the
        coordinator was handed an RPC client nobody else owns.

    Raises
    ------
    ConfigError
        Inconsistent feature flags, or a fail-closed sanctions list that
        cannot be loaded.
    """

    def __init__(
        self,
        config: GovernanceConfig,
        *,
        audit_logger: IAuditLogger | None = None,
        rpc: IAccountInfoRpc | None = None,
        sanctions: ISanctionsScreener | None = None,
        clock: IClock | None = None,
        close_rpc_on_stop: bool = False,
    ) -> None:
        self._config = config
        self._rpc = rpc
        self._close_rpc_on_stop = close_rpc_on_stop
        self._clock = clock or WallClock()
        self.audit_logger: IAuditLogger = audit_logger or ConsoleAuditLogger()

        self.replay_guard = ReplayGuard(config.replay_evict_interval_seconds, clock=self._clock)
        self.rate_counter = RateCounter(clock=self._clock)
        self.budget = BudgetEnforcer()

        self.circuit_breaker: ICircuitBreaker
        if config.circuit_breaker_enabled:
            self.circuit_breaker = CircuitBreaker(config.circuit_breaker, clock=self._clock)
        else:
            self.circuit_breaker = NullCircuitBreaker()

        self.sanctions: ISanctionsScreener
        if not config.ofac_enabled:
            self.sanctions = NullSanctionsScreener()
        elif sanctions is not None:
            self.sanctions = sanctions
        else:
            self.sanctions = SanctionsScreener(
                config.ofac_blocklist_path, fail_closed=config.ofac_fail_closed,
            )

        self.delegation: DelegationVerifier | None = None
        if config.delegation_check_enabled:
            if rpc is None:
                raise ConfigError("delegation_check_enabled requires an RPC client")
            self.delegation = DelegationVerifier(
                rpc, timeout=config.delegation_rpc_timeout_seconds,
            )
        if config.budget_enforce_enabled and not config.delegation_check_enabled:
            raise ConfigError(
                "budget_enforce_enabled requires delegation_check_enabled "
                "(the live delegated cap comes from the delegation check)"
            )

        # Ordered settle pipeline, fixed at construction.
        self._settle_steps: list[_Step] = [
            self._step_local_checks,
            self._step_rate_limit,
            self._step_replay,
            self._step_sanctions,
            self._step_circuit_breaker,
        ]
        if self.delegation is not None:
            self._settle_steps.append(self._step_delegation_and_budget)

        self._pending: OrderedDict[tuple[AuditAction, str], GovernanceResult] = OrderedDict()

        logger.info(
            "GovernanceCoordinator ready (modules=%s, rate_limit=%d/min)",
            ",".join(config.active_modules()) or "none",
            config.rate_limit_per_minute,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start background eviction for the replay guard and breaker."""
        await self.replay_guard.start()
        await self.circuit_breaker.start()

    async def stop(self) -> None:
        """Cancel background tasks and wait for them, then clear state."""
        await self.replay_guard.stop()
        await self.circuit_breaker.stop()
        self.destroy()
        aclose = getattr(self._rpc, "aclose", None)
        if self._close_rpc_on_stop and aclose is not None:
            await aclose()

    def destroy(self) -> None:
        """Cancel background tasks and clear all guard state."""
        self.replay_guard.destroy()
        self.circuit_breaker.destroy()
        self.rate_counter.destroy()
        self.budget.destroy()
        self._pending.clear()

    # ------------------------------------------------------------------
    # Verify hooks
    # ------------------------------------------------------------------

    async def on_before_verify(self, ctx: HookContext) -> HookResult:
        set_trace_id(ctx.trace_id)
        t0 = time.monotonic()
        verdicts = GovernanceResult()

        rejection = await self._step_local_checks(ctx, verdicts)
        if rejection is None and self._config.ofac_enabled:
            rejection = await self._step_sanctions(ctx, verdicts)

        return self._finish_before(Hook.BEFORE_VERIFY, AuditAction.VERIFY, ctx, verdicts, rejection, t0)

    async def on_after_verify(self, ctx: HookContext) -> None:
        set_trace_id(ctx.trace_id)
        verdicts = self._pop_pending(AuditAction.VERIFY, ctx)
        self._write_audit(ctx, AuditAction.VERIFY, AuditStatus.SUCCESS, verdicts)
        metrics.record_decision(Hook.AFTER_VERIFY.value, AuditStatus.SUCCESS.value)

    async def on_verify_failure(self, ctx: HookContext) -> None:
        set_trace_id(ctx.trace_id)
        verdicts = self._pop_pending(AuditAction.VERIFY, ctx)
        self._write_audit(
            ctx, AuditAction.VERIFY, AuditStatus.FAILED, verdicts,
            error_reason=ctx.error_reason,
        )
        metrics.record_decision(Hook.VERIFY_FAILURE.value, AuditStatus.FAILED.value)

    # ------------------------------------------------------------------
    # Settle hooks
    # ------------------------------------------------------------------

    async def on_before_settle(self, ctx: HookContext) -> HookResult:
        set_trace_id(ctx.trace_id)
        t0 = time.monotonic()
        verdicts = GovernanceResult()

        rejection: _Rejection | None = None
        for step in self._settle_steps:
            rejection = await step(ctx, verdicts)
            if rejection is not None:
                break

        return self._finish_before(Hook.BEFORE_SETTLE, AuditAction.SETTLE, ctx, verdicts, rejection, t0)

    async def on_after_settle(self, ctx: HookContext) -> None:
        set_trace_id(ctx.trace_id)
        req = ctx.requirements
        payload = ctx.payment_payload

        ttl = (
            req.max_timeout_seconds or self._config.default_max_timeout_seconds
        ) + self._config.replay_ttl_margin_seconds
        for sig in self._settlement_signatures(ctx):
            self.replay_guard.record(sig, ttl)
        metrics.set_replay_guard_size(self.replay_guard.size())

        self.rate_counter.increment()
        self.circuit_breaker.record(payload.effective_agent_id, req.pay_to, req.amount)
        if self._config.budget_enforce_enabled and payload.source_token_account:
            self.budget.record(budget_key(payload.payer, payload.source_token_account), req.amount)

        verdicts = self._pop_pending(AuditAction.SETTLE, ctx)
        self._write_audit(ctx, AuditAction.SETTLE, AuditStatus.SUCCESS, verdicts)
        metrics.record_decision(Hook.AFTER_SETTLE.value, AuditStatus.SUCCESS.value)
        logger.info(
            "Settlement recorded: payer=%s recipient=%s amount=%d replay_ttl=%ds",
            payload.payer, req.pay_to, req.amount, ttl,
        )

    async def on_settle_failure(self, ctx: HookContext) -> None:
        # No replay record: a failed settlement must remain retryable.
        set_trace_id(ctx.trace_id)
        verdicts = self._pop_pending(AuditAction.SETTLE, ctx)
        error = ctx.error_reason or (ctx.result.error_reason if ctx.result else None)
        self._write_audit(ctx, AuditAction.SETTLE, AuditStatus.FAILED, verdicts, error_reason=error)
        metrics.record_decision(Hook.SETTLE_FAILURE.value, AuditStatus.FAILED.value)
        logger.warning(
            "Settlement failed: payer=%s recipient=%s error=%s",
            ctx.payment_payload.payer, ctx.requirements.pay_to, error,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def health(self) -> dict[str, Any]:
        """Operational snapshot for an external health endpoint."""
        snapshot: dict[str, Any] = {
            "replay_guard_size": self.replay_guard.size(),
            "settlements_last_minute": self.rate_counter.count(),
            "governance": self._config.active_modules(),
        }
        stats = self.circuit_breaker.stats()
        if stats:
            snapshot["circuit_breaker"] = {k: v.model_dump() for k, v in stats.items()}
        if isinstance(self.sanctions, SanctionsScreener):
            updated = self.sanctions.last_updated()
            snapshot["ofac"] = {
                "last_updated": updated.isoformat() if updated else None,
                "list_size": self.sanctions.list_size(),
            }
        return snapshot

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    async def _step_local_checks(self, ctx: HookContext, verdicts: GovernanceResult) -> _Rejection | None:
        result = run_local_checks(ctx.requirements, self._config)
        if not result.allowed:
            return _Rejection("local", result.reason or "Local governance check failed")
        return None

    async def _step_rate_limit(self, ctx: HookContext, verdicts: GovernanceResult) -> _Rejection | None:
        result = check_rate_limit(self.rate_counter.count(), self._config.rate_limit_per_minute)
        if not result.allowed:
            return _Rejection("rate_limit", result.reason or "Rate limit exceeded")
        return None

    async def _step_replay(self, ctx: HookContext, verdicts: GovernanceResult) -> _Rejection | None:
        signature = ctx.payment_payload.transaction
        if signature and self.replay_guard.check(signature):
            return _Rejection("replay", f"Replay detected for signature {signature}")
        return None

    async def _step_sanctions(self, ctx: HookContext, verdicts: GovernanceResult) -> _Rejection | None:
        addresses = [ctx.payment_payload.payer, ctx.requirements.pay_to]
        result = await self.sanctions.screen(addresses)
        verdicts.ofac = _SCREENING_TO_GUARD[result.status]
        if result.status == ScreeningStatus.FAIL:
            return _Rejection(
                "ofac",
                f"OFAC screening blocked address {result.matched_address} "
                f"({result.matched_list or 'blocklist'})",
            )
        if result.status == ScreeningStatus.ERROR:
            return _Rejection("ofac", f"OFAC screening error: {result.error_detail}")
        if result.status == ScreeningStatus.SKIP and self._config.ofac_enabled:
            logger.warning("OFAC screening skipped: %s", result.error_detail)
        return None

    async def _step_circuit_breaker(self, ctx: HookContext, verdicts: GovernanceResult) -> _Rejection | None:
        result = self.circuit_breaker.check(
            ctx.payment_payload.effective_agent_id,
            ctx.requirements.pay_to,
            ctx.requirements.amount,
        )
        verdicts.circuit_breaker = _BREAKER_TO_GUARD[result.status]
        if result.tripped:
            if result.trip_type is not None:
                metrics.record_trip(result.trip_type.value)
            return _Rejection("circuit_breaker", result.reason or "Circuit breaker tripped")
        return None

    async def _step_delegation_and_budget(
        self, ctx: HookContext, verdicts: GovernanceResult,
    ) -> _Rejection | None:
        verifier = self.delegation
        if verifier is None:
            return None
        payload = ctx.payment_payload
        req = ctx.requirements

        if not payload.source_token_account:
            verdicts.delegation = GuardStatus.ERROR
            return _Rejection("delegation", "Delegation check requires sourceTokenAccount")

        delegation = await verifier.check(
            payload.payer, payload.source_token_account, req.amount, req.asset,
        )
        if not delegation.active:
            verdicts.delegation = (
                GuardStatus.ERROR
                if delegation.status == DelegationStatus.ERROR
                else GuardStatus.FAIL
            )
            detail = f": {delegation.error_detail}" if delegation.error_detail else ""
            return _Rejection(
                "delegation",
                f"Delegation check failed ({delegation.status.value}){detail}",
            )
        verdicts.delegation = GuardStatus.PASS

        if not self._config.budget_enforce_enabled:
            return None

        budget = self.budget.check(
            budget_key(payload.payer, payload.source_token_account),
            req.amount,
            delegation.delegated_amount or 0,
        )
        if not budget.allowed:
            verdicts.budget = GuardStatus.FAIL
            return _Rejection(
                "budget",
                f"Budget {budget.status.value}: payment {budget.payment_amount} "
                f"exceeds remaining {budget.remaining_budget} "
                f"(spent {budget.total_spent} of {budget.delegated_amount})",
            )
        verdicts.budget = GuardStatus.PASS
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _finish_before(
        self,
        hook: Hook,
        action: AuditAction,
        ctx: HookContext,
        verdicts: GovernanceResult,
        rejection: _Rejection | None,
        t0: float,
    ) -> HookResult:
        metrics.observe_hook_latency(hook.value, time.monotonic() - t0)

        if rejection is None:
            self._remember_pending(action, ctx, verdicts)
            metrics.record_decision(hook.value, "allow")
            return HookResult.proceed()

        logger.info(
            "Governance rejected %s: guard=%s payer=%s reason=%s",
            action.value, rejection.guard, ctx.payment_payload.payer, rejection.reason,
        )
        metrics.record_decision(hook.value, "reject")
        metrics.record_rejection(hook.value, rejection.guard)
        self._write_audit(ctx, action, AuditStatus.REJECTED, verdicts, error_reason=rejection.reason)
        return HookResult.reject(rejection.reason)

    def _remember_pending(
        self, action: AuditAction, ctx: HookContext, verdicts: GovernanceResult,
    ) -> None:
        self._pending[(action, _request_key(ctx))] = verdicts
        while len(self._pending) > _MAX_PENDING:
            self._pending.popitem(last=False)

    def _pop_pending(self, action: AuditAction, ctx: HookContext) -> GovernanceResult:
        return self._pending.pop((action, _request_key(ctx)), None) or GovernanceResult()

    @staticmethod
    def _settlement_signatures(ctx: HookContext) -> list[str]:
        """Payload transaction plus the on-chain signature, deduplicated."""
        sigs: list[str] = []
        for sig in (
            ctx.payment_payload.transaction,
            ctx.result.transaction if ctx.result else None,
        ):
            if sig and sig not in sigs:
                sigs.append(sig)
        return sigs

    def _write_audit(
        self,
        ctx: HookContext,
        action: AuditAction,
        status: AuditStatus,
        verdicts: GovernanceResult,
        error_reason: str | None = None,
    ) -> None:
        req = ctx.requirements
        payload = ctx.payment_payload
        tx_signature = None
        if action == AuditAction.SETTLE and ctx.result is not None:
            tx_signature = ctx.result.transaction
        entry = AuditLogEntry(
            action=action,
            status=status,
            payer_address=payload.payer,
            recipient_address=req.pay_to,
            amount=req.amount,
            token_mint=req.asset,
            network=req.network,
            governance_result=verdicts,
            tx_signature=tx_signature,
            agent_id=payload.agent_id,
            trace_id=ctx.trace_id,
            latency_ms=round(ctx.latency_ms(), 3),
            error_reason=error_reason,
        )
        try:
            self.audit_logger.log(entry)
        except Exception:
            # The decision already stands; a sink failure never changes it.
            logger.exception("Audit sink failed for %s/%s", action.value, status.value)
