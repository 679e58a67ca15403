"""Protocol interfaces for the governance engine.

All collaborator boundaries are defined here as Protocol classes.
Implementations can be swapped (live RPC / mock, static list / analytics
provider, console / file / database audit sink) without changing the
coordinator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from settlement_governance.governance.circuit_breaker import (
        CircuitBreakerResult,
        WindowStats,
    )
    from settlement_governance.governance.sanctions import (
        ScreeningResult,
        ScreeningVerdict,
    )

    from .models import AuditLogEntry


# ---------------------------------------------------------------------------
# On-chain state
# ---------------------------------------------------------------------------

@runtime_checkable
class IAccountInfoRpc(Protocol):
    """Minimal RPC surface needed for delegation checks.

    ``get_account_info`` returns the jsonParsed account object
    (``{"owner": ..., "data": {"program": ..., "parsed": {...}}}``) or
    ``None`` when the account does not exist.  Timeouts and retries are
    the client's responsibility.
    """

    async def get_account_info(self, address: str) -> dict[str, Any] | None: ...


# ---------------------------------------------------------------------------
# Sanctions
# ---------------------------------------------------------------------------

@runtime_checkable
class ISanctionsProvider(Protocol):
    """Single-address screening capability (static list, analytics vendor)."""

    async def screen_address(self, address: str) -> ScreeningVerdict: ...


@runtime_checkable
class ISanctionsScreener(Protocol):
    """Multi-address screening as consumed by the coordinator."""

    async def screen(self, addresses: list[str]) -> ScreeningResult: ...


# ---------------------------------------------------------------------------
# Velocity
# ---------------------------------------------------------------------------

@runtime_checkable
class ICircuitBreaker(Protocol):
    """Velocity guard.  The coordinator owns its background lifecycle."""

    def check(self, agent_id: str, recipient: str, amount: int) -> CircuitBreakerResult: ...
    def record(self, agent_id: str, recipient: str, amount: int) -> None: ...
    def stats(self) -> dict[str, WindowStats]: ...
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    def destroy(self) -> None: ...


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

@runtime_checkable
class IAuditLogger(Protocol):
    """Write path into durable audit storage.  Fire-and-forget."""

    def log(self, entry: AuditLogEntry) -> None: ...
