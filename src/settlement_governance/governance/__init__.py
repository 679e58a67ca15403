"""Settlement guards and the coordinator that composes them.

- **ReplayGuard**: TTL-based settlement signature deduplication
- **CircuitBreaker**: recipient / agent / global velocity limits
- **SanctionsScreener**: OFAC blocklist screening, fail-open or fail-closed
- **BudgetEnforcer**: cumulative spend against the live delegated cap
- **DelegationVerifier**: on-chain delegation state, always queried live
- **GovernanceCoordinator**: ordered lifecycle hooks over all of the above
"""

from settlement_governance.governance.budget import BudgetCheckResult, BudgetEnforcer
from settlement_governance.governance.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerResult,
    NullCircuitBreaker,
)
from settlement_governance.governance.coordinator import GovernanceCoordinator
from settlement_governance.governance.delegation import (
    DelegationCheckResult,
    DelegationVerifier,
    check_delegation,
)
from settlement_governance.governance.replay import ReplayGuard
from settlement_governance.governance.rpc import HttpAccountInfoRpc
from settlement_governance.governance.sanctions import (
    NullSanctionsScreener,
    ProviderSanctionsScreener,
    SanctionsScreener,
    ScreeningResult,
    ScreeningVerdict,
)

__all__ = [
    "BudgetCheckResult",
    "BudgetEnforcer",
    "CircuitBreaker",
    "CircuitBreakerResult",
    "DelegationCheckResult",
    "DelegationVerifier",
    "GovernanceCoordinator",
    "HttpAccountInfoRpc",
    "NullCircuitBreaker",
    "NullSanctionsScreener",
    "ProviderSanctionsScreener",
    "ReplayGuard",
    "SanctionsScreener",
    "ScreeningResult",
    "ScreeningVerdict",
    "check_delegation",
]
