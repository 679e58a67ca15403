"""Health checks for the governance engine.

Reports health status of the guard components so the facilitator's
health endpoint can surface them next to its own checks.  Hosts get a
ready checker from :func:`settlement_governance.main.build_health_checker`.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from pydantic import BaseModel

from settlement_governance.audit.logger import JsonlAuditLogger
from settlement_governance.core.interfaces import IAuditLogger
from settlement_governance.governance.coordinator import GovernanceCoordinator
from settlement_governance.governance.sanctions import SanctionsScreener

logger = logging.getLogger(__name__)

CheckFn = Callable[[], Awaitable[tuple[bool, str]]]


class ComponentHealth(BaseModel):
    component: str
    healthy: bool
    message: str = ""
    latency_ms: float = 0.0


class HealthChecker:
    """Checks health of registered components."""

    def __init__(self) -> None:
        self._checks: dict[str, CheckFn] = {}

    def register_check(self, component: str, check_fn: CheckFn) -> None:
        """Register a health check function for a component.

        check_fn should be async and return (healthy: bool, message: str).
        """
        self._checks[component] = check_fn

    async def check_all(self) -> list[ComponentHealth]:
        """Run all health checks and return results."""
        results = []

        for component, check_fn in self._checks.items():
            start = time.monotonic()
            try:
                healthy, message = await check_fn()
            except Exception as e:
                healthy, message = False, f"Check failed: {e}"
                logger.warning("Health check %s raised: %s", component, e)
            results.append(
                ComponentHealth(
                    component=component,
                    healthy=healthy,
                    message=message,
                    latency_ms=(time.monotonic() - start) * 1000,
                )
            )

        return results

    async def is_healthy(self) -> bool:
        """Quick check: are all components healthy?"""
        results = await self.check_all()
        return all(r.healthy for r in results)


def register_governance_checks(
    checker: HealthChecker,
    coordinator: GovernanceCoordinator,
    audit_logger: IAuditLogger | None = None,
) -> None:
    """Register replay guard, sanctions and audit sink checks.

    The audit check defaults to the coordinator's own sink.
    """
    if audit_logger is None:
        audit_logger = coordinator.audit_logger

    async def _replay() -> tuple[bool, str]:
        return True, f"{coordinator.replay_guard.size()} signatures tracked"

    checker.register_check("replay_guard", _replay)

    sanctions = coordinator.sanctions
    if isinstance(sanctions, SanctionsScreener):

        async def _sanctions() -> tuple[bool, str]:
            updated = sanctions.last_updated()
            if updated is None:
                return False, "OFAC blocklist not loaded"
            return True, (
                f"{sanctions.list_size()} addresses, updated {updated.isoformat()}"
            )

        checker.register_check("ofac", _sanctions)

    if isinstance(audit_logger, JsonlAuditLogger):

        async def _audit() -> tuple[bool, str]:
            if audit_logger.is_available:
                return True, "audit sink writable"
            return False, f"audit sink unavailable ({audit_logger.dropped_count} dropped)"

        checker.register_check("audit", _audit)
