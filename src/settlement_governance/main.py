"""Assembly: settings -> logging, metrics, audit sink, RPC client, coordinator.

The host facilitator calls :func:`start_governance` once at process start,
registers the returned coordinator's hooks on its lifecycle and serves
:func:`build_health_checker` results from its health endpoint.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .audit.logger import ConsoleAuditLogger, JsonlAuditLogger
from .core.clock import IClock
from .core.config import Settings, load_settings
from .core.interfaces import IAccountInfoRpc, IAuditLogger
from .governance.coordinator import GovernanceCoordinator
from .governance.rpc import HttpAccountInfoRpc
from .observability.health import HealthChecker, register_governance_checks
from .observability.logger import setup_logging

logger = logging.getLogger(__name__)


def build_audit_logger(settings: Settings) -> IAuditLogger:
    """JSONL file sink when ``audit_log_path`` is set, stdout otherwise."""
    path = settings.observability.audit_log_path
    if path:
        return JsonlAuditLogger(Path(path))
    return ConsoleAuditLogger()


def build_coordinator(
    settings: Settings,
    *,
    rpc: IAccountInfoRpc | None = None,
    audit_logger: IAuditLogger | None = None,
    clock: IClock | None = None,
) -> GovernanceCoordinator:
    """Wire a coordinator from settings.

    An RPC client against ``settings.rpc_url`` is created only when
    delegation checks are on and none was passed in; the coordinator then
    owns it and closes it on stop.
    """
    gov = settings.governance
    owns_rpc = False
    if rpc is None and gov.delegation_check_enabled:
        timeout = gov.delegation_rpc_timeout_seconds or 10.0
        rpc = HttpAccountInfoRpc(settings.rpc_url, timeout=timeout)
        owns_rpc = True

    return GovernanceCoordinator(
        gov,
        audit_logger=audit_logger or build_audit_logger(settings),
        rpc=rpc,
        clock=clock,
        close_rpc_on_stop=owns_rpc,
    )


def build_health_checker(coordinator: GovernanceCoordinator) -> HealthChecker:
    """Health checker with the replay, OFAC and audit sink checks registered.

    The host mounts :meth:`HealthChecker.check_all` on its health endpoint.
    """
    checker = HealthChecker()
    register_governance_checks(checker, coordinator)
    return checker


async def start_governance(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> GovernanceCoordinator:
    """Main entry point. Load config, set up logging and metrics, start guards."""
    settings = load_settings(config_path=config_path, overrides=overrides)
    setup_logging(settings.observability.log_level, settings.observability.log_format)

    if settings.observability.metrics_enabled:
        try:
            from .observability.metrics import start_metrics_server

            start_metrics_server(port=settings.observability.metrics_port)
            logger.info(
                "Prometheus metrics server started on port %d",
                settings.observability.metrics_port,
            )
        except OSError:
            logger.warning("Failed to start metrics server", exc_info=True)

    coordinator = build_coordinator(settings)
    await coordinator.start()
    logger.info(
        "Settlement governance started (network=%s, modules=%s)",
        settings.network,
        ",".join(settings.governance.active_modules()) or "none",
    )
    return coordinator
