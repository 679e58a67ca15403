"""Custom exception hierarchy for the governance engine.

Policy rejections are not exceptions: guards return discriminated results
and the coordinator turns them into ``HookResult(abort=True)``.  The types
here cover configuration, integrity and infrastructure failures.
"""


class GovernanceError(Exception):
    """Base exception for all governance engine errors."""


# --- Configuration ---
class ConfigError(GovernanceError):
    """Invalid or missing configuration."""


class SanctionsListUnavailable(ConfigError):
    """Fail-closed sanctions list could not be loaded at startup."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(
            f"OFAC fail-closed: cannot load blocklist from {path}: {reason}"
        )


# --- Sanctions ---
class SanctionsListError(GovernanceError):
    """Blocklist is malformed or not loaded."""


# --- Delegation ---
class DelegationRpcError(GovernanceError):
    """RPC call for on-chain account state failed."""
