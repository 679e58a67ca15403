"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.

Governance configuration is read once at process start and is never
mutated at runtime: every config model here is frozen.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, PositiveInt
from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class CircuitBreakerConfig(BaseModel):
    model_config = {"frozen": True}

    max_settlements_per_hour: PositiveInt = 100  # Per agent
    max_settlements_per_day: PositiveInt = 500  # Per agent
    max_value_per_hour_base_units: int = Field(default=10_000_000, ge=0)  # 10 USDC
    max_same_recipient_per_minute: PositiveInt = 5  # Prompt injection defense
    max_same_recipient_per_hour: PositiveInt = 20
    max_global_settlements_per_minute: PositiveInt = 30
    prune_interval_seconds: float = Field(default=60.0, gt=0)


class GovernanceConfig(BaseModel):
    model_config = {"frozen": True}

    # Local checks (None / empty = allow all)
    max_settlement_amount: int | None = Field(default=None, ge=0)
    allowed_tokens: list[str] | None = None
    allowed_recipients: list[str] | None = None
    rate_limit_per_minute: PositiveInt = 60

    # Feature flags
    ofac_enabled: bool = False
    circuit_breaker_enabled: bool = False
    budget_enforce_enabled: bool = False
    delegation_check_enabled: bool = False

    # Sanctions screening
    ofac_fail_closed: bool = True
    ofac_blocklist_path: str | None = None

    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)

    # Delegation
    delegation_rpc_timeout_seconds: float | None = Field(default=10.0, gt=0)

    # Replay protection
    replay_evict_interval_seconds: float = Field(default=60.0, gt=0)
    replay_ttl_margin_seconds: int = Field(default=60, ge=0)
    default_max_timeout_seconds: int = Field(default=300, gt=0)

    def active_modules(self) -> list[str]:
        """Names of the optional guards switched on, for health reporting."""
        flags = {
            "ofac": self.ofac_enabled,
            "circuit_breaker": self.circuit_breaker_enabled,
            "delegation": self.delegation_check_enabled,
            "budget": self.budget_enforce_enabled,
        }
        return [name for name, on in flags.items() if on]


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    metrics_enabled: bool = True
    metrics_port: int = 9090
    audit_log_path: str | None = None  # JSONL sink; None = stdout


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level facilitator settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    rpc_url: str = "https://api.devnet.solana.com"
    network: str = "devnet"

    governance: GovernanceConfig = Field(default_factory=GovernanceConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "FACILITATOR_", "env_nested_delimiter": "__"}


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    return Settings(**data)
