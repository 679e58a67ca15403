"""Enumerations used across the governance engine."""

from enum import Enum


class GuardStatus(str, Enum):
    """Per-guard verdict recorded in the audit trail."""

    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"
    SKIP = "skip"


class ScreeningStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"
    SKIP = "skip"


class BreakerStatus(str, Enum):
    OPEN = "open"
    TRIPPED = "tripped"
    SKIP = "skip"


class TripType(str, Enum):
    AGENT_VELOCITY = "agent_velocity"
    RECIPIENT_VELOCITY = "recipient_velocity"
    GLOBAL_VELOCITY = "global_velocity"


class BudgetStatus(str, Enum):
    OK = "ok"
    AT_CAP = "at_cap"
    OVER_CAP = "over_cap"


class DelegationStatus(str, Enum):
    ACTIVE = "active"
    INSUFFICIENT = "insufficient"
    INACTIVE = "inactive"  # Account frozen
    NOT_DELEGATED = "not_delegated"
    ERROR = "error"


class AuditAction(str, Enum):
    VERIFY = "verify"
    SETTLE = "settle"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILED = "failed"


class Hook(str, Enum):
    """Protocol lifecycle events the coordinator binds to."""

    BEFORE_VERIFY = "before_verify"
    AFTER_VERIFY = "after_verify"
    VERIFY_FAILURE = "verify_failure"
    BEFORE_SETTLE = "before_settle"
    AFTER_SETTLE = "after_settle"
    SETTLE_FAILURE = "settle_failure"

