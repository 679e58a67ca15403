"""Prometheus metrics for governance decisions.

Scraped alongside the facilitator's own metrics.  Helper functions keep
label handling in one place so the coordinator never touches metric
objects directly.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ---------------------------------------------------------------------------
# Decision metrics
# ---------------------------------------------------------------------------

DECISIONS_TOTAL = Counter(
    "governance_decisions_total",
    "Lifecycle hook outcomes",
    ["hook", "outcome"],
)

REJECTIONS_TOTAL = Counter(
    "governance_rejections_total",
    "Rejections by the guard that produced them",
    ["hook", "guard"],
)

CIRCUIT_BREAKER_TRIPS = Counter(
    "governance_circuit_breaker_trips_total",
    "Circuit breaker trips",
    ["trip_type"],
)

HOOK_LATENCY = Histogram(
    "governance_hook_latency_seconds",
    "Time spent inside a lifecycle hook",
    ["hook"],
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

# ---------------------------------------------------------------------------
# State gauges
# ---------------------------------------------------------------------------

REPLAY_GUARD_SIZE = Gauge(
    "governance_replay_guard_size",
    "Settlement signatures currently tracked by the replay guard",
)

SANCTIONS_LIST_SIZE = Gauge(
    "governance_sanctions_list_size",
    "Addresses in the loaded sanctions blocklist",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def record_decision(hook: str, outcome: str) -> None:
    DECISIONS_TOTAL.labels(hook=hook, outcome=outcome).inc()


def record_rejection(hook: str, guard: str) -> None:
    REJECTIONS_TOTAL.labels(hook=hook, guard=guard).inc()


def record_trip(trip_type: str) -> None:
    CIRCUIT_BREAKER_TRIPS.labels(trip_type=trip_type).inc()


def observe_hook_latency(hook: str, seconds: float) -> None:
    HOOK_LATENCY.labels(hook=hook).observe(seconds)


def set_replay_guard_size(size: int) -> None:
    REPLAY_GUARD_SIZE.set(size)


def set_sanctions_list_size(size: int) -> None:
    SANCTIONS_LIST_SIZE.set(size)


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus metrics HTTP server in a background thread."""
    start_http_server(port)
