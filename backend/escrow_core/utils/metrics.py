"""
Prometheus metrics for observability
"""

import re
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry

# Create a custom registry to avoid conflicts
metrics_registry = CollectorRegistry()

# HTTP request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status"],
    registry=metrics_registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["path", "method"],
    registry=metrics_registry,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Escrow state machine metrics
escrow_transitions_total = Counter(
    "escrow_transitions_total",
    "Total escrow state transitions",
    ["from_status", "to_status"],
    registry=metrics_registry,
)

escrow_state_conflicts_total = Counter(
    "escrow_state_conflicts_total",
    "Total conditional writes rejected because the row changed",
    registry=metrics_registry,
)

# Release sweep metrics
escrow_releases_total = Counter(
    "escrow_releases_total",
    "Total transactions released to the wholesaler",
    registry=metrics_registry,
)

release_sweep_runs_total = Counter(
    "release_sweep_runs_total",
    "Total release sweep runs",
    ["outcome"],  # ok, partial, skipped, failed
    registry=metrics_registry,
)

# Notification metrics
notification_failures_total = Counter(
    "notification_failures_total",
    "Total notification events that could not be published",
    ["event_type"],
    registry=metrics_registry,
)

# Ledger metrics
ledger_invariant_violations_total = Counter(
    "ledger_invariant_violations_total",
    "Total ledger conservation violations detected",
    registry=metrics_registry,
)


def record_http_request(
    path: str,
    method: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """
    Record HTTP request metrics.

    Args:
        path: Request path (normalized)
        method: HTTP method
        status_code: Response status code
        duration_seconds: Request duration in seconds
    """
    normalized_path = _normalize_path(path)

    http_requests_total.labels(
        path=normalized_path,
        method=method.upper(),
        status=str(status_code),
    ).inc()

    http_request_duration_seconds.labels(
        path=normalized_path,
        method=method.upper(),
    ).observe(duration_seconds)


def record_transition(from_status: str, to_status: str) -> None:
    escrow_transitions_total.labels(from_status=from_status, to_status=to_status).inc()


def record_state_conflict() -> None:
    escrow_state_conflicts_total.inc()


def record_release() -> None:
    escrow_releases_total.inc()


def record_sweep_run(outcome: str) -> None:
    """
    Record a release sweep run.

    Args:
        outcome: ok, partial (some transactions failed), skipped (persistence
            unreachable) or failed (error boundary hit)
    """
    release_sweep_runs_total.labels(outcome=outcome).inc()


def record_notification_failure(event_type: str) -> None:
    notification_failures_total.labels(event_type=event_type).inc()


def record_ledger_invariant_violation() -> None:
    """Record ledger invariant violation"""
    ledger_invariant_violations_total.inc()


def _normalize_path(path: str) -> str:
    """
    Normalize path for metrics (replace UUIDs and transaction references with placeholders).

    Examples:
        /api/v1/transactions -> /api/v1/transactions
        /api/v1/transactions/TXN-1718000000000-3FA2C1/fund -> /api/v1/transactions/{ref}/fund
    """
    path = re.sub(
        r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
        '{id}',
        path,
        flags=re.IGNORECASE,
    )
    path = re.sub(r'TXN-[0-9A-Za-z-]+', '{ref}', path)
    path = re.sub(r'/\d+', '/{id}', path)

    return path


def get_metrics_output() -> bytes:
    """Get Prometheus metrics output"""
    return generate_latest(metrics_registry)


__all__ = [
    "CONTENT_TYPE_LATEST",
    "get_metrics_output",
    "record_http_request",
    "record_transition",
    "record_state_conflict",
    "record_release",
    "record_sweep_run",
    "record_notification_failure",
    "record_ledger_invariant_violation",
]
