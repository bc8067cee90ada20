"""
Prometheus metrics for the debug controller.

Exposes operational metrics via HTTP /metrics endpoint for Prometheus scraping.

Environment Variables:
    METRICS_ENABLED: Enable metrics server (true/false) - default: false
    METRICS_PORT: HTTP port for /metrics endpoint - default: 8080

Usage:
    from kubedebug.controller.metrics import start_metrics_server, track_reconcile

    start_metrics_server(enabled=True, port=8080)

    with track_reconcile_duration("Deployment"):
        # ... reconcile logic ...
        pass
    track_reconcile("Deployment", "success")
"""

import logging
import threading
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

# Metrics registry (module-level, created once by init_metrics)
RECONCILE_TOTAL: "Counter" = None  # type: ignore
RECONCILE_DURATION: "Histogram" = None  # type: ignore
CONFLICT_RETRIES: "Counter" = None  # type: ignore
SERVICE_OPERATIONS: "Counter" = None  # type: ignore
LEADER_ELECTION_STATUS: "Gauge" = None  # type: ignore
LEADER_ELECTION_FAILURES: "Counter" = None  # type: ignore

_metrics_initialized = False
_metrics_lock = threading.Lock()


def init_metrics() -> None:
    """
    Initialize Prometheus metrics (call once at startup).

    Until this runs every track_* helper is a no-op, which keeps tests and
    metrics-disabled deployments free of registry state.
    """
    global RECONCILE_TOTAL, RECONCILE_DURATION, CONFLICT_RETRIES
    global SERVICE_OPERATIONS, LEADER_ELECTION_STATUS, LEADER_ELECTION_FAILURES
    global _metrics_initialized

    with _metrics_lock:
        if _metrics_initialized:
            return

        # Reconcile outcomes (labels: kind, result)
        RECONCILE_TOTAL = Counter(
            "kubedebug_reconcile_total",
            "Total number of reconcile invocations by outcome",
            labelnames=["kind", "result"],
        )

        RECONCILE_DURATION = Histogram(
            "kubedebug_reconcile_duration_seconds",
            "Duration of reconcile operations in seconds",
            labelnames=["kind"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0),
        )

        CONFLICT_RETRIES = Counter(
            "kubedebug_conflict_retries_total",
            "Total number of 409 conflicts seen by read-modify-write loops",
        )

        # Companion Service writes (labels: operation=created/updated/unchanged/skipped)
        SERVICE_OPERATIONS = Counter(
            "kubedebug_service_operations_total",
            "Total number of companion Service synchronizations by operation",
            labelnames=["operation"],
        )

        # Leader election status gauge (0=follower, 1=leader)
        LEADER_ELECTION_STATUS = Gauge(
            "kubedebug_leader_election_status",
            "Leader election status (1=leader, 0=follower)",
        )

        LEADER_ELECTION_FAILURES = Counter(
            "kubedebug_leader_election_failures_total",
            "Total number of failed lease acquisitions or renewals",
            labelnames=["reason"],
        )

        _metrics_initialized = True
        logger.info("Prometheus metrics initialized")


def start_metrics_server(enabled: bool, port: int) -> None:
    """
    Start Prometheus metrics HTTP server in background thread.

    Args:
        enabled: Whether to start metrics server (from METRICS_ENABLED env var)
        port: HTTP port for /metrics endpoint (from METRICS_PORT env var)
    """
    if not enabled:
        logger.info("Metrics server disabled (METRICS_ENABLED=false)")
        return

    init_metrics()

    try:
        # start_http_server is non-blocking (starts daemon thread)
        start_http_server(port, addr="0.0.0.0")
        logger.info(f"Metrics server started on http://0.0.0.0:{port}/metrics")
    except OSError as e:
        logger.error(f"Failed to start metrics server: {e}")


@contextmanager
def track_reconcile_duration(kind: str) -> Generator[None, None, None]:
    if RECONCILE_DURATION is None:
        yield
        return

    with RECONCILE_DURATION.labels(kind=kind).time():
        yield


def track_reconcile(kind: str, result: str) -> None:
    """
    Count one reconcile outcome.

    Args:
        kind: Workload kind (e.g., "Deployment")
        result: "success", "requeue", "error" or "skipped"
    """
    if RECONCILE_TOTAL is not None:
        RECONCILE_TOTAL.labels(kind=kind, result=result).inc()


def track_conflict() -> None:
    if CONFLICT_RETRIES is not None:
        CONFLICT_RETRIES.inc()


def track_service_operation(operation: str) -> None:
    if SERVICE_OPERATIONS is not None:
        SERVICE_OPERATIONS.labels(operation=operation).inc()


def set_leader_status(is_leader: bool) -> None:
    if LEADER_ELECTION_STATUS is not None:
        LEADER_ELECTION_STATUS.set(1 if is_leader else 0)


def track_leader_election_failure(reason: str) -> None:
    if LEADER_ELECTION_FAILURES is not None:
        LEADER_ELECTION_FAILURES.labels(reason=reason).inc()
