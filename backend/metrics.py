"""Prometheus metrics for Grabarr monitoring.

Exposes process, acquisition pipeline, scheduler, database and resilience
metrics. Scraped via ``GET /metrics`` (unauthenticated, for Prometheus).
"""

import logging
import os

import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from circuit_breaker import STATE_VALUES, CircuitState

logger = logging.getLogger(__name__)

# -- Metric Definitions -------------------------------------------------------

# System
CPU_USAGE = Gauge("grabarr_cpu_usage_percent", "CPU usage percentage")
MEMORY_USAGE = Gauge("grabarr_memory_usage_bytes", "Memory usage in bytes")

# Acquisition pipeline
GRAB_DECISIONS_TOTAL = Counter(
    "grabarr_grab_decisions_total",
    "Grab decisions by outcome",
    ["outcome"],  # grabbed, pending, no_candidate, suppressed
)
GRABS_TOTAL = Counter(
    "grabarr_grabs_total",
    "Releases submitted to a download client",
    ["protocol", "upgrade"],
)
DOWNLOAD_FAILURES_TOTAL = Counter(
    "grabarr_download_failures_total",
    "Downloads that ended failed",
    ["reason"],  # client_error, stalled, refused, import
)
IMPORTS_TOTAL = Counter(
    "grabarr_imports_total",
    "Import attempts",
    ["status"],  # success, collision, error
)
INDEXER_SEARCH_TOTAL = Counter(
    "grabarr_indexer_search_total",
    "Indexer search calls",
    ["indexer", "status"],  # ok, error, timeout, skipped
)
INDEXER_SEARCH_DURATION = Histogram(
    "grabarr_indexer_search_duration_seconds",
    "Indexer search duration in seconds",
    buckets=(0.25, 0.5, 1, 2.5, 5, 10, 30, 60),
)

# Scheduler
TASK_RUNS_TOTAL = Counter(
    "grabarr_task_runs_total",
    "Scheduled task runs",
    ["task", "status"],  # success, failed, skipped
)
TASK_DURATION = Histogram(
    "grabarr_task_duration_seconds",
    "Scheduled task duration in seconds",
    ["task"],
    buckets=(0.1, 0.5, 1, 5, 15, 60, 300, 900),
)

# Database
DATABASE_SIZE = Gauge("grabarr_database_size_bytes", "SQLite database file size")
ACTIVE_DOWNLOADS = Gauge("grabarr_active_downloads", "Downloads not yet in a terminal state")
PENDING_GRABS = Gauge("grabarr_pending_grabs", "Candidates held back by a delay profile")

# Resilience
CIRCUIT_BREAKER_STATE = Gauge(
    "grabarr_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open, 2=half_open)",
    ["source"],
)

APP_INFO = Info("grabarr", "Grabarr application information")


# -- Recording helpers ---------------------------------------------------------


def record_decision(outcome: str) -> None:
    GRAB_DECISIONS_TOTAL.labels(outcome=outcome).inc()


def record_grab(protocol: str, is_upgrade: bool) -> None:
    GRABS_TOTAL.labels(protocol=protocol, upgrade="yes" if is_upgrade else "no").inc()


def record_download_failure(reason: str) -> None:
    DOWNLOAD_FAILURES_TOTAL.labels(reason=reason).inc()


def record_import(status: str) -> None:
    IMPORTS_TOTAL.labels(status=status).inc()


def record_indexer_search(indexer: str, status: str, duration: float | None = None) -> None:
    INDEXER_SEARCH_TOTAL.labels(indexer=indexer, status=status).inc()
    if duration is not None:
        INDEXER_SEARCH_DURATION.observe(duration)


def record_task_run(task: str, status: str, duration: float) -> None:
    TASK_RUNS_TOTAL.labels(task=task, status=status).inc()
    if status != "skipped":
        TASK_DURATION.labels(task=task).observe(duration)


def set_circuit_state(source: str, state: CircuitState) -> None:
    """State-change callback handed to every BreakerRegistry."""
    CIRCUIT_BREAKER_STATE.labels(source=source).set(STATE_VALUES.get(state, -1))


# -- Collection helpers --------------------------------------------------------


def collect_system_metrics() -> None:
    """Update process resource gauges."""
    try:
        CPU_USAGE.set(psutil.cpu_percent(interval=None))
        MEMORY_USAGE.set(psutil.Process().memory_info().rss)
    except psutil.Error as exc:
        logger.debug("Failed to collect system metrics: %s", exc)


def collect_database_metrics(db_path: str) -> None:
    """Update database size and pipeline depth gauges."""
    if db_path and os.path.exists(db_path):
        DATABASE_SIZE.set(os.path.getsize(db_path))

    from db.repositories.delay import PendingGrabRepository
    from db.repositories.downloads import ACTIVE_STATES, DownloadRepository

    ACTIVE_DOWNLOADS.set(len(DownloadRepository().list_by_status(*ACTIVE_STATES)))
    PENDING_GRABS.set(len(PendingGrabRepository().list_pending()))


# -- Endpoint helper -----------------------------------------------------------


def generate_metrics(db_path: str) -> tuple[bytes, str]:
    """Collect all metrics and return Prometheus text output.

    Returns:
        (body_bytes, content_type)
    """
    collect_system_metrics()
    collect_database_metrics(db_path)
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
