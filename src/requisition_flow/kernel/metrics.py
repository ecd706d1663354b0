"""
Prometheus metrics for the requisition workflow.

Counts what the engine does (events, commands, transitions, dispatches,
notifications) and how long commands take.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "reqflow_events_appended_total",
    "Total number of events appended to the event store",
    ["stream_type", "event_type"],
)

events_loaded_total = Counter(
    "reqflow_events_loaded_total",
    "Total number of events loaded from the event store",
    ["stream_type"],
)

stream_version_conflicts_total = Counter(
    "reqflow_stream_version_conflicts_total",
    "Total number of optimistic locking version conflicts",
    ["stream_type"],
)

# ============================================================================
# Command Processing Metrics
# ============================================================================

command_duration_seconds = Histogram(
    "reqflow_command_duration_seconds",
    "Duration of command processing in seconds",
    ["command_type"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

commands_processed_total = Counter(
    "reqflow_commands_processed_total",
    "Total number of commands processed",
    ["command_type", "status"],  # status: success, failure
)

# ============================================================================
# Workflow Metrics
# ============================================================================

requisition_transitions_total = Counter(
    "reqflow_requisition_transitions_total",
    "Total number of requisition status transitions",
    ["from_status", "to_status"],
)

requisitions_by_status = Gauge(
    "reqflow_requisitions_by_status",
    "Number of live requisitions per status",
    ["status"],
)

lots_dispatched_total = Counter(
    "reqflow_lots_dispatched_total",
    "Total number of lots dispatched",
)

notifications_sent_total = Counter(
    "reqflow_notifications_sent_total",
    "Total number of notification deliveries attempted",
    ["outcome"],  # outcome: sent, failed, skipped
)

projection_rebuild_duration_seconds = Histogram(
    "reqflow_projection_rebuild_duration_seconds",
    "Duration of projection rebuild in seconds",
    ["projection_name"],
    buckets=(0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0),
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_command_duration(command_type: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator recording duration and success/failure of a command.

    Args:
        command_type: Command name used as the metric label
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                command_duration_seconds.labels(command_type=command_type).observe(
                    time.perf_counter() - start
                )
                commands_processed_total.labels(
                    command_type=command_type, status=status
                ).inc()

        return wrapper

    return decorator


def update_status_gauge(counts: dict[str, int]) -> None:
    """Publish per-status requisition counts."""
    for status, count in counts.items():
        requisitions_by_status.labels(status=status).set(count)


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus metrics HTTP server."""
    start_http_server(port)
