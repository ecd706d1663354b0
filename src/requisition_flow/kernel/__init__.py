"""
Kernel - Core event sourcing infrastructure

The kernel provides the machinery the workflow modules build upon:
events, the append-only SQLite store, the injectable clock, errors,
logging, metrics and the workflow policy.

Fun fact: Event sourcing was inspired by accountants - they never erase ledger
entries, they add correcting entries. Warehouses learned the same from stock cards.
"""

from requisition_flow.kernel.errors import (
    CommandIdempotencyViolation,
    ConflictStale,
    EventStoreError,
    NotFound,
    StreamVersionConflict,
    TransitionDenied,
    ValidationFailed,
    WorkflowError,
)
from requisition_flow.kernel.events import Event
from requisition_flow.kernel.ids import generate_id
from requisition_flow.kernel.policy import WorkflowPolicy
from requisition_flow.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events
    "Event",
    # Policy
    "WorkflowPolicy",
    # Errors
    "WorkflowError",
    "EventStoreError",
    "CommandIdempotencyViolation",
    "StreamVersionConflict",
    "TransitionDenied",
    "ValidationFailed",
    "NotFound",
    "ConflictStale",
]
