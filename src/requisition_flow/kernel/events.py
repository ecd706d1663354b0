"""
Base Event model for the requisition event log

Every change to a requisition, its items and its lots is recorded as an
immutable Event in the requisition's stream. Read models are rebuilt by
replaying those events in version order.

Fun fact: Paper requisition books used carbon copies so that nobody
could quietly rewrite a request. An append-only log is the same idea!
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Base event - one immutable fact in a requisition's stream

    stream_id is the requisition id; items and lots live inside that
    stream so that one request is always one atomic append.
    command_id makes the append idempotent, version gives optimistic locking.
    """

    event_id: str = Field(
        ...,
        description="Unique event identifier (UUIDv7 for time-ordering)",
    )

    stream_id: str = Field(
        ...,
        description="Requisition identifier - groups all events of one request",
    )

    stream_type: str = Field(
        ...,
        description="Type of aggregate, always 'requisition' for workflow events",
    )

    event_type: str = Field(
        ...,
        description="Specific event type: 'RequisitionSubmitted', 'LotDispatched', etc.",
    )

    occurred_at: datetime = Field(
        ...,
        description="UTC timestamp when event occurred",
    )

    actor_id: str | None = Field(
        default=None,
        description="ID of the user who triggered this event",
    )

    command_id: str = Field(
        ...,
        description="ID of command that caused this event (idempotency key)",
    )

    payload: dict = Field(
        default_factory=dict,
        description="Event-specific data (must be JSON-serializable)",
    )

    version: int = Field(
        ...,
        description="Stream version after this event (monotonically increasing)",
        ge=1,
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "01908e9a-0000-7000-8000-000000000001",
                    "stream_type": "requisition",
                    "event_type": "RequisitionCreated",
                    "occurred_at": "2025-01-15T10:30:00Z",
                    "actor_id": "tec-1",
                    "command_id": "cmd-123",
                    "payload": {"number": "REQ-2025-0001", "reason": "Monthly PPE restock"},
                    "version": 1,
                }
            ]
        },
    }


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """Factory for events with every required field named explicitly"""
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )
