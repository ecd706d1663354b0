"""
Tests for SQLite Event Store

Verifies core event sourcing properties:
- Append-only semantics
- Idempotency via command_id
- Optimistic locking via stream versioning
- Atomic batches: one request, one transaction

Fun fact: Event sourcing tests are like archaeology - we're verifying
that the historical record is complete, immutable, and replayable!
"""

from datetime import datetime, timedelta, timezone

import pytest

from requisition_flow.kernel.errors import (
    CommandIdempotencyViolation,
    StreamKeyConflict,
    StreamVersionConflict,
)
from requisition_flow.kernel.event_store import SQLiteEventStore
from requisition_flow.kernel.events import Event, create_event
from requisition_flow.kernel.ids import generate_id

T0 = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_event(
    stream_id: str,
    version: int,
    command_id: str | None = None,
    event_type: str = "RequisitionCommentAdded",
    occurred_at: datetime = T0,
    payload: dict | None = None,
) -> Event:
    return create_event(
        event_id=generate_id(),
        stream_id=stream_id,
        stream_type="requisition",
        event_type=event_type,
        occurred_at=occurred_at,
        command_id=command_id or generate_id(),
        actor_id="tecnico",
        payload=payload or {"sequence": version},
        version=version,
    )


def test_append_and_load_single_event(event_store: SQLiteEventStore) -> None:
    """Test appending and loading a single event"""
    event = make_event("req-1", 1, payload={"number": "REQ-2025-0001"})

    appended = event_store.append("req-1", 0, [event])
    assert len(appended) == 1
    assert appended[0].event_id == event.event_id

    loaded = event_store.load_stream("req-1")
    assert len(loaded) == 1
    assert loaded[0].event_id == event.event_id
    assert loaded[0].payload == {"number": "REQ-2025-0001"}
    assert loaded[0].occurred_at == T0
    assert loaded[0].actor_id == "tecnico"


def test_batch_append_is_one_version_run(event_store: SQLiteEventStore) -> None:
    """All events of one command land together with consecutive versions"""
    command_id = generate_id()
    batch = [make_event("req-1", v, command_id=command_id) for v in (1, 2, 3)]

    event_store.append("req-1", 0, batch)

    assert event_store.get_stream_version("req-1") == 3
    assert [e.version for e in event_store.load_stream("req-1")] == [1, 2, 3]


def test_optimistic_locking_conflict(event_store: SQLiteEventStore) -> None:
    """A writer that decided against an old version is refused"""
    event_store.append("req-1", 0, [make_event("req-1", 1)])

    with pytest.raises(StreamVersionConflict) as exc_info:
        event_store.append("req-1", 0, [make_event("req-1", 1)])

    assert exc_info.value.stream_id == "req-1"
    assert exc_info.value.expected_version == 0
    assert exc_info.value.actual_version == 1


def test_conflicting_batch_writes_nothing(event_store: SQLiteEventStore) -> None:
    """A refused batch leaves no partial trace behind"""
    event_store.append("req-1", 0, [make_event("req-1", 1)])
    command_id = generate_id()
    stale = [make_event("req-1", v, command_id=command_id) for v in (1, 2)]

    with pytest.raises(StreamVersionConflict):
        event_store.append("req-1", 0, stale)

    assert event_store.count_events() == 1


def test_command_idempotency(event_store: SQLiteEventStore) -> None:
    """Replaying a command returns the original events and writes nothing"""
    command_id = generate_id()
    first = [make_event("req-1", 1, command_id=command_id)]
    event_store.append("req-1", 0, first)

    replay = [make_event("req-1", 1, command_id=command_id)]
    result = event_store.append("req-1", 0, replay)

    assert [e.event_id for e in result] == [first[0].event_id]
    assert event_store.count_events() == 1


def test_command_id_reused_on_other_stream(event_store: SQLiteEventStore) -> None:
    command_id = generate_id()
    event_store.append("req-1", 0, [make_event("req-1", 1, command_id=command_id)])

    with pytest.raises(CommandIdempotencyViolation):
        event_store.append("req-2", 0, [make_event("req-2", 1, command_id=command_id)])


def test_events_for_command(event_store: SQLiteEventStore) -> None:
    events = [make_event("req-1", 1, command_id="cmd-1"), make_event("req-1", 2, command_id="cmd-1")]
    event_store.append("req-1", 0, events)

    assert [e.version for e in event_store.events_for_command("cmd-1")] == [1, 2]
    assert event_store.events_for_command("cmd-unknown") == []


def test_unique_key_claimed_with_the_batch(event_store: SQLiteEventStore) -> None:
    event_store.append("req-1", 0, [make_event("req-1", 1)], unique_key="REQ-2025-0001")
    event_store.append("req-2", 0, [make_event("req-2", 1)], unique_key="REQ-2025-0002")
    event_store.append("req-3", 0, [make_event("req-3", 1)], unique_key="REQ-2026-0001")

    assert sorted(event_store.keys_with_prefix("REQ-2025-")) == ["REQ-2025-0001", "REQ-2025-0002"]
    assert event_store.keys_with_prefix("OC-2025-") == []


def test_taken_unique_key_writes_nothing(event_store: SQLiteEventStore) -> None:
    event_store.append("req-1", 0, [make_event("req-1", 1)], unique_key="REQ-2025-0001")

    with pytest.raises(StreamKeyConflict) as exc_info:
        event_store.append("req-2", 0, [make_event("req-2", 1)], unique_key="REQ-2025-0001")

    assert exc_info.value.key == "REQ-2025-0001"
    assert exc_info.value.stream_id == "req-2"
    assert event_store.load_stream("req-2") == []
    assert event_store.count_events() == 1


def test_load_all_events_chronological(event_store: SQLiteEventStore) -> None:
    event_store.append("req-b", 0, [make_event("req-b", 1, occurred_at=T0 + timedelta(hours=1))])
    event_store.append("req-a", 0, [make_event("req-a", 1, occurred_at=T0)])
    event_store.append("req-a", 1, [make_event("req-a", 2, occurred_at=T0 + timedelta(hours=2))])

    loaded = event_store.load_all_events()

    assert [(e.stream_id, e.version) for e in loaded] == [
        ("req-a", 1),
        ("req-b", 1),
        ("req-a", 2),
    ]


def test_count_operations(event_store: SQLiteEventStore) -> None:
    assert event_store.count_events() == 0
    assert event_store.count_streams() == 0

    event_store.append("req-1", 0, [make_event("req-1", 1)])
    event_store.append("req-1", 1, [make_event("req-1", 2)])
    event_store.append("req-2", 0, [make_event("req-2", 1)])

    assert event_store.count_events() == 3
    assert event_store.count_streams() == 2


def test_append_empty_events_list(event_store: SQLiteEventStore) -> None:
    assert event_store.append("req-1", 0, []) == []
    assert event_store.count_events() == 0


def test_load_stream_returns_empty_for_nonexistent(event_store: SQLiteEventStore) -> None:
    assert event_store.load_stream("nope") == []
    assert event_store.get_stream_version("nope") == 0


def test_store_survives_reopen(temp_db) -> None:
    """A new store on the same file sees everything written before"""
    SQLiteEventStore(temp_db).append("req-1", 0, [make_event("req-1", 1)])

    reopened = SQLiteEventStore(temp_db)

    assert reopened.get_stream_version("req-1") == 1
    assert len(reopened.load_all_events()) == 1
