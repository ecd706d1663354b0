"""
Test infrastructure components: logging, metrics, retry.

These tests verify the production hardening infrastructure works correctly.
"""

import sqlite3
from datetime import datetime, timezone

import pytest

from requisition_flow.kernel.errors import StreamKeyConflict, StreamVersionConflict
from requisition_flow.kernel.event_store import SQLiteEventStore
from requisition_flow.kernel.events import Event
from requisition_flow.kernel.logging import (
    LogOperation,
    configure_logging,
    correlation_id_var,
    get_correlation_id,
    get_logger,
    redact_context,
    set_correlation_id,
)
from requisition_flow.kernel import metrics
from requisition_flow.kernel.metrics import (
    commands_processed_total,
    events_appended_total,
    events_loaded_total,
    stream_version_conflicts_total,
    track_command_duration,
)
from requisition_flow.kernel.retry import is_lock_error, retry_on_key_conflict, retry_on_sqlite_lock


def _event(version: int = 1, command_id: str = "cmd-1") -> Event:
    return Event(
        event_id=f"evt-{command_id}-{version}",
        stream_id="stream-1",
        stream_type="metrics-test",
        version=version,
        command_id=command_id,
        event_type="MetricsTestEvent",
        occurred_at=datetime.now(timezone.utc),
        actor_id="tecnico",
        payload={"test": "data"},
    )


class TestLoggingFramework:
    """Test structured logging framework."""

    def test_configure_logging_console(self) -> None:
        """Test logging configuration for console output."""
        configure_logging(json_output=False, log_level="INFO")
        logger = get_logger(__name__)
        assert logger is not None

    def test_configure_logging_json(self) -> None:
        """Test logging configuration for JSON output."""
        configure_logging(json_output=True, log_level="DEBUG")
        logger = get_logger(__name__)
        assert logger is not None

    def test_correlation_id(self) -> None:
        """Test correlation ID context management."""
        cid = get_correlation_id()
        assert cid is not None
        assert len(cid) > 0

        custom_id = "test-correlation-123"
        set_correlation_id(custom_id)
        assert get_correlation_id() == custom_id

    def test_redact_context(self) -> None:
        """User identifiers never reach the log"""
        redacted = redact_context(
            {"actor_id": "tecnico", "requester_id": "tecnico", "operation": "submit"}
        )
        assert redacted == {
            "actor_id": "***REDACTED***",
            "requester_id": "***REDACTED***",
            "operation": "submit",
        }

    def test_log_operation_context_manager(self) -> None:
        """Test LogOperation context manager."""
        configure_logging(json_output=False, log_level="INFO")
        logger = get_logger(__name__)

        with LogOperation(logger, "test_operation", requisition_id="r1") as operation:
            pass
        assert operation.start_time > 0

    def test_log_operation_with_exception(self) -> None:
        """Test LogOperation logs errors and lets them propagate."""
        configure_logging(json_output=False, log_level="INFO")
        logger = get_logger(__name__)

        with pytest.raises(ValueError):
            with LogOperation(logger, "failing_operation", actor_id="tecnico"):
                raise ValueError("Test error")

    def test_log_operation_opens_its_own_correlation_id(self) -> None:
        """Lines of one command share an id that ends with the command"""
        logger = get_logger(__name__)
        set_correlation_id("")

        with LogOperation(logger, "submit", requisition_id="r1"):
            inside = correlation_id_var.get()
            assert inside
            assert get_correlation_id() == inside

        assert correlation_id_var.get() == ""

    def test_log_operation_keeps_an_outer_correlation_id(self) -> None:
        logger = get_logger(__name__)
        set_correlation_id("cli-run-7")

        with LogOperation(logger, "submit", requisition_id="r1"):
            assert get_correlation_id() == "cli-run-7"

        assert get_correlation_id() == "cli-run-7"
        set_correlation_id("")

    def test_log_operation_masks_user_ids(self) -> None:
        operation = LogOperation(get_logger(__name__), "approve", actor_id="gerencia", requisition_id="r1")
        assert operation.context == {"actor_id": "***REDACTED***", "requisition_id": "r1"}


class TestMetrics:
    """Test Prometheus metrics collection."""

    def test_metrics_server_uses_prometheus_http_server(self, monkeypatch) -> None:
        started = []
        monkeypatch.setattr(metrics, "start_http_server", started.append)

        metrics.start_metrics_server(9191)

        assert started == [9191]

    def test_events_appended_metric(self, tmp_path) -> None:
        store = SQLiteEventStore(tmp_path / "test.db")
        counter = events_appended_total.labels(
            stream_type="metrics-test", event_type="MetricsTestEvent"
        )
        before = counter._value.get()

        store.append("stream-1", 0, [_event()])

        assert counter._value.get() == before + 1

    def test_idempotent_replay_not_counted(self, tmp_path) -> None:
        store = SQLiteEventStore(tmp_path / "test.db")
        store.append("stream-1", 0, [_event()])
        counter = events_appended_total.labels(
            stream_type="metrics-test", event_type="MetricsTestEvent"
        )
        before = counter._value.get()

        store.append("stream-1", 0, [_event()])

        assert counter._value.get() == before

    def test_events_loaded_metric(self, tmp_path) -> None:
        store = SQLiteEventStore(tmp_path / "test.db")
        store.append("stream-1", 0, [_event()])
        before = events_loaded_total.labels(stream_type="metrics-test")._value.get()

        store.load_stream("stream-1")

        assert events_loaded_total.labels(stream_type="metrics-test")._value.get() > before

    def test_version_conflict_metric(self, tmp_path) -> None:
        store = SQLiteEventStore(tmp_path / "test.db")
        store.append("stream-1", 0, [_event()])
        counter = stream_version_conflicts_total.labels(stream_type="metrics-test")
        before = counter._value.get()

        with pytest.raises(StreamVersionConflict):
            store.append("stream-1", 0, [_event(command_id="cmd-2")])

        assert counter._value.get() == before + 1

    def test_track_command_duration(self) -> None:
        @track_command_duration("timed_command")
        def succeed() -> str:
            return "ok"

        @track_command_duration("timed_command")
        def fail() -> None:
            raise RuntimeError("boom")

        ok = commands_processed_total.labels(command_type="timed_command", status="success")
        failed = commands_processed_total.labels(command_type="timed_command", status="failure")
        ok_before, failed_before = ok._value.get(), failed._value.get()

        assert succeed() == "ok"
        with pytest.raises(RuntimeError):
            fail()

        assert ok._value.get() == ok_before + 1
        assert failed._value.get() == failed_before + 1


class TestRetryLogic:
    """Test retry logic with exponential backoff."""

    def test_is_lock_error(self) -> None:
        assert is_lock_error(sqlite3.OperationalError("database is locked"))
        assert is_lock_error(sqlite3.OperationalError("database is busy"))
        assert not is_lock_error(sqlite3.OperationalError("no such table: events"))
        assert not is_lock_error(ValueError("database is locked"))

    def test_retry_decorator(self) -> None:
        """Test retry decorator works."""
        call_count = 0

        @retry_on_sqlite_lock(max_attempts=3, min_wait_ms=1, max_wait_ms=2)
        def failing_function() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise sqlite3.OperationalError("database is locked")
            return "success"

        assert failing_function() == "success"
        assert call_count == 2  # Failed once, succeeded on retry

    def test_other_errors_not_retried(self) -> None:
        call_count = 0

        @retry_on_sqlite_lock(max_attempts=3, min_wait_ms=1, max_wait_ms=2)
        def broken() -> None:
            nonlocal call_count
            call_count += 1
            raise sqlite3.OperationalError("no such table: events")

        with pytest.raises(sqlite3.OperationalError):
            broken()
        assert call_count == 1

    def test_key_conflict_retried_until_attempts_run_out(self) -> None:
        keys = iter(["REQ-2025-0001", "REQ-2025-0001", "REQ-2025-0001"])
        tried = []

        @retry_on_key_conflict(max_attempts=3)
        def claim() -> str:
            key = next(keys)
            tried.append(key)
            raise StreamKeyConflict(key, "req-2")

        with pytest.raises(StreamKeyConflict):
            claim()
        assert len(tried) == 3

    def test_key_conflict_retry_picks_up_a_fresh_key(self) -> None:
        taken = {"REQ-2025-0001"}
        keys = iter(["REQ-2025-0001", "REQ-2025-0002"])

        @retry_on_key_conflict()
        def claim() -> str:
            key = next(keys)
            if key in taken:
                raise StreamKeyConflict(key, "req-2")
            return key

        assert claim() == "REQ-2025-0002"
