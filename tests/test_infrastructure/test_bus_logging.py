"""
Test bus.py logging integration.

Verifies that the InProcessBus delivers events to every subscriber and
that a failing subscriber is logged without affecting the others.
"""

from datetime import datetime, timezone

from requisition_flow.kernel.bus import InProcessBus
from requisition_flow.kernel.events import Event
from requisition_flow.kernel.logging import configure_logging


def _event(event_type: str = "RequisitionStatusChanged") -> Event:
    return Event(
        event_id="evt-1",
        stream_id="req-1",
        stream_type="requisition",
        version=2,
        command_id="cmd-1",
        event_type=event_type,
        occurred_at=datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc),
        actor_id="tecnico",
        payload={"previous_status": "BORRADOR", "new_status": "VALIDACION_SEGURIDAD"},
    )


class TestBusLogging:
    """Test bus logging integration."""

    def setup_method(self) -> None:
        """Configure logging for each test."""
        configure_logging(json_output=False, log_level="DEBUG")

    def test_event_handler_registration_logged(self) -> None:
        bus = InProcessBus()

        bus.register_event_handler("RequisitionStatusChanged", lambda event: None)
        bus.register_event_handler("RequisitionStatusChanged", lambda event: None)

        assert bus.get_event_types() == ["RequisitionStatusChanged"]

    def test_publish_reaches_handlers_in_order(self) -> None:
        bus = InProcessBus()
        seen: list[str] = []
        bus.register_event_handler("RequisitionStatusChanged", lambda e: seen.append("first"))
        bus.register_event_handler("RequisitionStatusChanged", lambda e: seen.append("second"))

        bus.publish_event(_event())

        assert seen == ["first", "second"]

    def test_publish_without_handlers(self) -> None:
        bus = InProcessBus()
        bus.publish_events([_event("LotCreated")])  # no subscriber, nothing happens

    def test_failing_handler_does_not_stop_others(self) -> None:
        """A subscriber error is logged; the remaining subscribers still run"""
        bus = InProcessBus()
        seen: list[str] = []

        def broken(event: Event) -> None:
            raise RuntimeError("mail server down")

        bus.register_event_handler("RequisitionStatusChanged", broken)
        bus.register_event_handler("RequisitionStatusChanged", lambda e: seen.append(e.event_id))

        bus.publish_event(_event())

        assert seen == ["evt-1"]

    def test_clear(self) -> None:
        bus = InProcessBus()
        bus.register_event_handler("LotStatusChanged", lambda event: None)
        bus.clear()
        assert bus.get_event_types() == []
