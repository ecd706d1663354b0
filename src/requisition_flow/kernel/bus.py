"""
In-process event bus

Simple synchronous pub/sub for side effects that follow a committed
write, such as notification delivery. Subscribers run after the events
are durably appended; a failing subscriber is logged and never undoes
or blocks the write that triggered it.
"""

from collections import defaultdict
from typing import Callable

from requisition_flow.kernel.events import Event
from requisition_flow.kernel.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Event], None]


class InProcessBus:
    """
    Synchronous in-process bus

    Handlers are called in registration order. For a distributed
    deployment this could be swapped for a message queue adapter with
    the same interface.
    """

    def __init__(self) -> None:
        self._event_handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)

    def register_event_handler(self, event_type: str, handler: EventHandler) -> None:
        """
        Subscribe a handler to an event type (many handlers per type allowed)

        Args:
            event_type: Type of event to handle (e.g., "RequisitionStatusChanged")
            handler: Callable receiving the committed event
        """
        self._event_handlers[event_type].append(handler)
        logger.debug(
            "Event handler registered",
            event_type=event_type,
            total_handlers=len(self._event_handlers[event_type]),
        )

    def publish_event(self, event: Event) -> None:
        """Publish an event to all registered handlers"""
        handlers = self._event_handlers.get(event.event_type, [])
        if not handlers:
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                # Fire-and-forget: one failing subscriber must not affect the others
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    stream_id=event.stream_id,
                    error=str(e),
                    exc_info=True,
                )

    def publish_events(self, events: list[Event]) -> None:
        for event in events:
            self.publish_event(event)

    def get_event_types(self) -> list[str]:
        """Event types with at least one subscriber"""
        return list(self._event_handlers.keys())

    def clear(self) -> None:
        """Remove all handlers (useful for testing)"""
        self._event_handlers.clear()
