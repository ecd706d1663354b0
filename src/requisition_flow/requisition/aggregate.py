"""
RequisitionChangeSet - the events of one command, applied as they are decided

Handlers record events one at a time. Each event is folded straight
into a private copy of the requisition read model, so any later check
in the same command (over-dispatch, status recomputation) reads the
state as it will be once the batch commits, never a stale snapshot.
The facade appends changes.events in a single transaction.
"""

import copy
from datetime import datetime

from pydantic import BaseModel

from requisition_flow.access.models import Actor
from requisition_flow.kernel.errors import RequisitionNotFound
from requisition_flow.kernel.events import Event, create_event
from requisition_flow.kernel.ids import generate_id
from requisition_flow.kernel.logging import get_logger
from requisition_flow.requisition.events import RequisitionStatusChanged
from requisition_flow.requisition.models import Requisition, RequisitionStatus
from requisition_flow.requisition.projections import RequisitionRegistry
from requisition_flow.requisition.transitions import is_regression, resolve_status

logger = get_logger(__name__)

STREAM_TYPE = "requisition"


class RequisitionChangeSet:
    """Pending events of one command for one requisition"""

    def __init__(
        self,
        requisition_id: str,
        state: dict | None,
        *,
        command_id: str,
        actor: Actor,
        now: datetime,
    ) -> None:
        self.requisition_id = requisition_id
        self.command_id = command_id
        self.actor = actor
        self.now = now
        self.events: list[Event] = []
        self._registry = RequisitionRegistry()
        if state is not None:
            self._registry.requisitions[requisition_id] = copy.deepcopy(state)
        self._version = state["version"] if state is not None else 0

    @property
    def expected_version(self) -> int:
        """Stream version the decisions were taken against"""
        return self._version - len(self.events)

    @property
    def state(self) -> dict:
        return self._registry.requisitions[self.requisition_id]

    @property
    def requisition(self) -> Requisition:
        return Requisition.model_validate(self.state)

    def record(self, event_type: str, payload: BaseModel) -> Event:
        """Create the next event of the stream and apply it to the working copy"""
        self._version += 1
        event = create_event(
            event_id=generate_id(),
            stream_id=self.requisition_id,
            stream_type=STREAM_TYPE,
            event_type=event_type,
            occurred_at=self.now,
            command_id=self.command_id,
            actor_id=self.actor.user_id,
            payload=payload.model_dump(mode="json"),
            version=self._version,
        )
        self._registry.apply_event(event)
        self.events.append(event)
        return event

    def change_status(
        self, new_status: RequisitionStatus, action: str, comment: str | None = None
    ) -> Event | None:
        """Record a status transition (history entry) unless the status is unchanged"""
        previous = RequisitionStatus(self.state["status"])
        new_status = RequisitionStatus(new_status)
        if previous == new_status:
            return None
        return self.record(
            "RequisitionStatusChanged",
            RequisitionStatusChanged(
                requisition_id=self.requisition_id,
                previous_status=previous,
                new_status=new_status,
                action=action,
                comment=comment,
                changed_at=self.now,
                changed_by=self.actor.user_id,
            ),
        )

    def reconcile_status(self, action: str, comment: str | None = None) -> Event | None:
        """
        Recompute the requisition status from the post-mutation items and lots
        """
        requisition = self.requisition
        new_status = resolve_status(requisition)
        if is_regression(requisition.status, new_status):
            logger.warning(
                "Requisition status moved backwards",
                requisition_id=self.requisition_id,
                previous_status=requisition.status.value,
                new_status=new_status.value,
                action=action,
            )
        return self.change_status(new_status, action, comment)


def open_change_set(
    requisitions: dict[str, dict],
    requisition_id: str,
    *,
    command_id: str,
    actor: Actor,
    now: datetime,
) -> RequisitionChangeSet:
    """
    Start a change set on an existing requisition

    Raises:
        RequisitionNotFound: If the requisition doesn't exist or was discarded
    """
    state = requisitions.get(requisition_id)
    if state is None or state.get("deleted"):
        raise RequisitionNotFound(requisition_id)
    return RequisitionChangeSet(
        requisition_id, state, command_id=command_id, actor=actor, now=now
    )
