"""
RequisitionFlow - Main façade class

This is the primary interface of the requisition workflow engine. It
hides event sourcing, projections and command handling behind one call
per business action.

Example:
    >>> from requisition_flow import RequisitionFlow
    >>> flow = RequisitionFlow("requisitions.db")
    >>> req = flow.create_requisition("tecnico", "OU-1", "CC-1", "Spare parts for pump 3")
    >>> flow.add_item(req["requisition_id"], "tecnico", "Bearing 6205", 4)
    >>> flow.submit(req["requisition_id"], "tecnico")
    >>> flow.approve(req["requisition_id"], "seguridad")
"""

import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from requisition_flow.access.engine import (
    can_view,
    capabilities_for,
    pending_approval_statuses,
)
from requisition_flow.access.identity import InMemoryUserDirectory, UserDirectory
from requisition_flow.access.models import Actor, Capability, CapabilitySet
from requisition_flow.items.commands import (
    ClassifyItems,
    ConfirmPurchaseReceived,
    TransitionItem,
    ValidatePurchase,
)
from requisition_flow.items.handlers import ItemCommandHandlers
from requisition_flow.kernel.bus import InProcessBus
from requisition_flow.kernel.collaborators import LoggingNotifier, Notifier, RequisitionNumbering
from requisition_flow.kernel.errors import (
    CapabilityDenied,
    CommandIdempotencyViolation,
    RequisitionNotFound,
    StreamVersionConflict,
    TransitionDenied,
    ValidationFailed,
)
from requisition_flow.kernel.event_store import SQLiteEventStore
from requisition_flow.kernel.events import Event
from requisition_flow.kernel.ids import generate_id
from requisition_flow.kernel.logging import LogOperation, get_logger
from requisition_flow.kernel.metrics import (
    lots_dispatched_total,
    projection_rebuild_duration_seconds,
    requisition_transitions_total,
    track_command_duration,
    update_status_gauge,
)
from requisition_flow.kernel.policy import WorkflowPolicy
from requisition_flow.kernel.retry import retry_on_key_conflict
from requisition_flow.kernel.time import RealTimeProvider, TimeProvider
from requisition_flow.lots.commands import (
    CancelLot,
    ConfirmDelivery,
    CreateLot,
    DispatchLot,
    MarkLotInTransit,
    PrepareLot,
    SchedulePickup,
    UpdateLot,
)
from requisition_flow.lots.handlers import LotCommandHandlers
from requisition_flow.lots.models import LotStatus
from requisition_flow.requisition.commands import (
    AddComment,
    AddItem,
    ApproveRequisition,
    CreateRequisition,
    DeleteRequisition,
    RejectRequisition,
    RemoveItem,
    SubmitRequisition,
    UpdateItem,
)
from requisition_flow.requisition.handlers import RequisitionCommandHandlers
from requisition_flow.requisition.models import Requisition, RequisitionStatus
from requisition_flow.requisition.notifications import NotificationDispatcher
from requisition_flow.requisition.numbering import SequentialNumbering
from requisition_flow.requisition.projections import (
    HistoryLog,
    ItemModificationLog,
    RequisitionRegistry,
)

logger = get_logger(__name__)

C = TypeVar("C", bound=BaseModel)
Handler = Callable[[Any, str, Actor, dict], list[Event]]


class RequisitionFlow:
    """
    Requisition workflow main façade

    Every mutating operation:
    - resolves the acting user through the identity collaborator
    - lets a command handler check permissions and eligibility
    - appends the resulting events in one atomic write
    - updates the projections and publishes the events on the bus
    - returns the requisition read model
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: WorkflowPolicy | None = None,
        time_provider: TimeProvider | None = None,
        directory: UserDirectory | None = None,
        notifier: Notifier | None = None,
        numbering: RequisitionNumbering | None = None,
    ) -> None:
        """
        Initialize the workflow engine

        Args:
            sqlite_path: Path to SQLite database
            policy: Workflow policy (uses defaults if None)
            time_provider: Time provider (uses real time if None)
            directory: Identity collaborator (one user per role if None)
            notifier: Notification collaborator (logs notifications if None)
            numbering: Numbering collaborator (read from the event store if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or WorkflowPolicy.default()
        self.time_provider = time_provider or RealTimeProvider()
        self.directory = directory or InMemoryUserDirectory.one_per_role()
        self.notifier = notifier or LoggingNotifier()

        # Infrastructure
        self.event_store = SQLiteEventStore(self.sqlite_path)
        self.requisition_handlers = RequisitionCommandHandlers(self.time_provider, self.policy)
        self.item_handlers = ItemCommandHandlers(self.time_provider, self.policy)
        self.lot_handlers = LotCommandHandlers(self.time_provider, self.policy)

        # Projections
        self.requisition_registry = RequisitionRegistry()
        self.history_log = HistoryLog()
        self.modification_log = ItemModificationLog()
        self.numbering = numbering or SequentialNumbering(self.event_store, self.policy)

        # Side effects after commit
        self.bus = InProcessBus()
        NotificationDispatcher(
            self.requisition_registry, self.directory, self.notifier, self.policy
        ).subscribe(self.bus)

        self._rebuild_projections()

    def _projections(self) -> tuple:
        return (self.requisition_registry, self.history_log, self.modification_log)

    def _rebuild_projections(self) -> None:
        """Rebuild all projections from the event store"""
        start = time.perf_counter()
        all_events = self.event_store.load_all_events()
        for event in all_events:
            for projection in self._projections():
                projection.apply_event(event)
        projection_rebuild_duration_seconds.labels(projection_name="all").observe(
            time.perf_counter() - start
        )
        self._update_gauges()
        logger.info(
            "Projections rebuilt",
            event_count=len(all_events),
            requisition_count=len(self.requisition_registry.requisitions),
        )

    def _refresh_stream(self, stream_id: str) -> None:
        """Reload one requisition from the store after another writer got there first"""
        self.requisition_registry.requisitions.pop(stream_id, None)
        self.history_log.entries.pop(stream_id, None)
        self.modification_log.modifications.pop(stream_id, None)
        for event in self.event_store.load_stream(stream_id):
            for projection in self._projections():
                projection.apply_event(event)

    def _update_gauges(self) -> None:
        counts = self.requisition_registry.count_by_status()
        update_status_gauge({status.value: counts.get(status.value, 0) for status in RequisitionStatus})

    # Plumbing

    def _actor(self, actor_id: str) -> Actor:
        """Resolve the acting user; inactive users may not act"""
        actor = self.directory.get(actor_id)
        if not actor.active:
            raise TransitionDenied(
                entity="user",
                from_status=None,
                to_status=None,
                role=actor.role.value,
                reason="is inactive and cannot act",
                identifier=actor.user_id,
            )
        return actor

    @staticmethod
    def _command(command_type: type[C], **fields: Any) -> C:
        try:
            return command_type(**fields)
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e) from e

    def _commit(self, events: list[Event], unique_key: str | None = None) -> list[Event]:
        """Append one command's events atomically, then project and publish them"""
        if not events:
            return []
        stream_id = events[0].stream_id
        expected_version = events[0].version - 1
        try:
            stored = self.event_store.append(stream_id, expected_version, events, unique_key)
        except StreamVersionConflict:
            self._refresh_stream(stream_id)
            raise

        if stored[0].event_id != events[0].event_id:
            # Idempotent replay: the original events are already projected
            return stored

        for event in stored:
            for projection in self._projections():
                projection.apply_event(event)
            self._count(event)
        self._update_gauges()
        self.bus.publish_events(stored)
        return stored

    @staticmethod
    def _count(event: Event) -> None:
        if event.event_type == "RequisitionStatusChanged":
            requisition_transitions_total.labels(
                from_status=event.payload["previous_status"],
                to_status=event.payload["new_status"],
            ).inc()
        elif (
            event.event_type == "LotStatusChanged"
            and event.payload["new_status"] == LotStatus.DESPACHADO.value
        ):
            lots_dispatched_total.inc()

    def _execute(
        self,
        operation: str,
        handle: Handler,
        command: BaseModel,
        actor_id: str,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        command_id = command_id or generate_id()
        requisition_id: str = command.requisition_id  # type: ignore[attr-defined]
        with LogOperation(
            logger,
            operation,
            requisition_id=requisition_id,
            actor_id=actor_id,
            command_id=command_id,
        ):
            actor = self._actor(actor_id)
            events = handle(command, command_id, actor, self.requisition_registry.requisitions)
            self._commit(events)
        return self.requisition_registry.get(requisition_id)  # type: ignore[return-value]

    # Requisition operations

    @track_command_duration("create_requisition")
    def create_requisition(
        self,
        actor_id: str,
        operating_unit_id: str,
        cost_center_id: str,
        reason: str,
        comments: str | None = None,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a draft requisition owned by the acting user

        Repeating a command_id returns the requisition that command created
        instead of numbering a second one.

        Returns:
            Requisition dict with requisition_id and number
        """
        command = self._command(
            CreateRequisition,
            operating_unit_id=operating_unit_id,
            cost_center_id=cost_center_id,
            reason=reason,
            comments=comments,
        )
        command_id = command_id or generate_id()
        with LogOperation(logger, "create_requisition", actor_id=actor_id, command_id=command_id):
            actor = self._actor(actor_id)
            replayed = self.event_store.events_for_command(command_id)
            if replayed:
                return self._replayed_creation(command_id, replayed)

            @retry_on_key_conflict()
            def claim_number() -> list[Event]:
                number = self.numbering.next_number(self.time_provider.now().year)
                events = self.requisition_handlers.handle_create_requisition(
                    command, command_id, actor, number
                )
                return self._commit(events, unique_key=number)

            stored = claim_number()
        return self.requisition_registry.get(stored[0].stream_id)  # type: ignore[return-value]

    def _replayed_creation(self, command_id: str, replayed: list[Event]) -> dict[str, Any]:
        if replayed[0].event_type != "RequisitionCreated":
            raise CommandIdempotencyViolation(command_id)
        requisition_id = replayed[0].stream_id
        if requisition_id not in self.requisition_registry.requisitions:
            self._refresh_stream(requisition_id)
        logger.info(
            "Creation already processed, returning original requisition",
            command_id=command_id,
            requisition_id=requisition_id,
        )
        return self.requisition_registry.get(requisition_id)  # type: ignore[return-value]

    @track_command_duration("delete_requisition")
    def delete_requisition(
        self, requisition_id: str, actor_id: str, command_id: str | None = None
    ) -> dict[str, Any]:
        command = self._command(DeleteRequisition, requisition_id=requisition_id)
        return self._execute(
            "delete_requisition",
            self.requisition_handlers.handle_delete_requisition,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("submit")
    def submit(
        self, requisition_id: str, actor_id: str, command_id: str | None = None
    ) -> dict[str, Any]:
        """BORRADOR → VALIDACION_SEGURIDAD"""
        command = self._command(SubmitRequisition, requisition_id=requisition_id)
        return self._execute(
            "submit",
            self.requisition_handlers.handle_submit_requisition,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("approve")
    def approve(
        self,
        requisition_id: str,
        actor_id: str,
        comment: str | None = None,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        command = self._command(
            ApproveRequisition, requisition_id=requisition_id, comment=comment
        )
        return self._execute(
            "approve",
            self.requisition_handlers.handle_approve_requisition,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("reject")
    def reject(
        self,
        requisition_id: str,
        actor_id: str,
        comment: str | None,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        """Reject the current stage; the comment needs at least 10 characters"""
        command = self._command(
            RejectRequisition, requisition_id=requisition_id, comment=comment
        )
        return self._execute(
            "reject",
            self.requisition_handlers.handle_reject_requisition,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("add_comment")
    def add_comment(
        self,
        requisition_id: str,
        actor_id: str,
        comment: str,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        command = self._command(AddComment, requisition_id=requisition_id, comment=comment)
        return self._execute(
            "add_comment",
            self.requisition_handlers.handle_add_comment,
            command,
            actor_id,
            command_id,
        )

    # Item operations

    @track_command_duration("add_item")
    def add_item(
        self,
        requisition_id: str,
        actor_id: str,
        description: str,
        requested_quantity: int,
        unit: str = "UND",
        category: str | None = None,
        part_number: str | None = None,
        brand: str | None = None,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        command = self._command(
            AddItem,
            requisition_id=requisition_id,
            description=description,
            requested_quantity=requested_quantity,
            unit=unit,
            category=category,
            part_number=part_number,
            brand=brand,
        )
        return self._execute(
            "add_item",
            self.requisition_handlers.handle_add_item,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("update_item")
    def update_item(
        self,
        requisition_id: str,
        item_id: str,
        actor_id: str,
        reason: str | None = None,
        command_id: str | None = None,
        **changes: Any,
    ) -> dict[str, Any]:
        """
        Change item fields

        Args:
            changes: description, requested_quantity, unit, category, part_number, brand
        """
        command = self._command(
            UpdateItem,
            requisition_id=requisition_id,
            item_id=item_id,
            reason=reason,
            **changes,
        )
        return self._execute(
            "update_item",
            self.requisition_handlers.handle_update_item,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("remove_item")
    def remove_item(
        self,
        requisition_id: str,
        item_id: str,
        actor_id: str,
        reason: str | None = None,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        command = self._command(
            RemoveItem, requisition_id=requisition_id, item_id=item_id, reason=reason
        )
        return self._execute(
            "remove_item",
            self.requisition_handlers.handle_remove_item,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("classify_items")
    def classify_items(
        self,
        requisition_id: str,
        actor_id: str,
        items: list[dict[str, Any]],
        command_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Classify a batch of items as in stock or requiring purchase

        Args:
            items: [{item_id, classification, approved_quantity, stock_note?,
                estimated_purchase_date?}]
        """
        command = self._command(ClassifyItems, requisition_id=requisition_id, items=items)
        return self._execute(
            "classify_items",
            self.item_handlers.handle_classify_items,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("validate_purchase")
    def validate_purchase(
        self,
        requisition_id: str,
        actor_id: str,
        decisions: list[dict[str, Any]],
        command_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Approve or reject purchases, all-or-nothing

        Args:
            decisions: [{item_id, approved, reason?}]
        """
        command = self._command(
            ValidatePurchase, requisition_id=requisition_id, decisions=decisions
        )
        return self._execute(
            "validate_purchase",
            self.item_handlers.handle_validate_purchase,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("confirm_purchase_received")
    def confirm_purchase_received(
        self,
        requisition_id: str,
        actor_id: str,
        item_ids: list[str],
        command_id: str | None = None,
    ) -> dict[str, Any]:
        command = self._command(
            ConfirmPurchaseReceived, requisition_id=requisition_id, item_ids=item_ids
        )
        return self._execute(
            "confirm_purchase_received",
            self.item_handlers.handle_confirm_purchase_received,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("transition_item")
    def transition_item(
        self,
        requisition_id: str,
        item_id: str,
        actor_id: str,
        to_status: str,
        reason: str | None = None,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        command = self._command(
            TransitionItem,
            requisition_id=requisition_id,
            item_id=item_id,
            to_status=to_status,
            reason=reason,
        )
        return self._execute(
            "transition_item",
            self.item_handlers.handle_transition_item,
            command,
            actor_id,
            command_id,
        )

    # Lot operations

    @track_command_duration("create_lot")
    def create_lot(
        self,
        requisition_id: str,
        actor_id: str,
        items: list[dict[str, Any]],
        carrier: str | None = None,
        destination: str | None = None,
        notes: str | None = None,
        estimated_arrival: datetime | None = None,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a shipment

        Args:
            items: [{item_id, quantity}]
        """
        command = self._command(
            CreateLot,
            requisition_id=requisition_id,
            items=items,
            carrier=carrier,
            destination=destination,
            notes=notes,
            estimated_arrival=estimated_arrival,
        )
        return self._execute(
            "create_lot", self.lot_handlers.handle_create_lot, command, actor_id, command_id
        )

    @track_command_duration("update_lot")
    def update_lot(
        self,
        requisition_id: str,
        lot_id: str,
        actor_id: str,
        command_id: str | None = None,
        **details: Any,
    ) -> dict[str, Any]:
        command = self._command(
            UpdateLot, requisition_id=requisition_id, lot_id=lot_id, **details
        )
        return self._execute(
            "update_lot", self.lot_handlers.handle_update_lot, command, actor_id, command_id
        )

    @track_command_duration("prepare_lot")
    def prepare_lot(
        self, requisition_id: str, lot_id: str, actor_id: str, command_id: str | None = None
    ) -> dict[str, Any]:
        command = self._command(PrepareLot, requisition_id=requisition_id, lot_id=lot_id)
        return self._execute(
            "prepare_lot", self.lot_handlers.handle_prepare_lot, command, actor_id, command_id
        )

    @track_command_duration("cancel_lot")
    def cancel_lot(
        self,
        requisition_id: str,
        lot_id: str,
        actor_id: str,
        reason: str | None = None,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        command = self._command(
            CancelLot, requisition_id=requisition_id, lot_id=lot_id, reason=reason
        )
        return self._execute(
            "cancel_lot", self.lot_handlers.handle_cancel_lot, command, actor_id, command_id
        )

    @track_command_duration("dispatch_lot")
    def dispatch_lot(
        self, requisition_id: str, lot_id: str, actor_id: str, command_id: str | None = None
    ) -> dict[str, Any]:
        command = self._command(DispatchLot, requisition_id=requisition_id, lot_id=lot_id)
        return self._execute(
            "dispatch_lot", self.lot_handlers.handle_dispatch_lot, command, actor_id, command_id
        )

    @track_command_duration("mark_lot_in_transit")
    def mark_lot_in_transit(
        self, requisition_id: str, lot_id: str, actor_id: str, command_id: str | None = None
    ) -> dict[str, Any]:
        command = self._command(MarkLotInTransit, requisition_id=requisition_id, lot_id=lot_id)
        return self._execute(
            "mark_lot_in_transit",
            self.lot_handlers.handle_mark_lot_in_transit,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("schedule_pickup")
    def schedule_pickup(
        self,
        requisition_id: str,
        lot_id: str,
        actor_id: str,
        scheduled_for: datetime,
        note: str | None,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        command = self._command(
            SchedulePickup,
            requisition_id=requisition_id,
            lot_id=lot_id,
            scheduled_for=scheduled_for,
            note=note,
        )
        return self._execute(
            "schedule_pickup",
            self.lot_handlers.handle_schedule_pickup,
            command,
            actor_id,
            command_id,
        )

    @track_command_duration("confirm_delivery")
    def confirm_delivery(
        self,
        requisition_id: str,
        lot_id: str,
        actor_id: str,
        received: dict[str, int] | None = None,
        notes: str | None = None,
        command_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Confirm a lot's delivery

        Args:
            received: item_id → quantity received; omitted items count in full
        """
        command = self._command(
            ConfirmDelivery,
            requisition_id=requisition_id,
            lot_id=lot_id,
            received=received,
            notes=notes,
        )
        return self._execute(
            "confirm_delivery",
            self.lot_handlers.handle_confirm_delivery,
            command,
            actor_id,
            command_id,
        )

    # Queries

    def get_requisition(
        self, requisition_id: str, actor_id: str | None = None
    ) -> dict[str, Any]:
        """
        Requisition read model

        Raises:
            RequisitionNotFound: If it doesn't exist or was discarded
            CapabilityDenied: If actor_id is given and may not view it
        """
        requisition = self.requisition_registry.get(requisition_id)
        if requisition is None or requisition["deleted"]:
            raise RequisitionNotFound(requisition_id)
        if actor_id is not None:
            actor = self.directory.get(actor_id)
            if not can_view(
                RequisitionStatus(requisition["status"]),
                actor.role,
                requisition["requester_id"] == actor.user_id,
            ):
                raise CapabilityDenied(
                    capability=Capability.VIEW.value,
                    status=requisition["status"],
                    role=actor.role.value,
                )
        return requisition

    def list_requisitions(
        self, actor_id: str, status: RequisitionStatus | str | None = None
    ) -> list[dict[str, Any]]:
        """Requisitions the actor may see, optionally of one status"""
        actor = self.directory.get(actor_id)
        if status is None:
            candidates = self.requisition_registry.list_all()
        else:
            candidates = self.requisition_registry.list_by_status(RequisitionStatus(status))
        return [
            r
            for r in candidates
            if can_view(
                RequisitionStatus(r["status"]), actor.role, r["requester_id"] == actor.user_id
            )
        ]

    def pending_approvals(self, actor_id: str) -> list[dict[str, Any]]:
        """Requisitions waiting for an action of the actor's role"""
        actor = self.directory.get(actor_id)
        queue = pending_approval_statuses(actor.role)
        return [
            r
            for r in self.list_requisitions(actor_id)
            if RequisitionStatus(r["status"]) in queue
        ]

    def history(self, requisition_id: str) -> list[dict[str, Any]]:
        """Status transitions and comments, oldest first"""
        self.get_requisition(requisition_id)
        return self.history_log.get(requisition_id)

    def item_modifications(
        self, requisition_id: str, item_id: str | None = None
    ) -> list[dict[str, Any]]:
        """Field-level audit trail of a requisition's items"""
        self.get_requisition(requisition_id)
        return self.modification_log.get(requisition_id, item_id)

    def permissions(self, requisition_id: str, actor_id: str) -> CapabilitySet:
        """What the actor may do on the requisition right now"""
        state = self.get_requisition(requisition_id)
        return capabilities_for(Requisition.model_validate(state), self.directory.get(actor_id))

    def status_counts(self) -> dict[str, int]:
        return self.requisition_registry.count_by_status()
