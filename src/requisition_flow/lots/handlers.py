"""
Lot Module Handlers - shipments and their lifecycle

Dispatch and delivery are the two lot events that move items and the
requisition: dispatch derives each shipped item's status from the
dispatched totals, delivery lets confirmed receipts decide between
ENVIADO, ENTREGADO_PARCIAL and ENTREGADO.
"""

from requisition_flow.access.engine import require_capability
from requisition_flow.access.models import Actor, Capability
from requisition_flow.items.events import ItemStatusChanged
from requisition_flow.items.invariants import duplicate_errors
from requisition_flow.items.transitions import check_transition
from requisition_flow.kernel.errors import ConflictStale, ItemNotFound, ValidationFailed
from requisition_flow.kernel.events import Event
from requisition_flow.kernel.ids import generate_id
from requisition_flow.kernel.logging import get_logger
from requisition_flow.kernel.policy import WorkflowPolicy
from requisition_flow.kernel.time import TimeProvider
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
from requisition_flow.lots.events import (
    LotCreated,
    LotDelivered,
    LotItemSpec,
    LotPickupScheduled,
    LotStatusChanged,
    LotUpdated,
    ReceivedSpec,
)
from requisition_flow.lots.invariants import (
    allocation_errors,
    over_dispatch_errors,
    received_errors,
    require_lot,
    validate_dispatchable,
    validate_lot_active,
)
from requisition_flow.lots.models import OPEN_LOT_STATUSES, Lot, LotStatus
from requisition_flow.lots.transitions import check_lot_transition
from requisition_flow.reconciliation.engine import derive_item_status, total_dispatched
from requisition_flow.requisition.aggregate import RequisitionChangeSet, open_change_set
from requisition_flow.requisition.events import ItemModificationSpec
from requisition_flow.requisition.invariants import (
    require_items,
    validate_item_live,
    validate_text,
)

logger = get_logger(__name__)

_DETAIL_FIELDS = ("carrier", "destination", "notes", "estimated_arrival")


class LotCommandHandlers:
    """Command handlers for the lot lifecycle"""

    def __init__(self, time_provider: TimeProvider, policy: WorkflowPolicy) -> None:
        self.time_provider = time_provider
        self.policy = policy

    def _open(
        self, requisitions: dict, requisition_id: str, command_id: str, actor: Actor
    ) -> RequisitionChangeSet:
        return open_change_set(
            requisitions,
            requisition_id,
            command_id=command_id,
            actor=actor,
            now=self.time_provider.now(),
        )

    def _move(
        self,
        changes: RequisitionChangeSet,
        lot: Lot,
        to_status: LotStatus,
        note: str | None = None,
    ) -> str:
        """Check the lot table and record a LotStatusChanged"""
        validate_lot_active(lot)
        action = check_lot_transition(lot.status, to_status, changes.actor.role, lot.lot_id)
        changes.record(
            "LotStatusChanged",
            LotStatusChanged(
                requisition_id=lot.requisition_id,
                lot_id=lot.lot_id,
                previous_status=lot.status,
                new_status=to_status,
                action=action,
                note=note,
                changed_at=changes.now,
                changed_by=changes.actor.user_id,
            ),
        )
        return action

    def handle_create_lot(
        self,
        command: CreateLot,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Handle CreateLot command

        Raises:
            CapabilityDenied: If the actor may not create lots
            ItemNotFound: Listing every id foreign to the requisition
            ConflictStale: If an item was deleted
            TransitionDenied: If an item is not ready for dispatch
            ValidationFailed: Duplicates, or quantities beyond what is left to ship
        """
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.CREATE_LOT)

        item_ids = [entry.item_id for entry in command.items]
        items = require_items(requisition, item_ids)
        for item in items:
            validate_item_live(item)
            validate_dispatchable(item, actor.role.value)

        errors = duplicate_errors(item_ids) + allocation_errors(
            requisition.items, command.items, requisition.non_void_lots()
        )
        if errors:
            raise ValidationFailed(errors)

        changes.record(
            "LotCreated",
            LotCreated(
                requisition_id=command.requisition_id,
                lot_id=generate_id(),
                number=len(requisition.lots) + 1,
                items=[
                    LotItemSpec(
                        lot_item_id=generate_id(),
                        item_id=entry.item_id,
                        shipped_quantity=entry.quantity,
                    )
                    for entry in command.items
                ],
                carrier=command.carrier,
                destination=command.destination,
                notes=command.notes,
                estimated_arrival=command.estimated_arrival,
                created_at=changes.now,
                created_by=actor.user_id,
            ),
        )
        return changes.events

    def handle_update_lot(
        self,
        command: UpdateLot,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """Change shipping details while the lot is PENDIENTE or PREPARANDO"""
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.CREATE_LOT)
        lot = require_lot(requisition, command.lot_id)
        if lot.status not in OPEN_LOT_STATUSES:
            raise ConflictStale("lot", lot.lot_id, f"is {lot.status.value} and can no longer change")

        requested = command.model_dump(mode="json", include=set(_DETAIL_FIELDS))
        current = lot.model_dump(mode="json", include=set(_DETAIL_FIELDS))
        diff = {
            field: value
            for field, value in requested.items()
            if value is not None and current.get(field) != value
        }
        if not diff:
            raise ValidationFailed.single("changes", "no field would change")

        changes.record(
            "LotUpdated",
            LotUpdated(
                requisition_id=command.requisition_id,
                lot_id=lot.lot_id,
                changes=diff,
                updated_at=changes.now,
                updated_by=actor.user_id,
            ),
        )
        return changes.events

    def handle_prepare_lot(
        self,
        command: PrepareLot,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.DISPATCH)
        lot = require_lot(requisition, command.lot_id)
        self._move(changes, lot, LotStatus.PREPARANDO)
        return changes.events

    def handle_cancel_lot(
        self,
        command: CancelLot,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """Void a lot that never left; its quantities become available again"""
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.CREATE_LOT)
        lot = require_lot(requisition, command.lot_id)
        self._move(changes, lot, LotStatus.ANULADO, command.reason)
        return changes.events

    def handle_dispatch_lot(
        self,
        command: DispatchLot,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Handle DispatchLot command

        Records the lot move first, then derives every shipped item's
        status from the dispatched totals of the post-dispatch state.

        Raises:
            TransitionDenied: If the lot or one of its items cannot be dispatched
            ValidationFailed: If an item would be dispatched beyond its required quantity
        """
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.DISPATCH)
        lot = require_lot(requisition, command.lot_id)

        item_ids = list(dict.fromkeys(line.item_id for line in lot.items))
        for item_id in item_ids:
            item = requisition.items[item_id]
            validate_item_live(item)
            validate_dispatchable(item, actor.role.value)

        self._move(changes, lot, LotStatus.DESPACHADO)

        dispatched_state = changes.requisition
        errors = over_dispatch_errors(dispatched_state, item_ids)
        if errors:
            raise ValidationFailed(errors)

        lots = dispatched_state.non_void_lots()
        for item_id in item_ids:
            item = dispatched_state.items[item_id]
            dispatched = total_dispatched(item_id, lots)
            new_status = derive_item_status(item.status, dispatched, item.required_quantity)
            if new_status == item.status:
                continue
            row = check_transition(item.status, new_status, actor.role, item_id)
            changes.record(
                "ItemStatusChanged",
                ItemStatusChanged(
                    requisition_id=command.requisition_id,
                    item_id=item_id,
                    previous_status=item.status,
                    new_status=new_status,
                    action=row.action,
                    reason=f"Lot {lot.number}: {dispatched}/{item.required_quantity} dispatched",
                    modifications=[
                        ItemModificationSpec(
                            item_id=item_id,
                            field="status",
                            old_value=item.status.value,
                            new_value=new_status.value,
                            reason=f"Lot {lot.number} dispatched",
                        )
                    ],
                    changed_at=changes.now,
                    changed_by=actor.user_id,
                ),
            )

        logger.info(
            "Lot dispatched",
            requisition_id=command.requisition_id,
            lot_id=lot.lot_id,
            lot_number=lot.number,
            item_count=len(item_ids),
        )
        changes.reconcile_status("dispatch_lot", f"Lot {lot.number} dispatched")
        return changes.events

    def handle_mark_lot_in_transit(
        self,
        command: MarkLotInTransit,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.DISPATCH)
        lot = require_lot(requisition, command.lot_id)
        self._move(changes, lot, LotStatus.EN_TRANSITO)
        return changes.events

    def handle_schedule_pickup(
        self,
        command: SchedulePickup,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Receiver agrees a pickup date - lot becomes PENDIENTE_RECEPCION

        Raises:
            ValidationFailed: If the note is missing or too short
        """
        note = validate_text(command.note, self.policy.min_pickup_note_length, "note")
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.CONFIRM_DELIVERY)
        lot = require_lot(requisition, command.lot_id)
        validate_lot_active(lot)
        check_lot_transition(lot.status, LotStatus.PENDIENTE_RECEPCION, actor.role, lot.lot_id)

        changes.record(
            "LotPickupScheduled",
            LotPickupScheduled(
                requisition_id=command.requisition_id,
                lot_id=lot.lot_id,
                previous_status=lot.status,
                scheduled_for=command.scheduled_for,
                note=note,
                scheduled_at=changes.now,
                scheduled_by=actor.user_id,
            ),
        )
        return changes.events

    def handle_confirm_delivery(
        self,
        command: ConfirmDelivery,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Receiver confirms a lot with the quantities actually received

        Items not listed in `received` count as received in full.

        Raises:
            ItemNotFound: If a received item is not part of the lot
            ValidationFailed: If a received quantity is outside 0..shipped
        """
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.CONFIRM_DELIVERY)
        lot = require_lot(requisition, command.lot_id)
        validate_lot_active(lot)
        check_lot_transition(lot.status, LotStatus.ENTREGADO, actor.role, lot.lot_id)

        received = command.received or {}
        in_lot = {line.item_id for line in lot.items}
        unknown = [item_id for item_id in received if item_id not in in_lot]
        if unknown:
            raise ItemNotFound(unknown, requisition.requisition_id)
        errors = received_errors(lot, received)
        if errors:
            raise ValidationFailed(errors)

        changes.record(
            "LotDelivered",
            LotDelivered(
                requisition_id=command.requisition_id,
                lot_id=lot.lot_id,
                previous_status=lot.status,
                received=[
                    ReceivedSpec(
                        lot_item_id=line.lot_item_id,
                        item_id=line.item_id,
                        received_quantity=received.get(line.item_id, line.shipped_quantity),
                    )
                    for line in lot.items
                ],
                notes=command.notes,
                delivered_at=changes.now,
                received_by=actor.user_id,
            ),
        )
        changes.reconcile_status("confirm_delivery", f"Lot {lot.number} delivered")
        return changes.events
