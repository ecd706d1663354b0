"""
Item Module Handlers - classification, purchase validation and manual moves

Batch handlers check every item before recording anything, so a batch
either fully applies or fails with no events at all. After the item
events are recorded the requisition status is recomputed from the
change set's post-mutation copy.
"""

from requisition_flow.access.engine import require_capability
from requisition_flow.access.models import Actor, Capability
from requisition_flow.items.commands import (
    ClassifyItems,
    ConfirmPurchaseReceived,
    TransitionItem,
    ValidatePurchase,
)
from requisition_flow.items.events import (
    ClassificationSpec,
    ItemsClassified,
    ItemStatusChanged,
    PurchaseDecisionSpec,
    PurchaseReceiptConfirmed,
    PurchaseValidated,
    ReceiptSpec,
)
from requisition_flow.items.invariants import (
    approved_quantity_errors,
    duplicate_errors,
    rejection_reason_errors,
    validate_not_rejected,
    validate_purchase_undecided,
)
from requisition_flow.items.models import Classification, Item, ItemStatus
from requisition_flow.items.transitions import check_transition
from requisition_flow.kernel.errors import ConflictStale, TransitionDenied, ValidationFailed
from requisition_flow.kernel.events import Event
from requisition_flow.kernel.policy import WorkflowPolicy
from requisition_flow.kernel.time import TimeProvider
from requisition_flow.requisition.aggregate import RequisitionChangeSet, open_change_set
from requisition_flow.requisition.events import ItemModificationSpec
from requisition_flow.requisition.invariants import require_items, validate_item_live

# Next step of each classification when the policy auto-advances
_AUTO_ADVANCE = {
    ItemStatus.EN_STOCK: ItemStatus.LISTO_PARA_DESPACHO,
    ItemStatus.REQUIERE_COMPRA: ItemStatus.PENDIENTE_VALIDACION_ADMIN,
}

# Targets reachable through transition_item; the rest have dedicated operations
MANUAL_TARGETS = frozenset(
    {
        ItemStatus.LISTO_PARA_DESPACHO,
        ItemStatus.PENDIENTE_VALIDACION_ADMIN,
        ItemStatus.PENDIENTE_CLASIFICACION,
    }
)

_FINAL_ITEM_STATUSES = frozenset({ItemStatus.RECHAZADO_COMPRA, ItemStatus.DESPACHADO})


def _status_change(item: Item, new_status: ItemStatus, reason: str | None) -> ItemModificationSpec:
    return ItemModificationSpec(
        item_id=item.item_id,
        field="status",
        old_value=item.status.value,
        new_value=ItemStatus(new_status).value,
        reason=reason,
    )


class ItemCommandHandlers:
    """Command handlers for the item state machine"""

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

    def _advance(self, status: ItemStatus, actor: Actor, item_id: str) -> ItemStatus:
        """Follow the auto-advance step if enabled, checking it against the table"""
        if not self.policy.auto_advance_classified_items:
            return status
        target = _AUTO_ADVANCE.get(status)
        if target is None:
            return status
        check_transition(status, target, actor.role, item_id)
        return target

    def handle_classify_items(
        self,
        command: ClassifyItems,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Handle ClassifyItems command (batch)

        Every item is checked before anything is recorded.

        Raises:
            CapabilityDenied: If the actor may not classify in this status
            ItemNotFound: Listing every id foreign to the requisition
            ConflictStale: If an item was deleted or its purchase was rejected
            TransitionDenied: If an item is not waiting for classification
            ValidationFailed: Duplicates or approved quantities out of bounds
        """
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.MARK_STOCK)

        item_ids = [entry.item_id for entry in command.items]
        items = require_items(requisition, item_ids)
        for item in items:
            validate_item_live(item)
            validate_not_rejected(item)

        final_statuses = []
        for item, entry in zip(items, command.items):
            classified = ItemStatus(entry.classification.value)
            check_transition(item.status, classified, actor.role, item.item_id)
            final_statuses.append(self._advance(classified, actor, item.item_id))

        errors = duplicate_errors(item_ids) + approved_quantity_errors(items, command.items)
        if errors:
            raise ValidationFailed(errors)

        modifications = []
        for item, entry, final in zip(items, command.items, final_statuses):
            modifications.append(_status_change(item, final, entry.stock_note))
            if item.approved_quantity != entry.approved_quantity:
                modifications.append(
                    ItemModificationSpec(
                        item_id=item.item_id,
                        field="approved_quantity",
                        old_value=item.approved_quantity,
                        new_value=entry.approved_quantity,
                    )
                )

        changes.record(
            "ItemsClassified",
            ItemsClassified(
                requisition_id=command.requisition_id,
                items=[
                    ClassificationSpec(
                        item_id=entry.item_id,
                        classification=entry.classification,
                        approved_quantity=entry.approved_quantity,
                        final_status=final,
                        stock_note=entry.stock_note,
                        estimated_purchase_date=entry.estimated_purchase_date,
                    )
                    for entry, final in zip(command.items, final_statuses)
                ],
                modifications=modifications,
                classified_at=changes.now,
                classified_by=actor.user_id,
            ),
        )

        in_stock = sum(1 for e in command.items if e.classification == Classification.EN_STOCK)
        to_buy = len(command.items) - in_stock
        changes.reconcile_status(
            "classify",
            f"Classified {len(command.items)} item(s): "
            f"{in_stock} in stock, {to_buy} require purchase",
        )
        return changes.events

    def handle_validate_purchase(
        self,
        command: ValidatePurchase,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Handle ValidatePurchase command (batch, independent per item)

        Raises:
            ValidationFailed: A rejection without a long enough reason fails the batch
            CapabilityDenied: If the actor may not validate purchases
            ItemNotFound: Listing every id foreign to the requisition
            ConflictStale: If an item was deleted or already decided
            TransitionDenied: If an item is not waiting for a purchase decision
        """
        errors = rejection_reason_errors(
            command.decisions, self.policy.min_purchase_rejection_reason_length
        )
        if errors:
            raise ValidationFailed(errors)

        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.VALIDATE_PURCHASE)

        item_ids = [decision.item_id for decision in command.decisions]
        duplicates = duplicate_errors(item_ids)
        if duplicates:
            raise ValidationFailed(duplicates)
        items = require_items(requisition, item_ids)

        targets = []
        for item, decision in zip(items, command.decisions):
            validate_item_live(item)
            validate_purchase_undecided(item)
            target = ItemStatus.APROBADO_COMPRA if decision.approved else ItemStatus.RECHAZADO_COMPRA
            check_transition(item.status, target, actor.role, item.item_id)
            targets.append(target)

        changes.record(
            "PurchaseValidated",
            PurchaseValidated(
                requisition_id=command.requisition_id,
                decisions=[
                    PurchaseDecisionSpec(
                        item_id=decision.item_id,
                        approved=decision.approved,
                        reason=decision.reason.strip() if decision.reason else None,
                        final_status=target,
                    )
                    for decision, target in zip(command.decisions, targets)
                ],
                modifications=[
                    _status_change(item, target, decision.reason)
                    for item, decision, target in zip(items, command.decisions, targets)
                ],
                validated_at=changes.now,
                validated_by=actor.user_id,
            ),
        )

        approved = sum(1 for decision in command.decisions if decision.approved)
        changes.reconcile_status(
            "validate_purchase",
            f"Purchase validated: {approved} approved, "
            f"{len(command.decisions) - approved} rejected",
        )
        return changes.events

    def handle_confirm_purchase_received(
        self,
        command: ConfirmPurchaseReceived,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        APROBADO_COMPRA → EN_STOCK (→ LISTO_PARA_DESPACHO when auto-advancing)

        Raises:
            ConflictStale: If an item was deleted or already received
            TransitionDenied: If an item's purchase is not approved
        """
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.CONFIRM_PURCHASE_RECEIVED)

        duplicates = duplicate_errors(command.item_ids)
        if duplicates:
            raise ValidationFailed(duplicates)
        items = require_items(requisition, command.item_ids)

        targets = []
        for item in items:
            validate_item_live(item)
            if item.warehouse_received:
                raise ConflictStale("item", item.item_id, "was already received at the warehouse")
            check_transition(item.status, ItemStatus.EN_STOCK, actor.role, item.item_id)
            targets.append(self._advance(ItemStatus.EN_STOCK, actor, item.item_id))

        modifications = []
        for item, target in zip(items, targets):
            modifications.append(_status_change(item, target, "Purchase received"))
            modifications.append(
                ItemModificationSpec(
                    item_id=item.item_id,
                    field="warehouse_received",
                    old_value=False,
                    new_value=True,
                )
            )

        changes.record(
            "PurchaseReceiptConfirmed",
            PurchaseReceiptConfirmed(
                requisition_id=command.requisition_id,
                items=[
                    ReceiptSpec(item_id=item.item_id, final_status=target)
                    for item, target in zip(items, targets)
                ],
                modifications=modifications,
                confirmed_at=changes.now,
                confirmed_by=actor.user_id,
            ),
        )
        changes.reconcile_status(
            "confirm_purchase_received", f"Received {len(items)} purchased item(s)"
        )
        return changes.events

    def handle_transition_item(
        self,
        command: TransitionItem,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Move one item manually through the transition table

        Reverting to PENDIENTE_CLASIFICACION clears the classification.
        The requisition status is recomputed and may move backwards.

        Raises:
            ConflictStale: If the item was deleted or is in a final status
            TransitionDenied: If the target needs a dedicated operation or the table refuses
        """
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.MARK_STOCK)
        (item,) = require_items(requisition, [command.item_id])
        validate_item_live(item)

        if item.status in _FINAL_ITEM_STATUSES:
            raise ConflictStale(
                "item", item.item_id, f"is {item.status.value} and cannot change status any more"
            )
        if command.to_status not in MANUAL_TARGETS:
            raise TransitionDenied(
                entity="item",
                from_status=item.status.value,
                to_status=command.to_status.value,
                role=actor.role.value,
                reason=f"{command.to_status.value} is only reached through its own operation",
                identifier=item.item_id,
            )
        row = check_transition(item.status, command.to_status, actor.role, item.item_id)

        modifications = [_status_change(item, command.to_status, command.reason)]
        if command.to_status == ItemStatus.PENDIENTE_CLASIFICACION and item.approved_quantity:
            modifications.append(
                ItemModificationSpec(
                    item_id=item.item_id,
                    field="approved_quantity",
                    old_value=item.approved_quantity,
                    new_value=None,
                    reason=command.reason,
                )
            )

        changes.record(
            "ItemStatusChanged",
            ItemStatusChanged(
                requisition_id=command.requisition_id,
                item_id=item.item_id,
                previous_status=item.status,
                new_status=command.to_status,
                action=row.action,
                reason=command.reason,
                modifications=modifications,
                changed_at=changes.now,
                changed_by=actor.user_id,
            ),
        )
        changes.reconcile_status(row.action, command.reason)
        return changes.events
