"""
Requisition Module Handlers - Command→Event transformation

Handlers are the decision-making layer. They:
1. Load current state (from the registry)
2. Ask the permission engine whether the actor may act
3. Validate invariants
4. Record events on a change set and return them for one atomic append
"""

from requisition_flow.access.engine import require_capability
from requisition_flow.access.models import Actor, Capability
from requisition_flow.items.models import ItemStatus
from requisition_flow.items.events import PurchaseDecisionSpec, PurchaseValidated
from requisition_flow.items.transitions import check_transition
from requisition_flow.kernel.errors import (
    ConflictStale,
    FieldError,
    TransitionDenied,
    ValidationFailed,
)
from requisition_flow.kernel.events import Event
from requisition_flow.kernel.ids import generate_id
from requisition_flow.kernel.policy import WorkflowPolicy
from requisition_flow.kernel.time import TimeProvider
from requisition_flow.reconciliation.engine import total_allocated
from requisition_flow.requisition.aggregate import RequisitionChangeSet, open_change_set
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
from requisition_flow.requisition.events import (
    ItemAdded,
    ItemCreatedSpec,
    ItemModificationSpec,
    ItemRemoved,
    ItemUpdated,
    RequisitionCommentAdded,
    RequisitionCreated,
    RequisitionDeleted,
)
from requisition_flow.requisition.invariants import (
    require_items,
    text_error,
    validate_has_live_items,
    validate_item_live,
    validate_text,
)
from requisition_flow.requisition.models import Requisition, RequisitionStatus
from requisition_flow.requisition.transitions import (
    SUBMIT_TRANSITION,
    next_status_from_approval,
    rejection_status,
)

_STRUCTURAL_FIELDS = ("description", "unit", "category", "part_number", "brand")


class RequisitionCommandHandlers:
    """
    Command handlers for requisition-level actions and item structure

    Every handler returns the events of one command; the caller appends
    them in a single transaction.
    """

    def __init__(self, time_provider: TimeProvider, policy: WorkflowPolicy) -> None:
        """
        Args:
            time_provider: For timestamps (injectable for testing)
            policy: Workflow parameters
        """
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

    def handle_create_requisition(
        self,
        command: CreateRequisition,
        command_id: str,
        actor: Actor,
        number: str,
    ) -> list[Event]:
        """
        Handle CreateRequisition command

        Args:
            command: CreateRequisition command
            command_id: Idempotency key
            actor: Requester
            number: Issued by the numbering collaborator

        Raises:
            ValidationFailed: If the reason is too short
        """
        reason = validate_text(command.reason, self.policy.min_reason_length, "reason")
        requisition_id = generate_id()
        now = self.time_provider.now()

        changes = RequisitionChangeSet(
            requisition_id, None, command_id=command_id, actor=actor, now=now
        )
        changes.record(
            "RequisitionCreated",
            RequisitionCreated(
                requisition_id=requisition_id,
                number=number,
                requester_id=actor.user_id,
                operating_unit_id=command.operating_unit_id,
                cost_center_id=command.cost_center_id,
                reason=reason,
                comments=command.comments,
                created_at=now,
            ),
        )
        return changes.events

    def handle_delete_requisition(
        self,
        command: DeleteRequisition,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """Discard a draft; its items are soft-deleted with it"""
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.DELETE)

        changes.record(
            "RequisitionDeleted",
            RequisitionDeleted(
                requisition_id=requisition.requisition_id,
                item_ids=[item.item_id for item in requisition.live_items()],
                deleted_at=changes.now,
                deleted_by=actor.user_id,
            ),
        )
        return changes.events

    def handle_add_item(
        self,
        command: AddItem,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """Add an item (owner or admin, BORRADOR only)"""
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        require_capability(changes.requisition, actor, Capability.ADD_ITEMS)

        changes.record(
            "ItemAdded",
            ItemAdded(
                requisition_id=command.requisition_id,
                item=ItemCreatedSpec(
                    item_id=generate_id(),
                    description=command.description,
                    requested_quantity=command.requested_quantity,
                    unit=command.unit,
                    category=command.category,
                    part_number=command.part_number,
                    brand=command.brand,
                ),
                added_at=changes.now,
                added_by=actor.user_id,
            ),
        )
        return changes.events

    def handle_update_item(
        self,
        command: UpdateItem,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Handle UpdateItem command

        Raises:
            CapabilityDenied: If the actor may not edit items now
            ItemNotFound: If the item is not part of the requisition
            ConflictStale: If the item was deleted or is past classification
            ValidationFailed: If a change is not allowed or nothing changes
        """
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.EDIT_ITEMS)
        (item,) = require_items(requisition, [command.item_id])
        validate_item_live(item)

        requested = command.model_dump(include=set(_STRUCTURAL_FIELDS) | {"requested_quantity"})
        requested = {k: v for k, v in requested.items() if v is not None}

        if requisition.status != RequisitionStatus.BORRADOR:
            structural = sorted(set(requested) - {"requested_quantity"})
            if structural:
                raise ValidationFailed(
                    [
                        FieldError(
                            field=field,
                            message="cannot change once the requisition is submitted",
                            item_id=item.item_id,
                        )
                        for field in structural
                    ]
                )
            if item.status != ItemStatus.PENDIENTE_CLASIFICACION:
                raise ConflictStale(
                    "item", item.item_id, f"is already {item.status.value} and cannot be edited"
                )
            new_quantity = requested.get("requested_quantity")
            if new_quantity is not None and new_quantity > item.requested_quantity:
                raise ValidationFailed.single(
                    "requested_quantity",
                    f"can only be lowered after submission (currently {item.requested_quantity})",
                    item_id=item.item_id,
                )

        current = item.model_dump(mode="json")
        diff = {k: v for k, v in requested.items() if current.get(k) != v}
        if not diff:
            raise ValidationFailed.single("changes", "no field would change", item_id=item.item_id)

        changes.record(
            "ItemUpdated",
            ItemUpdated(
                requisition_id=command.requisition_id,
                item_id=item.item_id,
                changes=diff,
                modifications=[
                    ItemModificationSpec(
                        item_id=item.item_id,
                        field=field,
                        old_value=current.get(field),
                        new_value=value,
                        reason=command.reason,
                    )
                    for field, value in diff.items()
                ],
                updated_at=changes.now,
                updated_by=actor.user_id,
            ),
        )
        return changes.events

    def handle_remove_item(
        self,
        command: RemoveItem,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Soft-delete an item

        Raises:
            ConflictStale: If already deleted or allocated to a lot
        """
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.DELETE_ITEMS)
        (item,) = require_items(requisition, [command.item_id])
        validate_item_live(item)
        if total_allocated(item.item_id, requisition.lots.values()) > 0:
            raise ConflictStale("item", item.item_id, "is allocated to a lot and cannot be deleted")

        changes.record(
            "ItemRemoved",
            ItemRemoved(
                requisition_id=command.requisition_id,
                item_id=item.item_id,
                reason=command.reason,
                modifications=[
                    ItemModificationSpec(
                        item_id=item.item_id,
                        field="deleted",
                        old_value=False,
                        new_value=True,
                        reason=command.reason,
                    )
                ],
                removed_at=changes.now,
                removed_by=actor.user_id,
            ),
        )
        changes.reconcile_status("remove_item", command.reason)
        return changes.events

    def handle_submit_requisition(
        self,
        command: SubmitRequisition,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        BORRADOR → VALIDACION_SEGURIDAD

        Raises:
            CapabilityDenied: If the actor is neither owner nor admin, or not a draft
            ValidationFailed: If there are no live items
        """
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.SUBMIT)
        validate_has_live_items(requisition)

        _, target = SUBMIT_TRANSITION
        changes.change_status(target, "submit", "Submitted for validation")
        return changes.events

    def handle_approve_requisition(
        self,
        command: ApproveRequisition,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Approve the current stage

        At EN_COMPRA the approval covers every item still waiting for a
        purchase decision and the new status comes from the items.

        Raises:
            CapabilityDenied: If the actor may not approve in this status
            TransitionDenied: If nothing awaits approval in this status
        """
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.APPROVE)

        target = next_status_from_approval(requisition.status)
        if target is None:
            raise TransitionDenied(
                entity="requisition",
                from_status=requisition.status.value,
                to_status=None,
                role=actor.role.value,
                reason=f"nothing awaits approval in status {requisition.status.value}",
                identifier=requisition.number,
            )

        comment = command.comment or f"Approved by {actor.role.value}"
        if requisition.status == RequisitionStatus.EN_COMPRA:
            self._decide_pending_purchases(changes, requisition, actor, True, comment)
            changes.reconcile_status("approve", comment)
        else:
            changes.change_status(target, "approve", comment)
        return changes.events

    def handle_reject_requisition(
        self,
        command: RejectRequisition,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """
        Reject the current stage - final, no resubmission

        Raises:
            ValidationFailed: If the comment is missing or too short
            CapabilityDenied: If the actor may not reject in this status
            TransitionDenied: If rejection is not possible in this status
        """
        comment = validate_text(
            command.comment, self.policy.min_rejection_comment_length, "comment"
        )
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.REJECT)

        target = rejection_status(requisition.status)
        if target is None:
            raise TransitionDenied(
                entity="requisition",
                from_status=requisition.status.value,
                to_status=None,
                role=actor.role.value,
                reason=f"cannot reject in status {requisition.status.value}",
                identifier=requisition.number,
            )

        if requisition.status == RequisitionStatus.EN_COMPRA:
            self._decide_pending_purchases(changes, requisition, actor, False, comment)
        changes.change_status(target, "reject", comment)
        return changes.events

    def handle_add_comment(
        self,
        command: AddComment,
        command_id: str,
        actor: Actor,
        requisitions: dict,
    ) -> list[Event]:
        """History comment - anyone who can view the requisition"""
        changes = self._open(requisitions, command.requisition_id, command_id, actor)
        requisition = changes.requisition
        require_capability(requisition, actor, Capability.VIEW)
        comment = validate_text(command.comment, 1, "comment")

        changes.record(
            "RequisitionCommentAdded",
            RequisitionCommentAdded(
                requisition_id=requisition.requisition_id,
                status=requisition.status,
                comment=comment,
                added_at=changes.now,
                added_by=actor.user_id,
            ),
        )
        return changes.events

    def _decide_pending_purchases(
        self,
        changes: RequisitionChangeSet,
        requisition: Requisition,
        actor: Actor,
        approved: bool,
        reason: str,
    ) -> None:
        """Approve or reject every live item waiting for a purchase decision"""
        pending = [
            item
            for item in requisition.live_items()
            if item.status == ItemStatus.PENDIENTE_VALIDACION_ADMIN
        ]
        if not pending:
            return

        target = ItemStatus.APROBADO_COMPRA if approved else ItemStatus.RECHAZADO_COMPRA
        if not approved:
            error = text_error(
                reason, self.policy.min_purchase_rejection_reason_length, "reason"
            )
            if error is not None:
                raise ValidationFailed([error])
        for item in pending:
            check_transition(item.status, target, actor.role, item.item_id)

        changes.record(
            "PurchaseValidated",
            PurchaseValidated(
                requisition_id=requisition.requisition_id,
                decisions=[
                    PurchaseDecisionSpec(
                        item_id=item.item_id,
                        approved=approved,
                        reason=reason,
                        final_status=target,
                    )
                    for item in pending
                ],
                modifications=[
                    ItemModificationSpec(
                        item_id=item.item_id,
                        field="status",
                        old_value=item.status.value,
                        new_value=target.value,
                        reason=reason,
                    )
                    for item in pending
                ],
                validated_at=changes.now,
                validated_by=actor.user_id,
            ),
        )
