"""
Item Module Invariants - batch checks for classification and purchase validation

Each function returns every FieldError it finds so a whole batch is
reported at once; handlers raise ValidationFailed when the list is not
empty.
"""

from collections import Counter

from requisition_flow.items.commands import ClassificationEntry, PurchaseDecisionEntry
from requisition_flow.items.models import Item, ItemStatus
from requisition_flow.kernel.errors import ConflictStale, FieldError
from requisition_flow.requisition.invariants import text_error


def duplicate_errors(item_ids: list[str], field: str = "item_id") -> list[FieldError]:
    return [
        FieldError(field=field, message="listed more than once", item_id=item_id)
        for item_id, count in Counter(item_ids).items()
        if count > 1
    ]


def approved_quantity_errors(
    items: list[Item], entries: list[ClassificationEntry]
) -> list[FieldError]:
    """0 < approved_quantity <= requested_quantity, per item"""
    errors = []
    for item, entry in zip(items, entries):
        if entry.approved_quantity > item.requested_quantity:
            errors.append(
                FieldError(
                    field="approved_quantity",
                    message=(
                        f"{entry.approved_quantity} exceeds the requested "
                        f"quantity {item.requested_quantity}"
                    ),
                    item_id=item.item_id,
                )
            )
    return errors


def rejection_reason_errors(
    decisions: list[PurchaseDecisionEntry], minimum: int
) -> list[FieldError]:
    """Every rejection needs a reason of at least `minimum` characters"""
    errors = []
    for decision in decisions:
        if decision.approved:
            continue
        error = text_error(decision.reason, minimum, "reason", item_id=decision.item_id)
        if error is not None:
            errors.append(error)
    return errors


def validate_not_rejected(item: Item) -> None:
    """
    Raises:
        ConflictStale: If procurement already rejected the item's purchase
    """
    if item.status == ItemStatus.RECHAZADO_COMPRA:
        raise ConflictStale(
            "item",
            item.item_id,
            "was rejected by procurement and cannot be reclassified",
        )


def validate_purchase_undecided(item: Item) -> None:
    """
    Raises:
        ConflictStale: If a purchase decision was already taken for the item
    """
    if item.purchase is not None or item.status in (
        ItemStatus.APROBADO_COMPRA,
        ItemStatus.RECHAZADO_COMPRA,
    ):
        raise ConflictStale("item", item.item_id, "already has a purchase decision")
