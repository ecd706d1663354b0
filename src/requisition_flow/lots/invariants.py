"""
Lot Module Invariants

Quantity checks follow the reconciliation rule: for every item, the
quantity in non-void lots never exceeds the required quantity, and the
quantity dispatched never does either.
"""

from collections.abc import Iterable, Mapping

from requisition_flow.items.models import DISPATCHABLE_STATUSES, Item
from requisition_flow.kernel.errors import (
    ConflictStale,
    FieldError,
    LotNotFound,
    TransitionDenied,
)
from requisition_flow.lots.commands import LotItemEntry
from requisition_flow.lots.models import Lot, LotStatus
from requisition_flow.reconciliation.engine import total_allocated, total_dispatched
from requisition_flow.requisition.models import Requisition


def require_lot(requisition: Requisition, lot_id: str) -> Lot:
    """
    Raises:
        LotNotFound: If the lot does not belong to the requisition
    """
    lot = requisition.lots.get(lot_id)
    if lot is None:
        raise LotNotFound(lot_id, requisition.requisition_id)
    return lot


def validate_lot_active(lot: Lot) -> None:
    """
    Raises:
        ConflictStale: If the lot was cancelled or already delivered
    """
    if lot.status == LotStatus.ANULADO:
        raise ConflictStale("lot", lot.lot_id, "was cancelled")
    if lot.status == LotStatus.ENTREGADO:
        raise ConflictStale("lot", lot.lot_id, "was already delivered")


def validate_dispatchable(item: Item, role: str) -> None:
    """
    Raises:
        TransitionDenied: If the item is not ready to be shipped
    """
    if item.status not in DISPATCHABLE_STATUSES:
        raise TransitionDenied(
            entity="item",
            from_status=item.status.value,
            to_status=None,
            role=role,
            reason=f"is {item.status.value} and not ready for dispatch",
            identifier=item.item_id,
        )


def allocation_errors(
    items: Mapping[str, Item], entries: Iterable[LotItemEntry], lots: Iterable[Lot]
) -> list[FieldError]:
    """Quantities already in non-void lots plus the new ones must fit the required quantity"""
    lots = list(lots)
    errors = []
    for entry in entries:
        item = items[entry.item_id]
        allocated = total_allocated(item.item_id, lots)
        if allocated + entry.quantity > item.required_quantity:
            errors.append(
                FieldError(
                    field="quantity",
                    message=(
                        f"{entry.quantity} exceeds the remaining quantity "
                        f"{item.required_quantity - allocated}"
                    ),
                    item_id=item.item_id,
                )
            )
    return errors


def over_dispatch_errors(requisition: Requisition, item_ids: Iterable[str]) -> list[FieldError]:
    """Σ dispatched quantity of each item must not exceed its required quantity"""
    lots = requisition.non_void_lots()
    errors = []
    for item_id in item_ids:
        item = requisition.items[item_id]
        dispatched = total_dispatched(item_id, lots)
        if dispatched > item.required_quantity:
            errors.append(
                FieldError(
                    field="shipped_quantity",
                    message=(
                        f"dispatching {dispatched} exceeds the required "
                        f"quantity {item.required_quantity}"
                    ),
                    item_id=item_id,
                )
            )
    return errors


def received_errors(lot: Lot, received: Mapping[str, int]) -> list[FieldError]:
    """0 <= received <= shipped for every item listed"""
    errors = []
    for item_id, quantity in received.items():
        shipped = lot.quantity_for(item_id)
        if quantity < 0 or quantity > shipped:
            errors.append(
                FieldError(
                    field="received_quantity",
                    message=f"{quantity} must be between 0 and the shipped quantity {shipped}",
                    item_id=item_id,
                )
            )
    return errors
