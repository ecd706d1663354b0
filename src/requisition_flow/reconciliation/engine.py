"""
Quantity Reconciliation Engine

Pure functions that turn lot quantities into item and requisition
statuses. Nothing here reads or writes state; callers pass in items and
lots exactly as they are after the mutations of the current request.
"""

from collections import Counter
from collections.abc import Iterable

from requisition_flow.items.models import Item, ItemStatus
from requisition_flow.lots.models import Lot
from requisition_flow.requisition.models import RequisitionStatus

_I = ItemStatus
_R = RequisitionStatus


def total_allocated(item_id: str, lots: Iterable[Lot]) -> int:
    """Shipped quantity of an item across every non-void lot, dispatched or not"""
    return sum(lot.quantity_for(item_id) for lot in lots if not lot.is_void)


def total_dispatched(item_id: str, lots: Iterable[Lot]) -> int:
    """Σ shipped quantity over dispatched, in-transit, pending-receipt and delivered lots"""
    return sum(lot.quantity_for(item_id) for lot in lots if lot.is_dispatched)


def total_received(item_id: str, lots: Iterable[Lot]) -> int:
    """Σ received quantity (defaulting to shipped) over delivered lots"""
    return sum(lot.received_for(item_id) for lot in lots if lot.is_delivered)


def derive_item_status(
    current: ItemStatus, dispatched: int, required: int
) -> ItemStatus:
    """
    Item status implied by its dispatched quantity

    DESPACHADO once the required quantity has left, DESPACHO_PARCIAL
    while only part of it has, otherwise the current status unchanged.
    """
    if dispatched >= required:
        return _I.DESPACHADO
    if dispatched > 0:
        return _I.DESPACHO_PARCIAL
    return ItemStatus(current)


def calculate_requisition_status(
    statuses: Iterable[ItemStatus],
) -> RequisitionStatus | None:
    """
    Requisition status from the multiset of live item statuses

    Fixed priority, highest first:
    1. all DESPACHADO → ENTREGADO
    2. any DESPACHADO / DESPACHO_PARCIAL → ENVIADO
    3. any PENDIENTE_VALIDACION_ADMIN → EN_COMPRA
    4. any APROBADO_COMPRA / LISTO_PARA_DESPACHO → LISTO_DESPACHO
    5. any EN_STOCK / REQUIERE_COMPRA / PENDIENTE_CLASIFICACION → REVISION_LOGISTICA
    6. all RECHAZADO_COMPRA → RECHAZADO_ADM

    Order of the input never matters. Returns None for an empty set.
    """
    counts = Counter(ItemStatus(status) for status in statuses)
    if not counts:
        return None

    total = sum(counts.values())

    if counts[_I.DESPACHADO] == total:
        return _R.ENTREGADO
    if counts[_I.DESPACHADO] or counts[_I.DESPACHO_PARCIAL]:
        return _R.ENVIADO
    if counts[_I.PENDIENTE_VALIDACION_ADMIN]:
        return _R.EN_COMPRA
    if counts[_I.APROBADO_COMPRA] or counts[_I.LISTO_PARA_DESPACHO]:
        return _R.LISTO_DESPACHO
    if counts[_I.EN_STOCK] or counts[_I.REQUIERE_COMPRA] or counts[_I.PENDIENTE_CLASIFICACION]:
        return _R.REVISION_LOGISTICA
    if counts[_I.RECHAZADO_COMPRA] == total:
        return _R.RECHAZADO_ADM
    return _R.REVISION_LOGISTICA


def delivery_status(items: Iterable[Item], lots: Iterable[Lot]) -> RequisitionStatus | None:
    """
    ENTREGADO / ENTREGADO_PARCIAL from confirmed receipts

    Compares, per live item whose purchase was not rejected, the received
    total against its required quantity. Returns None while nothing has
    been received yet.
    """
    lots = list(lots)
    receivable = [
        item
        for item in items
        if not item.deleted and item.status != _I.RECHAZADO_COMPRA
    ]
    if not receivable:
        return None

    received = {item.item_id: total_received(item.item_id, lots) for item in receivable}
    if all(received[item.item_id] >= item.required_quantity for item in receivable):
        return _R.ENTREGADO
    if any(received.values()):
        return _R.ENTREGADO_PARCIAL
    return None


def group_items_by_status(items: Iterable[Item]) -> dict[ItemStatus, list[Item]]:
    """Live items grouped by status (for dashboards and summaries)"""
    groups: dict[ItemStatus, list[Item]] = {}
    for item in items:
        if item.deleted:
            continue
        groups.setdefault(item.status, []).append(item)
    return groups
