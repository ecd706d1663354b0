"""
Test Helper Functions - Builders

Builders for pure-model tests (items, lots, requisitions) and drivers
that walk a requisition through the facade to a given stage.

Fun fact: The Builder pattern was formalized by the Gang of Four in 1994,
but test data builders were popularized by the growing programmer test
movement in the 2000s - we use them to keep tests readable and maintainable!
"""

from datetime import datetime, timezone
from typing import Any

from requisition_flow.flow import RequisitionFlow
from requisition_flow.items.models import Item, ItemStatus
from requisition_flow.kernel.events import Event
from requisition_flow.lots.models import Lot, LotItem, LotStatus
from requisition_flow.requisition.models import Requisition, RequisitionStatus
from requisition_flow.requisition.projections import RequisitionRegistry

NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Model builders
# =============================================================================


def make_item(
    item_id: str = "i1",
    status: ItemStatus = ItemStatus.PENDIENTE_CLASIFICACION,
    requested: int = 10,
    approved: int | None = None,
    deleted: bool = False,
) -> Item:
    return Item(
        item_id=item_id,
        requisition_id="r1",
        description=f"Item {item_id}",
        requested_quantity=requested,
        approved_quantity=approved,
        status=status,
        deleted=deleted,
        created_at=NOW,
    )


def make_lot(
    lot_id: str,
    shipped: dict[str, int],
    status: LotStatus = LotStatus.DESPACHADO,
    received: dict[str, int] | None = None,
    number: int = 1,
) -> Lot:
    """
    Builder for lots

    Args:
        shipped: item_id → shipped quantity
        received: item_id → received quantity (None = not recorded)
    """
    received = received or {}
    return Lot(
        lot_id=lot_id,
        requisition_id="r1",
        number=number,
        status=status,
        items=[
            LotItem(
                lot_item_id=f"{lot_id}-{item_id}",
                item_id=item_id,
                shipped_quantity=quantity,
                received_quantity=received.get(item_id),
            )
            for item_id, quantity in shipped.items()
        ],
        created_at=NOW,
    )


def make_requisition(
    status: RequisitionStatus = RequisitionStatus.REVISION_LOGISTICA,
    items: list[Item] | None = None,
    lots: list[Lot] | None = None,
    requester_id: str = "tecnico",
) -> Requisition:
    return Requisition(
        requisition_id="r1",
        number="REQ-2025-0001",
        requester_id=requester_id,
        operating_unit_id="OU-01",
        cost_center_id="CC-100",
        reason="Monthly maintenance supplies",
        status=status,
        created_at=NOW,
        items={item.item_id: item for item in items or []},
        lots={lot.lot_id: lot for lot in lots or []},
    )


def apply_events(registry: RequisitionRegistry, events: list[Event]) -> None:
    for event in events:
        registry.apply_event(event)


# =============================================================================
# Facade drivers
# =============================================================================


def create_draft(
    flow: RequisitionFlow, quantities: tuple[int, ...] = (5,), actor_id: str = "tecnico"
) -> tuple[str, list[str]]:
    """Draft requisition with one item per quantity; returns (requisition_id, item_ids)"""
    requisition = flow.create_requisition(
        actor_id, "OU-01", "CC-100", "Monthly maintenance supplies"
    )
    requisition_id = requisition["requisition_id"]
    for n, quantity in enumerate(quantities, start=1):
        requisition = flow.add_item(requisition_id, actor_id, f"Item {n}", quantity)
    return requisition_id, list(requisition["items"])


def drive_to_logistics(
    flow: RequisitionFlow, quantities: tuple[int, ...] = (5,)
) -> tuple[str, list[str]]:
    """Submitted and approved by safety and management: REVISION_LOGISTICA"""
    requisition_id, item_ids = create_draft(flow, quantities)
    flow.submit(requisition_id, "tecnico")
    flow.approve(requisition_id, "seguridad")
    flow.approve(requisition_id, "gerencia")
    return requisition_id, item_ids


def classify(
    flow: RequisitionFlow,
    requisition_id: str,
    item_ids: list[str],
    classification: str = "EN_STOCK",
) -> dict[str, Any]:
    """Classify items with approved quantity = requested quantity"""
    requisition = flow.get_requisition(requisition_id)
    return flow.classify_items(
        requisition_id,
        "logistica",
        [
            {
                "item_id": item_id,
                "classification": classification,
                "approved_quantity": requisition["items"][item_id]["requested_quantity"],
            }
            for item_id in item_ids
        ],
    )


def drive_to_dispatch(
    flow: RequisitionFlow, quantities: tuple[int, ...] = (5,)
) -> tuple[str, list[str]]:
    """Every item in stock and ready: LISTO_DESPACHO"""
    requisition_id, item_ids = drive_to_logistics(flow, quantities)
    classify(flow, requisition_id, item_ids)
    return requisition_id, item_ids


def new_lot(
    flow: RequisitionFlow, requisition_id: str, quantities: dict[str, int]
) -> str:
    """Create a lot for item_id → quantity and return its id"""
    before = set(flow.get_requisition(requisition_id)["lots"])
    requisition = flow.create_lot(
        requisition_id,
        "logistica",
        [{"item_id": item_id, "quantity": q} for item_id, q in quantities.items()],
    )
    (lot_id,) = set(requisition["lots"]) - before
    return lot_id


def ship(flow: RequisitionFlow, requisition_id: str, quantities: dict[str, int]) -> str:
    """Create and dispatch a lot; returns its id"""
    lot_id = new_lot(flow, requisition_id, quantities)
    flow.dispatch_lot(requisition_id, lot_id, "logistica")
    return lot_id
