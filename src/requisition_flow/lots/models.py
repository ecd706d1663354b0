"""
Lot Domain Models - physical shipments of item quantities

A lot groups part of one or more items' quantities for dispatch. Its
shipped quantities are fixed at creation; received quantities are only
set when the receiver confirms delivery.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class LotStatus(str, Enum):
    """
    Lot lifecycle states

    PENDIENTE → PREPARANDO → DESPACHADO → EN_TRANSITO → PENDIENTE_RECEPCION → ENTREGADO
    ANULADO voids a lot that never left the warehouse.
    """

    PENDIENTE = "PENDIENTE"
    PREPARANDO = "PREPARANDO"
    DESPACHADO = "DESPACHADO"
    EN_TRANSITO = "EN_TRANSITO"
    PENDIENTE_RECEPCION = "PENDIENTE_RECEPCION"
    ENTREGADO = "ENTREGADO"
    ANULADO = "ANULADO"


# Lots that physically left the warehouse
DISPATCHED_LOT_STATUSES = frozenset(
    {
        LotStatus.DESPACHADO,
        LotStatus.EN_TRANSITO,
        LotStatus.PENDIENTE_RECEPCION,
        LotStatus.ENTREGADO,
    }
)

# Lots whose contents and details may still change
OPEN_LOT_STATUSES = frozenset({LotStatus.PENDIENTE, LotStatus.PREPARANDO})


class LotItem(BaseModel):
    """One item's quantity inside a lot"""

    lot_item_id: str
    item_id: str
    shipped_quantity: int = Field(..., gt=0)
    received_quantity: int | None = Field(default=None, ge=0)

    @property
    def effective_received(self) -> int:
        """Received quantity, defaulting to the shipped one"""
        if self.received_quantity is None:
            return self.shipped_quantity
        return self.received_quantity


class Lot(BaseModel):
    """A shipment belonging to exactly one requisition"""

    lot_id: str
    requisition_id: str
    number: int = Field(..., ge=1)
    status: LotStatus = LotStatus.PENDIENTE
    carrier: str | None = None
    destination: str | None = None
    notes: str | None = None
    estimated_arrival: datetime | None = None
    items: list[LotItem] = Field(default_factory=list)
    created_at: datetime
    created_by: str | None = None
    dispatched_at: datetime | None = None
    dispatched_by: str | None = None
    pickup_scheduled_for: datetime | None = None
    pickup_note: str | None = None
    delivered_at: datetime | None = None
    received_by: str | None = None
    delivery_notes: str | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None

    @property
    def is_void(self) -> bool:
        return self.status == LotStatus.ANULADO

    @property
    def is_dispatched(self) -> bool:
        return self.status in DISPATCHED_LOT_STATUSES

    @property
    def is_delivered(self) -> bool:
        return self.status == LotStatus.ENTREGADO

    def quantity_for(self, item_id: str) -> int:
        """Shipped quantity of an item in this lot (0 if absent)"""
        return sum(li.shipped_quantity for li in self.items if li.item_id == item_id)

    def received_for(self, item_id: str) -> int:
        return sum(li.effective_received for li in self.items if li.item_id == item_id)
