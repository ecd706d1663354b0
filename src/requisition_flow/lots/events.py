"""
Lot Module Events - shipment creation and lifecycle
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from requisition_flow.lots.models import LotStatus


class LotItemSpec(BaseModel):
    """Lot line with generated ID"""

    lot_item_id: str
    item_id: str
    shipped_quantity: int


class LotCreated(BaseModel):
    """Lot created in PENDIENTE"""

    requisition_id: str
    lot_id: str
    number: int
    items: list[LotItemSpec]
    carrier: str | None = None
    destination: str | None = None
    notes: str | None = None
    estimated_arrival: datetime | None = None
    created_at: datetime
    created_by: str


class LotUpdated(BaseModel):
    """Shipping details of an open lot changed"""

    requisition_id: str
    lot_id: str
    changes: dict[str, Any]
    updated_at: datetime
    updated_by: str


class LotStatusChanged(BaseModel):
    """Lot moved through its lifecycle (prepare, dispatch, in transit, cancel)"""

    requisition_id: str
    lot_id: str
    previous_status: LotStatus
    new_status: LotStatus
    action: str
    note: str | None = None
    changed_at: datetime
    changed_by: str


class LotPickupScheduled(BaseModel):
    """Receiver agreed a pickup date - lot is PENDIENTE_RECEPCION"""

    requisition_id: str
    lot_id: str
    previous_status: LotStatus
    scheduled_for: datetime
    note: str
    scheduled_at: datetime
    scheduled_by: str


class ReceivedSpec(BaseModel):
    lot_item_id: str
    item_id: str
    received_quantity: int


class LotDelivered(BaseModel):
    """Receiver confirmed the lot, with the quantities actually received"""

    requisition_id: str
    lot_id: str
    previous_status: LotStatus
    received: list[ReceivedSpec]
    notes: str | None = None
    delivered_at: datetime
    received_by: str


LOT_EVENT_TYPES = {
    "LotCreated": LotCreated,
    "LotUpdated": LotUpdated,
    "LotStatusChanged": LotStatusChanged,
    "LotPickupScheduled": LotPickupScheduled,
    "LotDelivered": LotDelivered,
}
