"""
Lot Module Commands - shipment creation and lifecycle
"""

from datetime import datetime

from pydantic import BaseModel, Field


class LotItemEntry(BaseModel):
    item_id: str
    quantity: int = Field(..., gt=0)


class CreateLot(BaseModel):
    """
    Create a shipment for dispatchable items

    Requirements:
    - Items are LISTO_PARA_DESPACHO or DESPACHO_PARCIAL
    - Quantities across all non-void lots stay within the required quantity
    """

    requisition_id: str
    items: list[LotItemEntry] = Field(..., min_length=1)
    carrier: str | None = None
    destination: str | None = None
    notes: str | None = None
    estimated_arrival: datetime | None = None


class UpdateLot(BaseModel):
    """Change shipping details of a lot that has not left yet"""

    requisition_id: str
    lot_id: str
    carrier: str | None = None
    destination: str | None = None
    notes: str | None = None
    estimated_arrival: datetime | None = None


class PrepareLot(BaseModel):
    requisition_id: str
    lot_id: str


class CancelLot(BaseModel):
    requisition_id: str
    lot_id: str
    reason: str | None = None


class DispatchLot(BaseModel):
    requisition_id: str
    lot_id: str


class MarkLotInTransit(BaseModel):
    requisition_id: str
    lot_id: str


class SchedulePickup(BaseModel):
    """Receiver agrees a pickup date for a dispatched lot"""

    requisition_id: str
    lot_id: str
    scheduled_for: datetime
    note: str | None = None


class ConfirmDelivery(BaseModel):
    """
    Receiver confirms a lot

    received maps item_id → quantity actually received; items left out
    count as received in full.
    """

    requisition_id: str
    lot_id: str
    received: dict[str, int] | None = None
    notes: str | None = None


LOT_COMMAND_TYPES = {
    "CreateLot": CreateLot,
    "UpdateLot": UpdateLot,
    "PrepareLot": PrepareLot,
    "CancelLot": CancelLot,
    "DispatchLot": DispatchLot,
    "MarkLotInTransit": MarkLotInTransit,
    "SchedulePickup": SchedulePickup,
    "ConfirmDelivery": ConfirmDelivery,
}
