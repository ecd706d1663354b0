"""
Item Module Events - classification, purchase validation and status moves

Every event carries the ItemModification records it produced so the
audit trail is rebuilt from the same log as the state.
"""

from datetime import datetime

from pydantic import BaseModel

from requisition_flow.items.models import Classification, ItemStatus
from requisition_flow.requisition.events import ItemModificationSpec


class ClassificationSpec(BaseModel):
    """Classification outcome of one item"""

    item_id: str
    classification: Classification
    approved_quantity: int
    final_status: ItemStatus
    stock_note: str | None = None
    estimated_purchase_date: datetime | None = None


class ItemsClassified(BaseModel):
    """Batch of items classified by logistics"""

    requisition_id: str
    items: list[ClassificationSpec]
    modifications: list[ItemModificationSpec]
    classified_at: datetime
    classified_by: str


class PurchaseDecisionSpec(BaseModel):
    """Procurement's decision on one item"""

    item_id: str
    approved: bool
    reason: str | None = None
    final_status: ItemStatus


class PurchaseValidated(BaseModel):
    """Batch of purchase decisions"""

    requisition_id: str
    decisions: list[PurchaseDecisionSpec]
    modifications: list[ItemModificationSpec]
    validated_at: datetime
    validated_by: str


class ReceiptSpec(BaseModel):
    item_id: str
    final_status: ItemStatus


class PurchaseReceiptConfirmed(BaseModel):
    """Purchased goods arrived at the warehouse"""

    requisition_id: str
    items: list[ReceiptSpec]
    modifications: list[ItemModificationSpec]
    confirmed_at: datetime
    confirmed_by: str


class ItemStatusChanged(BaseModel):
    """Single item moved through the transition table"""

    requisition_id: str
    item_id: str
    previous_status: ItemStatus
    new_status: ItemStatus
    action: str
    reason: str | None = None
    modifications: list[ItemModificationSpec]
    changed_at: datetime
    changed_by: str | None = None


ITEM_EVENT_TYPES = {
    "ItemsClassified": ItemsClassified,
    "PurchaseValidated": PurchaseValidated,
    "PurchaseReceiptConfirmed": PurchaseReceiptConfirmed,
    "ItemStatusChanged": ItemStatusChanged,
}
