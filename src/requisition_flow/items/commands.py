"""
Item Module Commands - classification, purchase validation, receipt, manual moves
"""

from datetime import datetime

from pydantic import BaseModel, Field

from requisition_flow.items.models import Classification, ItemStatus


class ClassificationEntry(BaseModel):
    """Logistics' decision for one item"""

    item_id: str
    classification: Classification
    approved_quantity: int = Field(..., gt=0)
    stock_note: str | None = None
    estimated_purchase_date: datetime | None = None


class ClassifyItems(BaseModel):
    """
    Classify a batch of items of one requisition

    Requirements:
    - Every item belongs to the requisition
    - Every item is PENDIENTE_CLASIFICACION (a rejected purchase is final)
    - 0 < approved_quantity <= requested_quantity
    """

    requisition_id: str
    items: list[ClassificationEntry] = Field(..., min_length=1)


class PurchaseDecisionEntry(BaseModel):
    """Procurement's explicit decision for one item"""

    item_id: str
    approved: bool
    reason: str | None = None


class ValidatePurchase(BaseModel):
    """
    Approve or reject a batch of purchases

    A rejection without a long enough reason fails the whole batch.
    """

    requisition_id: str
    decisions: list[PurchaseDecisionEntry] = Field(..., min_length=1)


class ConfirmPurchaseReceived(BaseModel):
    """Purchased goods arrived at the warehouse"""

    requisition_id: str
    item_ids: list[str] = Field(..., min_length=1)


class TransitionItem(BaseModel):
    """Move one item manually through the transition table"""

    requisition_id: str
    item_id: str
    to_status: ItemStatus
    reason: str | None = None


ITEM_COMMAND_TYPES = {
    "ClassifyItems": ClassifyItems,
    "ValidatePurchase": ValidatePurchase,
    "ConfirmPurchaseReceived": ConfirmPurchaseReceived,
    "TransitionItem": TransitionItem,
}
