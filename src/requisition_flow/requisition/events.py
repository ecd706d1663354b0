"""
Requisition Module Events - facts about requisitions and their items' structure

Status changes are always a RequisitionStatusChanged event, whether
they come from an explicit action or from the item aggregate. That event
is also the history entry.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from requisition_flow.requisition.models import RequisitionStatus


class ItemModificationSpec(BaseModel):
    """Audit record of one field change carried inside an event"""

    item_id: str
    field: str
    old_value: Any = None
    new_value: Any = None
    reason: str | None = None


class RequisitionCreated(BaseModel):
    """Requisition created in BORRADOR"""

    requisition_id: str
    number: str
    requester_id: str
    operating_unit_id: str
    cost_center_id: str
    reason: str
    comments: str | None = None
    created_at: datetime


class ItemCreatedSpec(BaseModel):
    """Item data with generated ID"""

    item_id: str
    description: str
    requested_quantity: int
    unit: str
    category: str | None = None
    part_number: str | None = None
    brand: str | None = None


class ItemAdded(BaseModel):
    """Item added to a draft requisition"""

    requisition_id: str
    item: ItemCreatedSpec
    added_at: datetime
    added_by: str


class ItemUpdated(BaseModel):
    """Item fields changed"""

    requisition_id: str
    item_id: str
    changes: dict[str, Any]
    modifications: list[ItemModificationSpec]
    updated_at: datetime
    updated_by: str


class ItemRemoved(BaseModel):
    """Item soft-deleted - excluded from every aggregate from now on"""

    requisition_id: str
    item_id: str
    reason: str | None = None
    modifications: list[ItemModificationSpec]
    removed_at: datetime
    removed_by: str


class RequisitionDeleted(BaseModel):
    """Draft requisition discarded, its items soft-deleted with it"""

    requisition_id: str
    item_ids: list[str]
    deleted_at: datetime
    deleted_by: str


class RequisitionStatusChanged(BaseModel):
    """Requisition moved to a new status (one history entry)"""

    requisition_id: str
    previous_status: RequisitionStatus
    new_status: RequisitionStatus
    action: str
    comment: str | None = None
    changed_at: datetime
    changed_by: str | None = None


class RequisitionCommentAdded(BaseModel):
    """Free comment in the history, status unchanged"""

    requisition_id: str
    status: RequisitionStatus
    comment: str
    added_at: datetime
    added_by: str


REQUISITION_EVENT_TYPES = {
    "RequisitionCreated": RequisitionCreated,
    "ItemAdded": ItemAdded,
    "ItemUpdated": ItemUpdated,
    "ItemRemoved": ItemRemoved,
    "RequisitionDeleted": RequisitionDeleted,
    "RequisitionStatusChanged": RequisitionStatusChanged,
    "RequisitionCommentAdded": RequisitionCommentAdded,
}
