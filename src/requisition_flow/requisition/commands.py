"""
Requisition Module Commands - intentions to change a requisition

Shape is validated by pydantic when the command is built; workflow
rules (permissions, statuses, text minimums) are checked by handlers.
"""

from pydantic import BaseModel, Field


class CreateRequisition(BaseModel):
    """
    Create a draft requisition

    The requester is the acting user; the number is issued by the
    numbering collaborator.
    """

    operating_unit_id: str = Field(..., min_length=1)
    cost_center_id: str = Field(..., min_length=1)
    reason: str
    comments: str | None = None


class DeleteRequisition(BaseModel):
    """Discard a draft (owner or admin, BORRADOR only)"""

    requisition_id: str


class AddItem(BaseModel):
    """Add an item to a draft requisition"""

    requisition_id: str
    description: str = Field(..., min_length=1, max_length=500)
    requested_quantity: int = Field(..., gt=0)
    unit: str = Field(default="UND", min_length=1, max_length=20)
    category: str | None = None
    part_number: str | None = None
    brand: str | None = None


class UpdateItem(BaseModel):
    """
    Change item fields

    In BORRADOR every field may change. After submission only
    requested_quantity may be lowered, and only while the item is still
    waiting for classification.
    """

    requisition_id: str
    item_id: str
    description: str | None = Field(default=None, min_length=1, max_length=500)
    requested_quantity: int | None = Field(default=None, gt=0)
    unit: str | None = Field(default=None, min_length=1, max_length=20)
    category: str | None = None
    part_number: str | None = None
    brand: str | None = None
    reason: str | None = None


class RemoveItem(BaseModel):
    """Soft-delete an item"""

    requisition_id: str
    item_id: str
    reason: str | None = None


class SubmitRequisition(BaseModel):
    """Send a draft to safety validation"""

    requisition_id: str


class ApproveRequisition(BaseModel):
    """Approve the current validation stage"""

    requisition_id: str
    comment: str | None = None


class RejectRequisition(BaseModel):
    """Reject the current validation stage (final)"""

    requisition_id: str
    comment: str | None = None


class AddComment(BaseModel):
    """Add a comment to the history without changing status"""

    requisition_id: str
    comment: str = Field(..., min_length=1)


REQUISITION_COMMAND_TYPES = {
    "CreateRequisition": CreateRequisition,
    "DeleteRequisition": DeleteRequisition,
    "AddItem": AddItem,
    "UpdateItem": UpdateItem,
    "RemoveItem": RemoveItem,
    "SubmitRequisition": SubmitRequisition,
    "ApproveRequisition": ApproveRequisition,
    "RejectRequisition": RejectRequisition,
    "AddComment": AddComment,
}
