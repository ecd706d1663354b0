"""
Requisition Module Invariants - checks shared by every command handler

Each check raises the workflow error kind the caller must see. Checks
that can find several problems at once return FieldErrors so the whole
batch is reported together.
"""

from requisition_flow.items.models import Item
from requisition_flow.kernel.errors import (
    ConflictStale,
    FieldError,
    ItemNotFound,
    ValidationFailed,
)
from requisition_flow.requisition.models import Requisition


def text_error(
    value: str | None, minimum: int, field: str, item_id: str | None = None
) -> FieldError | None:
    """FieldError if the stripped text is shorter than minimum"""
    if value is not None and len(value.strip()) >= minimum:
        return None
    return FieldError(
        field=field,
        message=f"must be at least {minimum} characters",
        item_id=item_id,
    )


def validate_text(value: str | None, minimum: int, field: str) -> str:
    """
    Validate a mandatory free text and return it stripped

    Raises:
        ValidationFailed: If missing or too short
    """
    error = text_error(value, minimum, field)
    if error is not None:
        raise ValidationFailed([error])
    return value.strip()  # type: ignore[union-attr]


def require_items(requisition: Requisition, item_ids: list[str]) -> list[Item]:
    """
    Resolve item ids within the requisition

    Raises:
        ItemNotFound: Listing every id that does not belong to the requisition
    """
    missing = [item_id for item_id in item_ids if item_id not in requisition.items]
    if missing:
        raise ItemNotFound(missing, requisition.requisition_id)
    return [requisition.items[item_id] for item_id in item_ids]


def validate_item_live(item: Item) -> None:
    """
    Raises:
        ConflictStale: If the item was soft-deleted
    """
    if item.deleted:
        raise ConflictStale("item", item.item_id, "was deleted and cannot be modified")


def validate_has_live_items(requisition: Requisition) -> None:
    """
    Raises:
        ValidationFailed: If the requisition has no live items
    """
    if not requisition.live_items():
        raise ValidationFailed.single("items", "a requisition needs at least one item")
