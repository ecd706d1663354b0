"""
Item Domain Models - one requested line inside a requisition

The item's status is its single tagged state. The in-stock and
requires-purchase flags are derived from it (plus the purchase decision)
and only appear when an item is serialized for an outside collaborator.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field


class ItemStatus(str, Enum):
    """
    Item lifecycle states

    PENDIENTE_CLASIFICACION → (EN_STOCK | REQUIERE_COMPRA)
    REQUIERE_COMPRA → PENDIENTE_VALIDACION_ADMIN → (APROBADO_COMPRA | RECHAZADO_COMPRA)
    APROBADO_COMPRA → EN_STOCK (warehouse receipt)
    EN_STOCK → LISTO_PARA_DESPACHO → (DESPACHO_PARCIAL →) DESPACHADO
    """

    PENDIENTE_CLASIFICACION = "PENDIENTE_CLASIFICACION"  # Waiting for logistics
    EN_STOCK = "EN_STOCK"  # Available in the warehouse
    REQUIERE_COMPRA = "REQUIERE_COMPRA"  # Must be bought
    PENDIENTE_VALIDACION_ADMIN = "PENDIENTE_VALIDACION_ADMIN"  # Waiting for procurement
    APROBADO_COMPRA = "APROBADO_COMPRA"  # Purchase approved, goods not yet received
    RECHAZADO_COMPRA = "RECHAZADO_COMPRA"  # Purchase rejected (absorbing)
    LISTO_PARA_DESPACHO = "LISTO_PARA_DESPACHO"  # Can go into a lot
    DESPACHO_PARCIAL = "DESPACHO_PARCIAL"  # Part of the quantity shipped
    DESPACHADO = "DESPACHADO"  # Full quantity shipped


class Classification(str, Enum):
    """Logistics' decision for an item"""

    EN_STOCK = "EN_STOCK"
    REQUIERE_COMPRA = "REQUIERE_COMPRA"


STOCK_PATH_STATUSES = frozenset(
    {
        ItemStatus.EN_STOCK,
        ItemStatus.LISTO_PARA_DESPACHO,
        ItemStatus.DESPACHO_PARCIAL,
        ItemStatus.DESPACHADO,
    }
)

PURCHASE_PATH_STATUSES = frozenset(
    {
        ItemStatus.REQUIERE_COMPRA,
        ItemStatus.PENDIENTE_VALIDACION_ADMIN,
        ItemStatus.APROBADO_COMPRA,
        ItemStatus.RECHAZADO_COMPRA,
    }
)

# Statuses an item can be put into a lot from
DISPATCHABLE_STATUSES = frozenset(
    {ItemStatus.LISTO_PARA_DESPACHO, ItemStatus.DESPACHO_PARCIAL}
)


class PurchaseDecision(BaseModel):
    """Procurement's approve/reject decision on an item requiring purchase"""

    approved: bool
    validated_by: str
    validated_at: datetime
    reason: str | None = None


class Item(BaseModel):
    """
    One requested line of a requisition

    requested_quantity is fixed once the requisition is submitted;
    approved_quantity is set by classification and never exceeds it.
    """

    item_id: str
    requisition_id: str
    description: str = Field(..., min_length=1, max_length=500)
    requested_quantity: int = Field(..., gt=0)
    unit: str = Field(default="UND", min_length=1, max_length=20)
    category: str | None = None
    part_number: str | None = None
    brand: str | None = None
    status: ItemStatus = ItemStatus.PENDIENTE_CLASIFICACION
    approved_quantity: int | None = Field(default=None, gt=0)
    stock_note: str | None = None
    estimated_purchase_date: datetime | None = None
    classified_by: str | None = None
    classified_at: datetime | None = None
    purchase: PurchaseDecision | None = None
    warehouse_received: bool = False
    warehouse_received_at: datetime | None = None
    deleted: bool = False
    created_at: datetime

    @property
    def required_quantity(self) -> int:
        """Quantity that must be shipped: approved if set, else requested"""
        if self.approved_quantity is not None:
            return self.approved_quantity
        return self.requested_quantity

    @property
    def is_live(self) -> bool:
        return not self.deleted

    @computed_field  # type: ignore[prop-decorator]
    @property
    def requires_purchase(self) -> bool:
        return self.status in PURCHASE_PATH_STATUSES or self.purchase is not None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def in_stock(self) -> bool:
        return self.status in STOCK_PATH_STATUSES


class ItemModification(BaseModel):
    """Immutable audit record of one field change on an item"""

    item_id: str
    field: str
    old_value: Any = None
    new_value: Any = None
    actor_id: str | None = None
    reason: str | None = None
    modified_at: datetime

    model_config = {"frozen": True}
