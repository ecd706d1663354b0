"""
Requisition Domain Models

A requisition owns its items and lots exclusively. Its status is either
the result of an explicit approval/rejection or, once logistics review
has begun, the aggregate of its live items' statuses.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from requisition_flow.items.models import Item, ItemStatus
from requisition_flow.lots.models import Lot


class RequisitionStatus(str, Enum):
    """
    Requisition lifecycle states

    BORRADOR → VALIDACION_SEGURIDAD → VALIDACION_GERENCIA → REVISION_LOGISTICA
    → [EN_COMPRA] → LISTO_DESPACHO → ENVIADO → (ENTREGADO_PARCIAL →) ENTREGADO

    RECHAZADO_* and ENTREGADO are terminal. CREADO and the APROBADO_* values
    are kept for data written by earlier versions of the workflow.
    """

    BORRADOR = "BORRADOR"
    CREADO = "CREADO"
    VALIDACION_SEGURIDAD = "VALIDACION_SEGURIDAD"
    APROBADO_SEGURIDAD = "APROBADO_SEGURIDAD"
    RECHAZADO_SEGURIDAD = "RECHAZADO_SEGURIDAD"
    VALIDACION_GERENCIA = "VALIDACION_GERENCIA"
    APROBADO_GERENCIA = "APROBADO_GERENCIA"
    RECHAZADO_GERENCIA = "RECHAZADO_GERENCIA"
    REVISION_LOGISTICA = "REVISION_LOGISTICA"
    EN_COMPRA = "EN_COMPRA"
    APROBADO_ADM = "APROBADO_ADM"
    RECHAZADO_ADM = "RECHAZADO_ADM"
    LISTO_DESPACHO = "LISTO_DESPACHO"
    ENVIADO = "ENVIADO"
    ENTREGADO_PARCIAL = "ENTREGADO_PARCIAL"
    ENTREGADO = "ENTREGADO"


TERMINAL_STATUSES = frozenset(
    {
        RequisitionStatus.RECHAZADO_SEGURIDAD,
        RequisitionStatus.RECHAZADO_GERENCIA,
        RequisitionStatus.RECHAZADO_ADM,
        RequisitionStatus.ENTREGADO,
    }
)

# From REVISION_LOGISTICA to ENTREGADO_PARCIAL: status follows the items
LOGISTICS_STATUSES = frozenset(
    {
        RequisitionStatus.REVISION_LOGISTICA,
        RequisitionStatus.EN_COMPRA,
        RequisitionStatus.APROBADO_ADM,
        RequisitionStatus.LISTO_DESPACHO,
        RequisitionStatus.ENVIADO,
        RequisitionStatus.ENTREGADO_PARCIAL,
    }
)

PENDING_APPROVAL_STATUSES = frozenset(
    {
        RequisitionStatus.VALIDACION_SEGURIDAD,
        RequisitionStatus.VALIDACION_GERENCIA,
        RequisitionStatus.EN_COMPRA,
    }
)


class HistoryEntry(BaseModel):
    """
    Immutable audit record of a requisition status transition

    Comments are entries whose previous and new status are equal.
    """

    requisition_id: str
    previous_status: RequisitionStatus
    new_status: RequisitionStatus
    action: str
    actor_id: str | None = None
    comment: str | None = None
    recorded_at: datetime

    model_config = {"frozen": True}

    @property
    def is_comment(self) -> bool:
        return self.previous_status == self.new_status


class Requisition(BaseModel):
    """A warehouse supply request and everything it owns"""

    requisition_id: str
    number: str
    requester_id: str
    operating_unit_id: str
    cost_center_id: str
    reason: str
    comments: str | None = None
    status: RequisitionStatus = RequisitionStatus.BORRADOR
    created_at: datetime
    submitted_at: datetime | None = None
    deleted: bool = False
    items: dict[str, Item] = Field(default_factory=dict)
    lots: dict[str, Lot] = Field(default_factory=dict)
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def live_items(self) -> list[Item]:
        """Items not soft-deleted - the only ones that count anywhere"""
        return [item for item in self.items.values() if not item.deleted]

    def live_item_statuses(self) -> list[ItemStatus]:
        return [item.status for item in self.live_items()]

    def non_void_lots(self) -> list[Lot]:
        return [lot for lot in self.lots.values() if not lot.is_void]

    def is_owner(self, user_id: str) -> bool:
        return self.requester_id == user_id
