"""
Requisition State Machine - status lookups

Two independent pure functions decide the next status:
- next_status_from_approval: explicit approval/rejection steps
- next_status_from_item_aggregate: the reconciled item picture

resolve_status composes them. Once the requisition has reached
logistics review, the item aggregate always wins.
"""

from collections.abc import Mapping
from types import MappingProxyType

from requisition_flow.access.models import UserRole
from requisition_flow.reconciliation.engine import (
    calculate_requisition_status,
    delivery_status,
)
from requisition_flow.requisition.models import (
    LOGISTICS_STATUSES,
    Requisition,
    RequisitionStatus,
)

_R = RequisitionStatus

SUBMIT_TRANSITION = (_R.BORRADOR, _R.VALIDACION_SEGURIDAD)

APPROVAL_TRANSITIONS: Mapping[RequisitionStatus, RequisitionStatus] = MappingProxyType(
    {
        _R.VALIDACION_SEGURIDAD: _R.VALIDACION_GERENCIA,
        _R.VALIDACION_GERENCIA: _R.REVISION_LOGISTICA,
        _R.EN_COMPRA: _R.LISTO_DESPACHO,
    }
)

REJECTION_TRANSITIONS: Mapping[RequisitionStatus, RequisitionStatus] = MappingProxyType(
    {
        _R.VALIDACION_SEGURIDAD: _R.RECHAZADO_SEGURIDAD,
        _R.VALIDACION_GERENCIA: _R.RECHAZADO_GERENCIA,
        _R.EN_COMPRA: _R.RECHAZADO_ADM,
    }
)

# Role group that has to act once a requisition enters the status
NEXT_ACTOR_ROLES: Mapping[RequisitionStatus, tuple[UserRole, ...]] = MappingProxyType(
    {
        _R.VALIDACION_SEGURIDAD: (UserRole.SEGURIDAD,),
        _R.VALIDACION_GERENCIA: (UserRole.GERENCIA,),
        _R.REVISION_LOGISTICA: (UserRole.LOGISTICA,),
        _R.EN_COMPRA: (UserRole.ADMINISTRACION,),
        _R.LISTO_DESPACHO: (UserRole.LOGISTICA,),
    }
)

# Happy-path order, used to recognise a status moving backwards
_PROGRESS_ORDER = (
    _R.BORRADOR,
    _R.VALIDACION_SEGURIDAD,
    _R.VALIDACION_GERENCIA,
    _R.REVISION_LOGISTICA,
    _R.EN_COMPRA,
    _R.LISTO_DESPACHO,
    _R.ENVIADO,
    _R.ENTREGADO_PARCIAL,
    _R.ENTREGADO,
)


def next_status_from_approval(status: RequisitionStatus) -> RequisitionStatus | None:
    """Status an approval leads to, or None if nothing awaits approval"""
    return APPROVAL_TRANSITIONS.get(RequisitionStatus(status))


def rejection_status(status: RequisitionStatus) -> RequisitionStatus | None:
    """Stage-specific terminal rejection status, or None if rejection is not possible"""
    return REJECTION_TRANSITIONS.get(RequisitionStatus(status))


def next_status_from_item_aggregate(requisition: Requisition) -> RequisitionStatus | None:
    """
    Status implied by the live items and the lots shipped against them

    The priority rule gives the dispatch picture. Once dispatch has
    begun, confirmed receipts decide between ENVIADO, ENTREGADO_PARCIAL
    and ENTREGADO, so a requisition is only delivered once its goods
    have actually been received.
    """
    aggregate = calculate_requisition_status(requisition.live_item_statuses())
    if aggregate in (_R.ENVIADO, _R.ENTREGADO):
        delivered = delivery_status(requisition.live_items(), requisition.non_void_lots())
        return delivered or _R.ENVIADO
    return aggregate


def resolve_status(requisition: Requisition) -> RequisitionStatus:
    """
    Status a requisition should have after a batch of item/lot changes

    Outside the logistics band the current status stands; inside it the
    item aggregate wins.
    """
    if requisition.status not in LOGISTICS_STATUSES:
        return requisition.status
    return next_status_from_item_aggregate(requisition) or requisition.status


def roles_to_notify(status: RequisitionStatus) -> tuple[UserRole, ...]:
    return NEXT_ACTOR_ROLES.get(RequisitionStatus(status), ())


def is_regression(previous: RequisitionStatus, new: RequisitionStatus) -> bool:
    """True when a status moves backwards along the happy path"""
    if previous not in _PROGRESS_ORDER or new not in _PROGRESS_ORDER:
        return False
    return _PROGRESS_ORDER.index(new) < _PROGRESS_ORDER.index(previous)
