"""
Permission Engine - (status, role, ownership) → capabilities

Pure functions over immutable lookup tables built once at import time.
Every role has its own hand-enumerated table; there is no inheritance
between roles. The engine never looks at items: callers still have to
check item and lot eligibility before mutating anything.

Dispatch and delivery capabilities span the whole logistics band
(REVISION_LOGISTICA through ENTREGADO_PARCIAL). The real gate for those
actions is the item's status, so logistics can keep shipping in-stock
items while other items of the same requisition are still being bought.
"""

from collections.abc import Mapping
from types import MappingProxyType

from requisition_flow.access.models import Actor, Capability, CapabilitySet, UserRole
from requisition_flow.kernel.errors import CapabilityDenied
from requisition_flow.requisition.models import (
    LOGISTICS_STATUSES,
    Requisition,
    RequisitionStatus,
)

_S = RequisitionStatus
_C = Capability

CapabilityTable = Mapping[RequisitionStatus, frozenset[Capability]]


def _band(statuses: frozenset[RequisitionStatus], *capabilities: Capability) -> dict:
    return {status: frozenset(capabilities) for status in statuses}


def _freeze(table: dict) -> CapabilityTable:
    return MappingProxyType(dict(table))


_VALIDATOR_TABLE = {
    _S.VALIDACION_SEGURIDAD: frozenset(
        {_C.APPROVE, _C.REJECT, _C.EDIT_ITEMS, _C.DELETE_ITEMS}
    ),
}

_LOGISTICS_TABLE = _band(
    LOGISTICS_STATUSES,
    _C.MARK_STOCK,
    _C.CREATE_LOT,
    _C.DISPATCH,
    _C.CONFIRM_PURCHASE_RECEIVED,
)
_LOGISTICS_TABLE[_S.REVISION_LOGISTICA] = _LOGISTICS_TABLE[_S.REVISION_LOGISTICA] | {
    _C.EDIT_ITEMS
}

_PROCUREMENT_TABLE = _band(LOGISTICS_STATUSES, _C.VALIDATE_PURCHASE)
_PROCUREMENT_TABLE[_S.EN_COMPRA] = frozenset(
    {_C.APPROVE, _C.REJECT, _C.VALIDATE_PURCHASE}
)

ROLE_CAPABILITIES: Mapping[UserRole, CapabilityTable] = MappingProxyType(
    {
        UserRole.TECNICO: _freeze({}),
        UserRole.SEGURIDAD: _freeze(_VALIDATOR_TABLE),
        UserRole.OPERACIONES: _freeze(_VALIDATOR_TABLE),
        UserRole.GERENCIA: _freeze(
            {
                _S.VALIDACION_GERENCIA: frozenset(
                    {_C.APPROVE, _C.REJECT, _C.EDIT_ITEMS, _C.DELETE_ITEMS}
                ),
            }
        ),
        UserRole.LOGISTICA: _freeze(_LOGISTICS_TABLE),
        UserRole.ADMINISTRACION: _freeze(_PROCUREMENT_TABLE),
        UserRole.RECEPTOR: _freeze(_band(LOGISTICS_STATUSES, _C.CONFIRM_DELIVERY)),
    }
)

# Owner of a draft: full CRUD on the requisition and its items
OWNER_DRAFT_CAPABILITIES: frozenset[Capability] = frozenset(
    {
        _C.EDIT,
        _C.DELETE,
        _C.SUBMIT,
        _C.ADD_ITEMS,
        _C.EDIT_ITEMS,
        _C.DELETE_ITEMS,
    }
)

_ALL_STATUSES = frozenset(RequisitionStatus)
_FROM_SAFETY = _ALL_STATUSES - {_S.BORRADOR, _S.CREADO}
_FROM_MANAGEMENT = _FROM_SAFETY - {
    _S.VALIDACION_SEGURIDAD,
    _S.APROBADO_SEGURIDAD,
    _S.RECHAZADO_SEGURIDAD,
}

# Which statuses each role may list and open (owners always see their own)
VISIBLE_STATUSES: Mapping[UserRole, frozenset[RequisitionStatus]] = MappingProxyType(
    {
        UserRole.ADMIN: _ALL_STATUSES,
        UserRole.ADMINISTRACION: _ALL_STATUSES,
        UserRole.SEGURIDAD: _FROM_SAFETY,
        UserRole.OPERACIONES: _FROM_SAFETY,
        UserRole.GERENCIA: _FROM_MANAGEMENT,
        UserRole.LOGISTICA: _FROM_MANAGEMENT - {_S.VALIDACION_GERENCIA, _S.RECHAZADO_GERENCIA},
        UserRole.RECEPTOR: LOGISTICS_STATUSES | {_S.ENTREGADO},
        UserRole.TECNICO: frozenset(),
    }
)

# Work queues: statuses waiting for an action of the role
ACTION_QUEUES: Mapping[UserRole, frozenset[RequisitionStatus]] = MappingProxyType(
    {
        UserRole.SEGURIDAD: frozenset({_S.VALIDACION_SEGURIDAD}),
        UserRole.OPERACIONES: frozenset({_S.VALIDACION_SEGURIDAD}),
        UserRole.GERENCIA: frozenset({_S.VALIDACION_GERENCIA}),
        UserRole.LOGISTICA: frozenset({_S.REVISION_LOGISTICA}),
        UserRole.ADMINISTRACION: frozenset({_S.EN_COMPRA}),
        UserRole.RECEPTOR: frozenset({_S.ENVIADO, _S.ENTREGADO_PARCIAL}),
        UserRole.ADMIN: frozenset(
            {_S.VALIDACION_SEGURIDAD, _S.VALIDACION_GERENCIA, _S.REVISION_LOGISTICA, _S.EN_COMPRA}
        ),
        UserRole.TECNICO: frozenset(),
    }
)


def can_view(status: RequisitionStatus, role: UserRole, is_owner: bool) -> bool:
    """Whether a user may see a requisition in listings and detail views"""
    if is_owner:
        return True
    return status in VISIBLE_STATUSES.get(role, frozenset())


def _role_capabilities(
    status: RequisitionStatus, role: UserRole, is_owner: bool
) -> frozenset[Capability]:
    granted = ROLE_CAPABILITIES.get(role, MappingProxyType({})).get(status, frozenset())
    if is_owner and status == _S.BORRADOR:
        granted = granted | OWNER_DRAFT_CAPABILITIES
    return granted


def _admin_capabilities(status: RequisitionStatus) -> frozenset[Capability]:
    """Union of what every domain role (and a draft owner) holds in this status"""
    granted: frozenset[Capability] = frozenset()
    for role in ROLE_CAPABILITIES:
        granted = granted | _role_capabilities(status, role, is_owner=True)
    return granted


def capabilities(
    status: RequisitionStatus, role: UserRole, is_owner: bool
) -> CapabilitySet:
    """
    Capabilities of a user on a requisition in the given status

    Args:
        status: Current requisition status
        role: Role of the acting user
        is_owner: Whether the user is the requester

    Returns:
        CapabilitySet (empty when the user cannot even view it)
    """
    status = RequisitionStatus(status)
    role = UserRole(role)

    if role == UserRole.ADMIN:
        return CapabilitySet(granted=_admin_capabilities(status) | {Capability.VIEW})

    if not can_view(status, role, is_owner):
        return CapabilitySet()

    return CapabilitySet(granted=_role_capabilities(status, role, is_owner) | {Capability.VIEW})


def capabilities_for(requisition: Requisition, actor: Actor) -> CapabilitySet:
    return capabilities(
        requisition.status, actor.role, requisition.is_owner(actor.user_id)
    )


def require_capability(
    requisition: Requisition, actor: Actor, capability: Capability
) -> None:
    """
    Raise unless the actor holds the capability on this requisition

    Raises:
        CapabilityDenied: If the capability is not granted
    """
    if capability not in capabilities_for(requisition, actor):
        raise CapabilityDenied(
            capability=capability.value,
            status=requisition.status.value,
            role=actor.role.value,
        )


def pending_approval_statuses(role: UserRole) -> frozenset[RequisitionStatus]:
    """Statuses in which requisitions wait for an action of this role"""
    return ACTION_QUEUES.get(UserRole(role), frozenset())
