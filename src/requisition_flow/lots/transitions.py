"""
Lot Lifecycle - explicit (from, to, allowed roles) transition table

Logistics prepares, dispatches, moves and voids lots; the receiver
schedules the pickup and confirms delivery.
"""

from collections.abc import Mapping
from types import MappingProxyType

from requisition_flow.access.models import UserRole
from requisition_flow.kernel.errors import TransitionDenied
from requisition_flow.lots.models import LotStatus

_L = LotStatus
_LOGISTICS = frozenset({UserRole.LOGISTICA, UserRole.ADMIN})
_RECEIVER = frozenset({UserRole.RECEPTOR, UserRole.ADMIN})

# (from, to) → (action, allowed roles)
LOT_TRANSITIONS: Mapping[tuple[LotStatus, LotStatus], tuple[str, frozenset[UserRole]]] = (
    MappingProxyType(
        {
            (_L.PENDIENTE, _L.PREPARANDO): ("prepare", _LOGISTICS),
            (_L.PENDIENTE, _L.DESPACHADO): ("dispatch", _LOGISTICS),
            (_L.PREPARANDO, _L.DESPACHADO): ("dispatch", _LOGISTICS),
            (_L.DESPACHADO, _L.EN_TRANSITO): ("mark_in_transit", _LOGISTICS),
            (_L.DESPACHADO, _L.PENDIENTE_RECEPCION): ("schedule_pickup", _RECEIVER),
            (_L.EN_TRANSITO, _L.PENDIENTE_RECEPCION): ("schedule_pickup", _RECEIVER),
            (_L.DESPACHADO, _L.ENTREGADO): ("confirm_delivery", _RECEIVER),
            (_L.EN_TRANSITO, _L.ENTREGADO): ("confirm_delivery", _RECEIVER),
            (_L.PENDIENTE_RECEPCION, _L.ENTREGADO): ("confirm_delivery", _RECEIVER),
            (_L.PENDIENTE, _L.ANULADO): ("cancel", _LOGISTICS),
            (_L.PREPARANDO, _L.ANULADO): ("cancel", _LOGISTICS),
        }
    )
)


def can_transition_lot(from_status: LotStatus, to_status: LotStatus, role: UserRole) -> bool:
    entry = LOT_TRANSITIONS.get((LotStatus(from_status), LotStatus(to_status)))
    return entry is not None and UserRole(role) in entry[1]


def check_lot_transition(
    from_status: LotStatus,
    to_status: LotStatus,
    role: UserRole,
    lot_id: str | None = None,
) -> str:
    """
    Validate a lot transition

    Returns:
        The action name of the table row

    Raises:
        TransitionDenied: If the pair is not in the table or the role is not allowed
    """
    from_status = LotStatus(from_status)
    to_status = LotStatus(to_status)
    role = UserRole(role)

    entry = LOT_TRANSITIONS.get((from_status, to_status))
    if entry is None:
        raise TransitionDenied(
            entity="lot",
            from_status=from_status.value,
            to_status=to_status.value,
            role=role.value,
            reason=f"cannot change from {from_status.value} to {to_status.value}",
            identifier=lot_id,
        )

    action, roles = entry
    if role not in roles:
        raise TransitionDenied(
            entity="lot",
            from_status=from_status.value,
            to_status=to_status.value,
            role=role.value,
            reason=f"role {role.value} is not allowed to {action.replace('_', ' ')}",
            identifier=lot_id,
        )
    return action
