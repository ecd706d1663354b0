"""
Item State Machine - explicit (from, to, allowed roles) transition table

A move that is not in the table, or is in it but attempted by a role not
listed, fails with TransitionDenied. RECHAZADO_COMPRA has no outgoing
rows: a rejected purchase is final.
"""

from collections.abc import Mapping
from types import MappingProxyType

from pydantic import BaseModel

from requisition_flow.access.models import UserRole
from requisition_flow.items.models import ItemStatus
from requisition_flow.kernel.errors import TransitionDenied

_I = ItemStatus
_LOGISTICS = frozenset({UserRole.LOGISTICA, UserRole.ADMIN})
_PROCUREMENT = frozenset({UserRole.ADMINISTRACION, UserRole.ADMIN})


class ItemTransition(BaseModel):
    """One row of the item transition table"""

    from_status: ItemStatus
    to_status: ItemStatus
    allowed_roles: frozenset[UserRole]
    action: str

    model_config = {"frozen": True}


def _row(
    from_status: ItemStatus,
    to_status: ItemStatus,
    allowed_roles: frozenset[UserRole],
    action: str,
) -> ItemTransition:
    return ItemTransition(
        from_status=from_status,
        to_status=to_status,
        allowed_roles=allowed_roles,
        action=action,
    )


ITEM_TRANSITIONS: tuple[ItemTransition, ...] = (
    # Classification
    _row(_I.PENDIENTE_CLASIFICACION, _I.EN_STOCK, _LOGISTICS, "classify"),
    _row(_I.PENDIENTE_CLASIFICACION, _I.REQUIERE_COMPRA, _LOGISTICS, "classify"),
    # Stock path
    _row(_I.EN_STOCK, _I.LISTO_PARA_DESPACHO, _LOGISTICS, "ready_for_dispatch"),
    # Purchase path
    _row(_I.REQUIERE_COMPRA, _I.PENDIENTE_VALIDACION_ADMIN, _LOGISTICS, "request_purchase"),
    _row(_I.PENDIENTE_VALIDACION_ADMIN, _I.APROBADO_COMPRA, _PROCUREMENT, "approve_purchase"),
    _row(_I.PENDIENTE_VALIDACION_ADMIN, _I.RECHAZADO_COMPRA, _PROCUREMENT, "reject_purchase"),
    _row(_I.APROBADO_COMPRA, _I.EN_STOCK, _LOGISTICS, "receive_purchase"),
    # Dispatch (derived from lot quantities)
    _row(_I.LISTO_PARA_DESPACHO, _I.DESPACHO_PARCIAL, _LOGISTICS, "dispatch"),
    _row(_I.LISTO_PARA_DESPACHO, _I.DESPACHADO, _LOGISTICS, "dispatch"),
    _row(_I.DESPACHO_PARCIAL, _I.DESPACHADO, _LOGISTICS, "dispatch"),
    # Reverting a classification
    _row(_I.EN_STOCK, _I.PENDIENTE_CLASIFICACION, frozenset({UserRole.ADMIN}), "revert_classification"),
    _row(_I.REQUIERE_COMPRA, _I.PENDIENTE_CLASIFICACION, _LOGISTICS, "revert_classification"),
)

_INDEX: Mapping[tuple[ItemStatus, ItemStatus], ItemTransition] = MappingProxyType(
    {(row.from_status, row.to_status): row for row in ITEM_TRANSITIONS}
)


def find_transition(from_status: ItemStatus, to_status: ItemStatus) -> ItemTransition | None:
    return _INDEX.get((ItemStatus(from_status), ItemStatus(to_status)))


def can_transition(from_status: ItemStatus, to_status: ItemStatus, role: UserRole) -> bool:
    """Whether the table allows the role to move an item from → to"""
    row = find_transition(from_status, to_status)
    return row is not None and UserRole(role) in row.allowed_roles


def check_transition(
    from_status: ItemStatus,
    to_status: ItemStatus,
    role: UserRole,
    item_id: str | None = None,
) -> ItemTransition:
    """
    Validate an item transition

    Returns:
        The matching table row

    Raises:
        TransitionDenied: If the pair is not in the table or the role is not allowed
    """
    from_status = ItemStatus(from_status)
    to_status = ItemStatus(to_status)
    role = UserRole(role)

    row = find_transition(from_status, to_status)
    if row is None:
        if from_status == ItemStatus.RECHAZADO_COMPRA:
            reason = "purchase was rejected; the item cannot change status any more"
        else:
            reason = f"cannot change from {from_status.value} to {to_status.value}"
        raise TransitionDenied(
            entity="item",
            from_status=from_status.value,
            to_status=to_status.value,
            role=role.value,
            reason=reason,
            identifier=item_id,
        )

    if role not in row.allowed_roles:
        raise TransitionDenied(
            entity="item",
            from_status=from_status.value,
            to_status=to_status.value,
            role=role.value,
            reason=f"role {role.value} is not allowed to {row.action.replace('_', ' ')}",
            identifier=item_id,
        )

    return row


def allowed_targets(from_status: ItemStatus, role: UserRole) -> list[ItemStatus]:
    """Statuses the role may move an item to from its current status"""
    return [
        row.to_status
        for row in ITEM_TRANSITIONS
        if row.from_status == ItemStatus(from_status) and UserRole(role) in row.allowed_roles
    ]
