"""
Tests for the item transition table

Fun fact: A state machine with no outgoing edges from a state is said to
have an "absorbing" state - RECHAZADO_COMPRA is ours.
"""

import itertools

import pytest

from requisition_flow.access.models import UserRole
from requisition_flow.items.models import ItemStatus
from requisition_flow.items.transitions import (
    ITEM_TRANSITIONS,
    allowed_targets,
    can_transition,
    check_transition,
)
from requisition_flow.kernel.errors import TransitionDenied

I = ItemStatus


def test_logistics_classifies() -> None:
    row = check_transition(I.PENDIENTE_CLASIFICACION, I.EN_STOCK, UserRole.LOGISTICA)
    assert row.action == "classify"
    assert can_transition(I.PENDIENTE_CLASIFICACION, I.REQUIERE_COMPRA, UserRole.LOGISTICA)


def test_procurement_decides_purchases() -> None:
    assert can_transition(I.PENDIENTE_VALIDACION_ADMIN, I.APROBADO_COMPRA, UserRole.ADMINISTRACION)
    assert can_transition(I.PENDIENTE_VALIDACION_ADMIN, I.RECHAZADO_COMPRA, UserRole.ADMINISTRACION)
    assert not can_transition(I.PENDIENTE_VALIDACION_ADMIN, I.APROBADO_COMPRA, UserRole.LOGISTICA)


def test_role_not_in_row_is_denied() -> None:
    with pytest.raises(TransitionDenied) as exc_info:
        check_transition(I.PENDIENTE_CLASIFICACION, I.EN_STOCK, UserRole.TECNICO, "i1")

    error = exc_info.value
    assert error.entity == "item"
    assert error.identifier == "i1"
    assert error.from_status == "PENDIENTE_CLASIFICACION"
    assert error.to_status == "EN_STOCK"
    assert "TECNICO" in error.reason


def test_pair_not_in_table_is_denied() -> None:
    with pytest.raises(TransitionDenied):
        check_transition(I.PENDIENTE_CLASIFICACION, I.DESPACHADO, UserRole.ADMIN)


@pytest.mark.parametrize("target", list(ItemStatus))
def test_rejected_purchase_is_absorbing(target: ItemStatus) -> None:
    for role in UserRole:
        assert not can_transition(I.RECHAZADO_COMPRA, target, role)

    with pytest.raises(TransitionDenied, match="purchase was rejected"):
        check_transition(I.RECHAZADO_COMPRA, target, UserRole.ADMIN)


def test_only_admin_reverts_stock_classification() -> None:
    assert can_transition(I.EN_STOCK, I.PENDIENTE_CLASIFICACION, UserRole.ADMIN)
    assert not can_transition(I.EN_STOCK, I.PENDIENTE_CLASIFICACION, UserRole.LOGISTICA)
    assert can_transition(I.REQUIERE_COMPRA, I.PENDIENTE_CLASIFICACION, UserRole.LOGISTICA)


def test_dispatched_has_no_way_back() -> None:
    assert allowed_targets(I.DESPACHADO, UserRole.ADMIN) == []


def test_allowed_targets_for_logistics() -> None:
    assert set(allowed_targets(I.EN_STOCK, UserRole.LOGISTICA)) == {I.LISTO_PARA_DESPACHO}
    assert set(allowed_targets(I.LISTO_PARA_DESPACHO, UserRole.LOGISTICA)) == {
        I.DESPACHO_PARCIAL,
        I.DESPACHADO,
    }


def test_every_triple_follows_the_table() -> None:
    allowed = {
        (row.from_status, row.to_status, role)
        for row in ITEM_TRANSITIONS
        for role in row.allowed_roles
    }

    for from_status, to_status, role in itertools.product(ItemStatus, ItemStatus, UserRole):
        expected = (from_status, to_status, role) in allowed
        assert can_transition(from_status, to_status, role) is expected
        if expected:
            assert check_transition(from_status, to_status, role).to_status == to_status
        else:
            with pytest.raises(TransitionDenied):
                check_transition(from_status, to_status, role)
