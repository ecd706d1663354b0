"""
Tests for the permission engine

(status, role, ownership) → capability set, from hand-enumerated tables.

Fun fact: The "principle of least privilege" was written down by Jerome
Saltzer in 1974 - half a century later it still decides who may
approve a box of gloves!
"""

import pytest

from requisition_flow.access.engine import (
    can_view,
    capabilities,
    pending_approval_statuses,
    require_capability,
)
from requisition_flow.access.models import Actor, Capability, CapabilitySet, UserRole
from requisition_flow.kernel.errors import CapabilityDenied, TransitionDenied
from requisition_flow.requisition.models import LOGISTICS_STATUSES, RequisitionStatus
from tests.helpers import make_requisition

S = RequisitionStatus
C = Capability
R = UserRole


def test_owner_has_full_crud_on_draft() -> None:
    granted = capabilities(S.BORRADOR, R.TECNICO, is_owner=True)

    for capability in (C.VIEW, C.EDIT, C.DELETE, C.SUBMIT, C.ADD_ITEMS, C.EDIT_ITEMS, C.DELETE_ITEMS):
        assert capability in granted
    assert C.APPROVE not in granted


def test_other_requester_sees_nothing() -> None:
    assert capabilities(S.BORRADOR, R.TECNICO, is_owner=False) == CapabilitySet()
    assert capabilities(S.VALIDACION_SEGURIDAD, R.TECNICO, is_owner=False) == CapabilitySet()


def test_owner_only_views_after_submission() -> None:
    granted = capabilities(S.VALIDACION_SEGURIDAD, R.TECNICO, is_owner=True)
    assert granted == CapabilitySet.of(C.VIEW)


@pytest.mark.parametrize("role", [R.SEGURIDAD, R.OPERACIONES])
def test_safety_table(role: UserRole) -> None:
    """Operations acts with the safety table"""
    at_stage = capabilities(S.VALIDACION_SEGURIDAD, role, is_owner=False)
    assert {C.APPROVE, C.REJECT, C.EDIT_ITEMS, C.DELETE_ITEMS} <= at_stage.granted

    later = capabilities(S.VALIDACION_GERENCIA, role, is_owner=False)
    assert later == CapabilitySet.of(C.VIEW)


def test_management_only_acts_at_its_stage() -> None:
    assert C.APPROVE in capabilities(S.VALIDACION_GERENCIA, R.GERENCIA, False)
    assert C.APPROVE not in capabilities(S.REVISION_LOGISTICA, R.GERENCIA, False)
    # Management never sees requisitions still at safety validation
    assert not can_view(S.VALIDACION_SEGURIDAD, R.GERENCIA, is_owner=False)


def test_logistics_band() -> None:
    review = capabilities(S.REVISION_LOGISTICA, R.LOGISTICA, False)
    assert {C.MARK_STOCK, C.CREATE_LOT, C.DISPATCH, C.EDIT_ITEMS} <= review.granted
    assert C.APPROVE not in review

    shipping = capabilities(S.ENVIADO, R.LOGISTICA, False)
    assert C.DISPATCH in shipping
    assert C.EDIT_ITEMS not in shipping


def test_procurement_approves_only_in_purchasing() -> None:
    purchasing = capabilities(S.EN_COMPRA, R.ADMINISTRACION, False)
    assert {C.APPROVE, C.REJECT, C.VALIDATE_PURCHASE} <= purchasing.granted

    review = capabilities(S.REVISION_LOGISTICA, R.ADMINISTRACION, False)
    assert C.VALIDATE_PURCHASE in review
    assert C.APPROVE not in review


def test_receiver_visibility_and_delivery() -> None:
    assert C.CONFIRM_DELIVERY in capabilities(S.ENVIADO, R.RECEPTOR, False)
    assert capabilities(S.ENTREGADO, R.RECEPTOR, False) == CapabilitySet.of(C.VIEW)
    assert capabilities(S.VALIDACION_SEGURIDAD, R.RECEPTOR, False) == CapabilitySet()
    for status in LOGISTICS_STATUSES:
        assert can_view(status, R.RECEPTOR, is_owner=False)


def test_admin_holds_union_of_all_roles() -> None:
    draft = capabilities(S.BORRADOR, R.ADMIN, is_owner=False)
    assert {C.SUBMIT, C.ADD_ITEMS, C.DELETE} <= draft.granted

    purchasing = capabilities(S.EN_COMPRA, R.ADMIN, is_owner=False)
    assert {C.APPROVE, C.VALIDATE_PURCHASE, C.MARK_STOCK, C.CONFIRM_DELIVERY} <= purchasing.granted


@pytest.mark.parametrize(
    "status", [S.RECHAZADO_SEGURIDAD, S.RECHAZADO_GERENCIA, S.RECHAZADO_ADM, S.ENTREGADO]
)
def test_terminal_statuses_grant_no_actions(status: RequisitionStatus) -> None:
    for role in R:
        granted = capabilities(status, role, is_owner=False)
        assert granted.granted <= {C.VIEW}


@pytest.mark.parametrize("status", list(RequisitionStatus))
def test_only_draft_owner_and_admin_submit(status: RequisitionStatus) -> None:
    for role in R:
        if role == R.ADMIN:
            continue
        if C.SUBMIT in capabilities(status, role, is_owner=False):
            pytest.fail(f"{role.value} may submit in {status.value} without owning it")


def test_require_capability_raises() -> None:
    requisition = make_requisition(status=S.VALIDACION_SEGURIDAD)
    manager = Actor(user_id="gerencia", role=R.GERENCIA)

    with pytest.raises(CapabilityDenied) as exc_info:
        require_capability(requisition, manager, C.APPROVE)

    assert exc_info.value.capability == "approve"
    assert exc_info.value.role == "GERENCIA"
    assert isinstance(exc_info.value, TransitionDenied)


def test_require_capability_passes() -> None:
    requisition = make_requisition(status=S.VALIDACION_SEGURIDAD)
    require_capability(requisition, Actor(user_id="seguridad", role=R.SEGURIDAD), C.APPROVE)


def test_capability_flags() -> None:
    flags = capabilities(S.EN_COMPRA, R.ADMINISTRACION, False).as_flags()
    assert flags["approve"] is True
    assert flags["submit"] is False
    assert set(flags) == {c.value for c in Capability}


def test_pending_approval_queues() -> None:
    assert pending_approval_statuses(R.SEGURIDAD) == {S.VALIDACION_SEGURIDAD}
    assert pending_approval_statuses(R.ADMINISTRACION) == {S.EN_COMPRA}
    assert pending_approval_statuses(R.TECNICO) == frozenset()
