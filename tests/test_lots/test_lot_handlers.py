"""
Tests for lots - shipments, dispatch and delivery

Fun fact: The shipping container was standardised in the 1960s and cut
the cost of loading a ship by more than 90% - splitting an order into
lots is far older than that!
"""

from datetime import datetime, timezone

import pytest

from requisition_flow.access.models import UserRole
from requisition_flow.flow import RequisitionFlow
from requisition_flow.kernel.errors import (
    CapabilityDenied,
    ConflictStale,
    ItemNotFound,
    LotNotFound,
    TransitionDenied,
    ValidationFailed,
)
from requisition_flow.kernel.metrics import lots_dispatched_total
from requisition_flow.lots.models import LotStatus
from requisition_flow.lots.transitions import can_transition_lot, check_lot_transition
from tests.helpers import drive_to_dispatch, drive_to_logistics, new_lot, ship

PICKUP = datetime(2025, 1, 20, 9, 0, tzinfo=timezone.utc)


def _lot(flow: RequisitionFlow, requisition_id: str, lot_id: str) -> dict:
    return flow.get_requisition(requisition_id)["lots"][lot_id]


class TestCreateLot:
    def test_new_lot_is_pending(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow, (5,))

        lot_id = new_lot(flow, requisition_id, {item_id: 3})

        lot = _lot(flow, requisition_id, lot_id)
        assert lot["status"] == "PENDIENTE"
        assert lot["number"] == 1
        assert [(line["item_id"], line["shipped_quantity"]) for line in lot["items"]] == [
            (item_id, 3)
        ]
        # Allocating does not move the item
        assert flow.get_requisition(requisition_id)["items"][item_id]["status"] == "LISTO_PARA_DESPACHO"

    def test_items_must_be_ready(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_logistics(flow)
        with pytest.raises(TransitionDenied):
            flow.create_lot(requisition_id, "logistica", [{"item_id": item_id, "quantity": 1}])

    def test_allocation_never_exceeds_required(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow, (10,))
        new_lot(flow, requisition_id, {item_id: 6})

        with pytest.raises(ValidationFailed) as exc_info:
            flow.create_lot(requisition_id, "logistica", [{"item_id": item_id, "quantity": 5}])

        error = exc_info.value.errors[0]
        assert error.item_id == item_id
        assert "remaining quantity 4" in error.message

    def test_approved_quantity_is_the_limit(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_logistics(flow, (10,))
        flow.classify_items(
            requisition_id,
            "logistica",
            [{"item_id": item_id, "classification": "EN_STOCK", "approved_quantity": 6}],
        )
        with pytest.raises(ValidationFailed):
            flow.create_lot(requisition_id, "logistica", [{"item_id": item_id, "quantity": 7}])

        ship(flow, requisition_id, {item_id: 6})
        assert flow.get_requisition(requisition_id)["items"][item_id]["status"] == "DESPACHADO"

    def test_cancelled_lot_frees_quantity(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow, (4,))
        first = new_lot(flow, requisition_id, {item_id: 4})

        flow.cancel_lot(requisition_id, first, "logistica", reason="Truck unavailable")
        second = new_lot(flow, requisition_id, {item_id: 4})

        assert _lot(flow, requisition_id, first)["status"] == "ANULADO"
        assert _lot(flow, requisition_id, first)["cancel_reason"] == "Truck unavailable"
        assert _lot(flow, requisition_id, second)["number"] == 2

    def test_receiver_cannot_create_lots(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        with pytest.raises(CapabilityDenied):
            flow.create_lot(requisition_id, "receptor", [{"item_id": item_id, "quantity": 1}])


class TestDispatch:
    def test_partial_item_dispatch_sends_requisition(self, flow: RequisitionFlow) -> None:
        requisition_id, (a, b) = drive_to_dispatch(flow, (3, 2))
        before = lots_dispatched_total._value.get()

        ship(flow, requisition_id, {a: 3})

        requisition = flow.get_requisition(requisition_id)
        assert requisition["items"][a]["status"] == "DESPACHADO"
        assert requisition["items"][b]["status"] == "LISTO_PARA_DESPACHO"
        assert requisition["status"] == "ENVIADO"
        assert lots_dispatched_total._value.get() == before + 1

    def test_split_shipments_and_deliveries(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow, (10,))

        first = ship(flow, requisition_id, {item_id: 6})
        requisition = flow.get_requisition(requisition_id)
        assert requisition["items"][item_id]["status"] == "DESPACHO_PARCIAL"
        assert requisition["status"] == "ENVIADO"

        second = ship(flow, requisition_id, {item_id: 4})
        requisition = flow.get_requisition(requisition_id)
        assert requisition["items"][item_id]["status"] == "DESPACHADO"
        # Everything left the warehouse, nothing arrived yet
        assert requisition["status"] == "ENVIADO"

        flow.confirm_delivery(requisition_id, first, "receptor")
        assert flow.get_requisition(requisition_id)["status"] == "ENTREGADO_PARCIAL"

        flow.confirm_delivery(requisition_id, second, "receptor")
        assert flow.get_requisition(requisition_id)["status"] == "ENTREGADO"

    def test_dispatch_is_recorded_on_the_lot(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = ship(flow, requisition_id, {item_id: 5})

        lot = _lot(flow, requisition_id, lot_id)
        assert lot["status"] == "DESPACHADO"
        assert lot["dispatched_by"] == "logistica"
        assert lot["dispatched_at"] is not None

    def test_prepare_then_dispatch(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = new_lot(flow, requisition_id, {item_id: 5})

        flow.prepare_lot(requisition_id, lot_id, "logistica")
        assert _lot(flow, requisition_id, lot_id)["status"] == "PREPARANDO"

        flow.dispatch_lot(requisition_id, lot_id, "logistica")
        assert _lot(flow, requisition_id, lot_id)["status"] == "DESPACHADO"

    def test_cancelled_lot_cannot_leave(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = new_lot(flow, requisition_id, {item_id: 5})
        flow.cancel_lot(requisition_id, lot_id, "logistica")

        with pytest.raises(ConflictStale):
            flow.dispatch_lot(requisition_id, lot_id, "logistica")

    def test_dispatched_lot_cannot_be_cancelled(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id, _) = drive_to_dispatch(flow, (4, 4))
        lot_id = ship(flow, requisition_id, {item_id: 4})

        with pytest.raises(TransitionDenied):
            flow.cancel_lot(requisition_id, lot_id, "logistica")

    def test_receiver_cannot_dispatch(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = new_lot(flow, requisition_id, {item_id: 5})

        with pytest.raises(CapabilityDenied):
            flow.dispatch_lot(requisition_id, lot_id, "receptor")

    def test_unknown_lot(self, flow: RequisitionFlow) -> None:
        requisition_id, _ = drive_to_dispatch(flow)
        with pytest.raises(LotNotFound):
            flow.dispatch_lot(requisition_id, "no-such-lot", "logistica")


class TestLotDetails:
    def test_update_open_lot(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = new_lot(flow, requisition_id, {item_id: 5})

        flow.update_lot(requisition_id, lot_id, "logistica", carrier="Transportes Andes")

        assert _lot(flow, requisition_id, lot_id)["carrier"] == "Transportes Andes"
        with pytest.raises(ValidationFailed):
            flow.update_lot(requisition_id, lot_id, "logistica", carrier="Transportes Andes")

    def test_dispatched_lot_is_frozen(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = ship(flow, requisition_id, {item_id: 5})

        with pytest.raises(ConflictStale):
            flow.update_lot(requisition_id, lot_id, "logistica", destination="Mine site 2")


class TestDelivery:
    def test_in_transit_pickup_and_delivery(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = ship(flow, requisition_id, {item_id: 5})

        flow.mark_lot_in_transit(requisition_id, lot_id, "logistica")
        assert _lot(flow, requisition_id, lot_id)["status"] == "EN_TRANSITO"

        flow.schedule_pickup(requisition_id, lot_id, "receptor", PICKUP, "Gate 3, morning shift")
        lot = _lot(flow, requisition_id, lot_id)
        assert lot["status"] == "PENDIENTE_RECEPCION"
        assert lot["pickup_note"] == "Gate 3, morning shift"

        requisition = flow.confirm_delivery(requisition_id, lot_id, "receptor", notes="All good")
        assert requisition["lots"][lot_id]["status"] == "ENTREGADO"
        assert requisition["lots"][lot_id]["received_by"] == "receptor"
        assert requisition["status"] == "ENTREGADO"

    def test_pickup_note_required(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = ship(flow, requisition_id, {item_id: 5})

        with pytest.raises(ValidationFailed) as exc_info:
            flow.schedule_pickup(requisition_id, lot_id, "receptor", PICKUP, "soon")
        assert exc_info.value.fields == ["note"]

    def test_short_receipt_is_partial(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = ship(flow, requisition_id, {item_id: 5})

        requisition = flow.confirm_delivery(requisition_id, lot_id, "receptor", received={item_id: 3})

        assert requisition["lots"][lot_id]["items"][0]["received_quantity"] == 3
        assert requisition["status"] == "ENTREGADO_PARCIAL"

    def test_received_more_than_shipped(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = ship(flow, requisition_id, {item_id: 5})

        with pytest.raises(ValidationFailed):
            flow.confirm_delivery(requisition_id, lot_id, "receptor", received={item_id: 6})

    def test_received_item_not_in_lot(self, flow: RequisitionFlow) -> None:
        requisition_id, (a, b) = drive_to_dispatch(flow, (2, 2))
        lot_id = ship(flow, requisition_id, {a: 2})

        with pytest.raises(ItemNotFound):
            flow.confirm_delivery(requisition_id, lot_id, "receptor", received={b: 1})

    def test_delivered_once(self, flow: RequisitionFlow) -> None:
        requisition_id, (a, b) = drive_to_dispatch(flow, (2, 2))
        lot_id = ship(flow, requisition_id, {a: 2})
        flow.confirm_delivery(requisition_id, lot_id, "receptor")

        with pytest.raises(ConflictStale):
            flow.confirm_delivery(requisition_id, lot_id, "receptor")

    def test_logistics_cannot_confirm(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = ship(flow, requisition_id, {item_id: 5})

        with pytest.raises(CapabilityDenied):
            flow.confirm_delivery(requisition_id, lot_id, "logistica")

    def test_undispatched_lot_cannot_be_delivered(self, flow: RequisitionFlow) -> None:
        requisition_id, (item_id,) = drive_to_dispatch(flow)
        lot_id = new_lot(flow, requisition_id, {item_id: 5})

        with pytest.raises(TransitionDenied):
            flow.confirm_delivery(requisition_id, lot_id, "receptor")


class TestLotTransitionTable:
    def test_logistics_moves_lots_out(self) -> None:
        assert can_transition_lot(LotStatus.PENDIENTE, LotStatus.DESPACHADO, UserRole.LOGISTICA)
        assert can_transition_lot(LotStatus.PREPARANDO, LotStatus.ANULADO, UserRole.ADMIN)
        assert not can_transition_lot(LotStatus.PENDIENTE, LotStatus.DESPACHADO, UserRole.RECEPTOR)

    def test_receiver_closes_lots(self) -> None:
        assert can_transition_lot(LotStatus.EN_TRANSITO, LotStatus.ENTREGADO, UserRole.RECEPTOR)
        assert not can_transition_lot(LotStatus.EN_TRANSITO, LotStatus.ENTREGADO, UserRole.LOGISTICA)

    @pytest.mark.parametrize("terminal", [LotStatus.ENTREGADO, LotStatus.ANULADO])
    def test_terminal_lots_never_move(self, terminal: LotStatus) -> None:
        for target in LotStatus:
            assert not can_transition_lot(terminal, target, UserRole.ADMIN)

    def test_dispatched_lot_cannot_be_voided(self) -> None:
        with pytest.raises(TransitionDenied) as exc_info:
            check_lot_transition(LotStatus.DESPACHADO, LotStatus.ANULADO, UserRole.ADMIN, "lot-1")
        assert exc_info.value.entity == "lot"
