"""
Requisition Module Projections - Read Models for Query Operations

RequisitionRegistry: current state of every requisition, items and lots included
HistoryLog: status transitions and comments per requisition
ItemModificationLog: field-level audit trail of items

The registry is also used by command handlers on a private copy, so the
status recomputed at the end of a command always sees that command's
own changes.
"""

from collections import Counter

from requisition_flow.items.models import ItemStatus
from requisition_flow.kernel.events import Event
from requisition_flow.lots.models import LotStatus
from requisition_flow.requisition.models import RequisitionStatus


class RequisitionRegistry:
    """
    Main projection - one dict per requisition

    Built from every requisition, item and lot event.

    Query methods: get, list_all, list_by_status, count_by_status
    """

    def __init__(self) -> None:
        self.requisitions: dict[str, dict] = {}
        self._handlers = {
            "RequisitionCreated": self._apply_requisition_created,
            "ItemAdded": self._apply_item_added,
            "ItemUpdated": self._apply_item_updated,
            "ItemRemoved": self._apply_item_removed,
            "RequisitionDeleted": self._apply_requisition_deleted,
            "RequisitionStatusChanged": self._apply_requisition_status_changed,
            "RequisitionCommentAdded": self._apply_requisition_comment_added,
            "ItemsClassified": self._apply_items_classified,
            "PurchaseValidated": self._apply_purchase_validated,
            "PurchaseReceiptConfirmed": self._apply_purchase_receipt_confirmed,
            "ItemStatusChanged": self._apply_item_status_changed,
            "LotCreated": self._apply_lot_created,
            "LotUpdated": self._apply_lot_updated,
            "LotStatusChanged": self._apply_lot_status_changed,
            "LotPickupScheduled": self._apply_lot_pickup_scheduled,
            "LotDelivered": self._apply_lot_delivered,
        }

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the projection

        Args:
            event: Event to apply
        """
        handler = self._handlers.get(event.event_type)
        if handler is None:
            return
        if event.event_type != "RequisitionCreated" and event.stream_id not in self.requisitions:
            return
        handler(event)
        self.requisitions[event.stream_id]["version"] = event.version

    # Requisition events

    def _apply_requisition_created(self, event: Event) -> None:
        payload = event.payload
        self.requisitions[payload["requisition_id"]] = {
            "requisition_id": payload["requisition_id"],
            "number": payload["number"],
            "requester_id": payload["requester_id"],
            "operating_unit_id": payload["operating_unit_id"],
            "cost_center_id": payload["cost_center_id"],
            "reason": payload["reason"],
            "comments": payload.get("comments"),
            "status": RequisitionStatus.BORRADOR.value,
            "created_at": payload["created_at"],
            "submitted_at": None,
            "deleted": False,
            "items": {},
            "lots": {},
            "version": event.version,
        }

    def _apply_item_added(self, event: Event) -> None:
        payload = event.payload
        spec = payload["item"]
        self._requisition(event)["items"][spec["item_id"]] = {
            **spec,
            "requisition_id": payload["requisition_id"],
            "status": ItemStatus.PENDIENTE_CLASIFICACION.value,
            "approved_quantity": None,
            "stock_note": None,
            "estimated_purchase_date": None,
            "classified_by": None,
            "classified_at": None,
            "purchase": None,
            "warehouse_received": False,
            "warehouse_received_at": None,
            "deleted": False,
            "created_at": payload["added_at"],
        }

    def _apply_item_updated(self, event: Event) -> None:
        item = self._item(event, event.payload["item_id"])
        if item is not None:
            item.update(event.payload["changes"])

    def _apply_item_removed(self, event: Event) -> None:
        item = self._item(event, event.payload["item_id"])
        if item is not None:
            item["deleted"] = True

    def _apply_requisition_deleted(self, event: Event) -> None:
        requisition = self._requisition(event)
        requisition["deleted"] = True
        for item in requisition["items"].values():
            item["deleted"] = True

    def _apply_requisition_status_changed(self, event: Event) -> None:
        payload = event.payload
        requisition = self._requisition(event)
        requisition["status"] = payload["new_status"]
        if payload["previous_status"] == RequisitionStatus.BORRADOR.value:
            requisition["submitted_at"] = payload["changed_at"]

    def _apply_requisition_comment_added(self, event: Event) -> None:
        pass  # history only

    # Item events

    def _apply_items_classified(self, event: Event) -> None:
        payload = event.payload
        for spec in payload["items"]:
            item = self._item(event, spec["item_id"])
            if item is None:
                continue
            item["status"] = spec["final_status"]
            item["approved_quantity"] = spec["approved_quantity"]
            item["stock_note"] = spec.get("stock_note")
            item["estimated_purchase_date"] = spec.get("estimated_purchase_date")
            item["classified_by"] = payload["classified_by"]
            item["classified_at"] = payload["classified_at"]

    def _apply_purchase_validated(self, event: Event) -> None:
        payload = event.payload
        for decision in payload["decisions"]:
            item = self._item(event, decision["item_id"])
            if item is None:
                continue
            item["status"] = decision["final_status"]
            item["purchase"] = {
                "approved": decision["approved"],
                "validated_by": payload["validated_by"],
                "validated_at": payload["validated_at"],
                "reason": decision.get("reason"),
            }

    def _apply_purchase_receipt_confirmed(self, event: Event) -> None:
        payload = event.payload
        for spec in payload["items"]:
            item = self._item(event, spec["item_id"])
            if item is None:
                continue
            item["status"] = spec["final_status"]
            item["warehouse_received"] = True
            item["warehouse_received_at"] = payload["confirmed_at"]

    def _apply_item_status_changed(self, event: Event) -> None:
        payload = event.payload
        item = self._item(event, payload["item_id"])
        if item is None:
            return
        item["status"] = payload["new_status"]
        if payload["new_status"] == ItemStatus.PENDIENTE_CLASIFICACION.value:
            # Reverted classification starts over
            item["approved_quantity"] = None
            item["stock_note"] = None
            item["estimated_purchase_date"] = None
            item["classified_by"] = None
            item["classified_at"] = None

    # Lot events

    def _apply_lot_created(self, event: Event) -> None:
        payload = event.payload
        self._requisition(event)["lots"][payload["lot_id"]] = {
            "lot_id": payload["lot_id"],
            "requisition_id": payload["requisition_id"],
            "number": payload["number"],
            "status": LotStatus.PENDIENTE.value,
            "carrier": payload.get("carrier"),
            "destination": payload.get("destination"),
            "notes": payload.get("notes"),
            "estimated_arrival": payload.get("estimated_arrival"),
            "items": [
                {**spec, "received_quantity": None} for spec in payload["items"]
            ],
            "created_at": payload["created_at"],
            "created_by": payload["created_by"],
            "dispatched_at": None,
            "dispatched_by": None,
            "pickup_scheduled_for": None,
            "pickup_note": None,
            "delivered_at": None,
            "received_by": None,
            "delivery_notes": None,
            "cancelled_at": None,
            "cancel_reason": None,
        }

    def _apply_lot_updated(self, event: Event) -> None:
        lot = self._lot(event)
        if lot is not None:
            lot.update(event.payload["changes"])

    def _apply_lot_status_changed(self, event: Event) -> None:
        payload = event.payload
        lot = self._lot(event)
        if lot is None:
            return
        lot["status"] = payload["new_status"]
        if payload["new_status"] == LotStatus.DESPACHADO.value:
            lot["dispatched_at"] = payload["changed_at"]
            lot["dispatched_by"] = payload["changed_by"]
        elif payload["new_status"] == LotStatus.ANULADO.value:
            lot["cancelled_at"] = payload["changed_at"]
            lot["cancel_reason"] = payload.get("note")

    def _apply_lot_pickup_scheduled(self, event: Event) -> None:
        payload = event.payload
        lot = self._lot(event)
        if lot is None:
            return
        lot["status"] = LotStatus.PENDIENTE_RECEPCION.value
        lot["pickup_scheduled_for"] = payload["scheduled_for"]
        lot["pickup_note"] = payload["note"]

    def _apply_lot_delivered(self, event: Event) -> None:
        payload = event.payload
        lot = self._lot(event)
        if lot is None:
            return
        lot["status"] = LotStatus.ENTREGADO.value
        lot["delivered_at"] = payload["delivered_at"]
        lot["received_by"] = payload["received_by"]
        lot["delivery_notes"] = payload.get("notes")
        received = {spec["lot_item_id"]: spec["received_quantity"] for spec in payload["received"]}
        for line in lot["items"]:
            if line["lot_item_id"] in received:
                line["received_quantity"] = received[line["lot_item_id"]]

    # Helpers

    def _requisition(self, event: Event) -> dict:
        return self.requisitions[event.stream_id]

    def _item(self, event: Event, item_id: str) -> dict | None:
        return self._requisition(event)["items"].get(item_id)

    def _lot(self, event: Event) -> dict | None:
        return self._requisition(event)["lots"].get(event.payload["lot_id"])

    # Query methods

    def get(self, requisition_id: str) -> dict | None:
        return self.requisitions.get(requisition_id)

    def list_all(self, include_deleted: bool = False) -> list[dict]:
        return [
            r for r in self.requisitions.values() if include_deleted or not r["deleted"]
        ]

    def list_by_status(self, status: RequisitionStatus) -> list[dict]:
        return [r for r in self.list_all() if r["status"] == RequisitionStatus(status).value]

    def count_by_status(self) -> dict[str, int]:
        return dict(Counter(r["status"] for r in self.list_all()))


class HistoryLog:
    """
    Append-only history of status transitions and comments

    Built from events: RequisitionStatusChanged, RequisitionCommentAdded
    """

    def __init__(self) -> None:
        self.entries: dict[str, list[dict]] = {}

    def apply_event(self, event: Event) -> None:
        payload = event.payload
        if event.event_type == "RequisitionStatusChanged":
            entry = {
                "requisition_id": payload["requisition_id"],
                "previous_status": payload["previous_status"],
                "new_status": payload["new_status"],
                "action": payload["action"],
                "actor_id": payload.get("changed_by"),
                "comment": payload.get("comment"),
                "recorded_at": payload["changed_at"],
            }
        elif event.event_type == "RequisitionCommentAdded":
            entry = {
                "requisition_id": payload["requisition_id"],
                "previous_status": payload["status"],
                "new_status": payload["status"],
                "action": "comment",
                "actor_id": payload["added_by"],
                "comment": payload["comment"],
                "recorded_at": payload["added_at"],
            }
        else:
            return
        self.entries.setdefault(event.stream_id, []).append(entry)

    def get(self, requisition_id: str) -> list[dict]:
        return list(self.entries.get(requisition_id, []))


class ItemModificationLog:
    """
    Field-level audit trail of items

    Built from any event whose payload carries "modifications".
    """

    def __init__(self) -> None:
        self.modifications: dict[str, list[dict]] = {}

    def apply_event(self, event: Event) -> None:
        records = event.payload.get("modifications")
        if not records:
            return
        log = self.modifications.setdefault(event.stream_id, [])
        for record in records:
            log.append(
                {
                    **record,
                    "actor_id": event.actor_id,
                    "modified_at": event.occurred_at.isoformat(),
                    "event_type": event.event_type,
                }
            )

    def get(self, requisition_id: str, item_id: str | None = None) -> list[dict]:
        records = self.modifications.get(requisition_id, [])
        if item_id is None:
            return list(records)
        return [r for r in records if r["item_id"] == item_id]
