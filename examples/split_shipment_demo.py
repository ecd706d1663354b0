#!/usr/bin/env python3
"""
Split Shipment Demonstration - One Requisition, Two Lots

This example walks a requisition through every stage of the workflow
while part of it waits for a purchase:

Scenario:
- A technician requests 10 bearings and 20 pairs of safety gloves
- Safety and management approve
- Logistics finds the bearings in stock; the gloves must be bought
- Logistics ships 6 bearings right away (dispatch dominates purchasing)
- Procurement approves the gloves purchase, the warehouse receives them
- A second lot carries the remaining 4 bearings and the gloves
- The receiver confirms both lots: partial delivery, then complete

Run:
    python examples/split_shipment_demo.py
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

from requisition_flow import RequisitionFlow
from requisition_flow.kernel.collaborators import RecordingNotifier
from requisition_flow.kernel.time import TestTimeProvider


def print_section(title: str) -> None:
    """Print section header"""
    print(f"\n{'='*70}")
    print(f"  {title}")
    print(f"{'='*70}\n")


def show(requisition: dict) -> None:
    print(f"  Requisition {requisition['number']}: {requisition['status']}")
    for item in requisition["items"].values():
        print(f"    {item['description']:<20} {item['status']}")


def main() -> None:
    """Run split shipment demonstration"""

    print_section("Split Shipment Demonstration")

    db_path = Path(tempfile.mkdtemp()) / "requisitions.db"
    time_provider = TestTimeProvider(datetime(2025, 1, 15, 8, 0, 0, tzinfo=timezone.utc))
    notifier = RecordingNotifier()
    flow = RequisitionFlow(db_path, time_provider=time_provider, notifier=notifier)
    print(f"Database: {db_path}")

    # Phase 1: Draft and approvals
    print_section("Phase 1: Draft and Approvals")

    requisition = flow.create_requisition(
        "tecnico", "OU-PLANT-1", "CC-MAINT", "Overhaul of conveyor line 2"
    )
    requisition_id = requisition["requisition_id"]
    flow.add_item(requisition_id, "tecnico", "Bearing 6205", 10)
    requisition = flow.add_item(requisition_id, "tecnico", "Safety gloves", 20, unit="PAR")
    bearing_id, gloves_id = list(requisition["items"])
    print(f"✓ Created {requisition['number']} with 2 items")

    flow.submit(requisition_id, "tecnico")
    flow.approve(requisition_id, "seguridad")
    requisition = flow.approve(requisition_id, "gerencia")
    print("✓ Approved by safety and management")
    show(requisition)

    # Phase 2: Classification
    print_section("Phase 2: Logistics Classification")

    time_provider.advance_days(1)
    requisition = flow.classify_items(
        requisition_id,
        "logistica",
        [
            {"item_id": bearing_id, "classification": "EN_STOCK", "approved_quantity": 10},
            {"item_id": gloves_id, "classification": "REQUIERE_COMPRA", "approved_quantity": 20},
        ],
    )
    print("✓ Bearings in stock, gloves require purchase")
    show(requisition)

    # Phase 3: First lot leaves while the purchase is pending
    print_section("Phase 3: First Lot")

    requisition = flow.create_lot(
        requisition_id,
        "logistica",
        [{"item_id": bearing_id, "quantity": 6}],
        carrier="Andes Cargo",
    )
    first_lot = next(iter(requisition["lots"]))
    requisition = flow.dispatch_lot(requisition_id, first_lot, "logistica")
    print("✓ Lot 1 dispatched with 6 bearings")
    show(requisition)

    # Phase 4: Purchase
    print_section("Phase 4: Purchase and Warehouse Receipt")

    time_provider.advance_days(3)
    flow.validate_purchase(
        requisition_id, "administracion", [{"item_id": gloves_id, "approved": True}]
    )
    requisition = flow.confirm_purchase_received(requisition_id, "logistica", [gloves_id])
    print("✓ Gloves purchased and received at the warehouse")
    show(requisition)

    # Phase 5: Second lot
    print_section("Phase 5: Second Lot")

    requisition = flow.create_lot(
        requisition_id,
        "logistica",
        [
            {"item_id": bearing_id, "quantity": 4},
            {"item_id": gloves_id, "quantity": 20},
        ],
    )
    second_lot = next(lot_id for lot_id in requisition["lots"] if lot_id != first_lot)
    requisition = flow.dispatch_lot(requisition_id, second_lot, "logistica")
    print("✓ Lot 2 dispatched with 4 bearings and 20 gloves")
    show(requisition)

    # Phase 6: Deliveries
    print_section("Phase 6: Deliveries")

    time_provider.advance_days(1)
    requisition = flow.confirm_delivery(requisition_id, first_lot, "receptor")
    print(f"✓ Lot 1 delivered → {requisition['status']}")
    requisition = flow.confirm_delivery(requisition_id, second_lot, "receptor")
    print(f"✓ Lot 2 delivered → {requisition['status']}")

    # Summary
    print_section("History")

    for entry in flow.history(requisition_id):
        print(
            f"  [{entry['action']:<17}] {entry['previous_status']} → {entry['new_status']}"
        )

    print(f"\nNotifications sent: {len(notifier.sent)}")
    for notification in notifier.sent:
        print(f"  {', '.join(notification.target_user_ids):<16} {notification.title}")

    print(f"\nEvents in store: {flow.event_store.count_events()}")


if __name__ == "__main__":
    main()
