"""
Reconciliation Module - cumulative lot quantities → item and requisition status
"""

from requisition_flow.reconciliation.engine import (
    calculate_requisition_status,
    delivery_status,
    derive_item_status,
    total_dispatched,
    total_received,
)

__all__ = [
    "calculate_requisition_status",
    "delivery_status",
    "derive_item_status",
    "total_dispatched",
    "total_received",
]
