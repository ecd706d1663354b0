"""
Requisition Module - the requisition-level state machine

Explicit approval and rejection steps up to logistics review; from then
on the status follows the reconciled picture of the items and lots.
Every transition is written to the history.
"""

from requisition_flow.requisition.models import (
    HistoryEntry,
    Requisition,
    RequisitionStatus,
)

__all__ = ["HistoryEntry", "Requisition", "RequisitionStatus"]
