"""
Requisition Flow - Event-sourced warehouse requisition workflow

Tracks a supply request from draft through safety and management
validation, logistics classification, procurement and partial
shipments until the receiver confirms delivery. Every mutation is gated
by a role/status permission table and recorded as an immutable event.

Fun fact: Double-entry stock cards predate computers by centuries - this
engine keeps the same promise: every quantity that leaves the shelf is
accounted for somewhere.
"""

from requisition_flow.flow import RequisitionFlow

__version__ = "0.1.0"
__all__ = ["RequisitionFlow", "__version__"]
