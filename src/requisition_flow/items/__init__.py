"""
Items Module - the per-item state machine

Classification by logistics, purchase validation by procurement,
warehouse receipt of purchased goods and the dispatch states derived
from lot quantities.

Fun fact: A purchase rejection is the one door in this module that only
opens one way - RECHAZADO_COMPRA has no way out!
"""

from requisition_flow.items.models import (
    Classification,
    Item,
    ItemModification,
    ItemStatus,
    PurchaseDecision,
)

__all__ = [
    "Classification",
    "Item",
    "ItemModification",
    "ItemStatus",
    "PurchaseDecision",
]
