"""
Lots Module - physical shipments

A lot ships part of one or more items' quantities; dispatching and
delivering lots is what moves items (and the requisition) to their
final statuses.
"""

from requisition_flow.lots.models import Lot, LotItem, LotStatus

__all__ = ["Lot", "LotItem", "LotStatus"]
