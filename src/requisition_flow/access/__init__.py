"""
Access Module - who may do what to a requisition

The Permission Engine maps (requisition status, role, ownership) to a
capability set. The identity collaborator supplies the acting user.
"""

from requisition_flow.access.engine import (
    can_view,
    capabilities,
    pending_approval_statuses,
    require_capability,
)
from requisition_flow.access.models import Actor, Capability, CapabilitySet, UserRole

__all__ = [
    "Actor",
    "Capability",
    "CapabilitySet",
    "UserRole",
    "can_view",
    "capabilities",
    "pending_approval_statuses",
    "require_capability",
]
