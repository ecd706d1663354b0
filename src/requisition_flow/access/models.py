"""
Access Models - roles, actors and capability sets
"""

from enum import Enum

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Roles of the people taking part in the workflow"""

    TECNICO = "TECNICO"  # Requester
    SEGURIDAD = "SEGURIDAD"  # Safety validation
    OPERACIONES = "OPERACIONES"  # Operations, acts with the safety table
    GERENCIA = "GERENCIA"  # Management validation
    LOGISTICA = "LOGISTICA"  # Classification and dispatch
    ADMINISTRACION = "ADMINISTRACION"  # Procurement / purchase validation
    RECEPTOR = "RECEPTOR"  # Receives shipments on site
    ADMIN = "ADMIN"  # System administrator


class Capability(str, Enum):
    """Actions the permission engine can grant on one requisition"""

    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    ADD_ITEMS = "add_items"
    EDIT_ITEMS = "edit_items"
    DELETE_ITEMS = "delete_items"
    MARK_STOCK = "mark_stock"
    VALIDATE_PURCHASE = "validate_purchase"
    CREATE_LOT = "create_lot"
    DISPATCH = "dispatch"
    CONFIRM_DELIVERY = "confirm_delivery"
    CONFIRM_PURCHASE_RECEIVED = "confirm_purchase_received"


class Actor(BaseModel):
    """The acting user as resolved by the identity collaborator"""

    user_id: str = Field(..., min_length=1)
    role: UserRole
    name: str | None = None
    active: bool = True

    model_config = {"frozen": True}


class CapabilitySet(BaseModel):
    """
    Immutable set of capabilities

    as_flags() renders the canApprove-style booleans some callers expect.
    """

    granted: frozenset[Capability] = Field(default_factory=frozenset)

    model_config = {"frozen": True}

    def __contains__(self, capability: object) -> bool:
        return capability in self.granted

    def allows(self, capability: Capability) -> bool:
        return capability in self.granted

    def union(self, other: "CapabilitySet") -> "CapabilitySet":
        return CapabilitySet(granted=self.granted | other.granted)

    def as_flags(self) -> dict[str, bool]:
        return {capability.value: capability in self.granted for capability in Capability}

    @classmethod
    def of(cls, *capabilities: Capability) -> "CapabilitySet":
        return cls(granted=frozenset(capabilities))
