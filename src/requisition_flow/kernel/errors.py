"""
Custom exceptions for the requisition workflow

Every failure the engine reports to its caller is one of four kinds:
TransitionDenied, ValidationFailed, NotFound and ConflictStale. Each
exception keeps its details as attributes so the surrounding system can
surface the error kind and the offending items/fields verbatim.

Fun fact: The word "requisition" comes from the Latin "requirere" -
to seek again. Warehouses have been seeking the same bolts since Rome!
"""

from typing import Any

from pydantic import BaseModel, ValidationError


class WorkflowError(Exception):
    """Base exception for all requisition workflow errors"""

    pass


# Event store errors


class EventStoreError(WorkflowError):
    """Base class for event store errors"""

    pass


class CommandIdempotencyViolation(EventStoreError):
    """
    Raised when a command_id was already used by a different stream

    Re-executing the same command on the same stream is not an error -
    the store simply returns the original events.
    """

    def __init__(self, command_id: str, message: str = "") -> None:
        self.command_id = command_id
        super().__init__(
            message or f"Command {command_id} already processed (idempotency preserved)"
        )


class StreamVersionConflict(EventStoreError):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Indicates a concurrent write to the same requisition. The caller
    must re-read the requisition before deciding again.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


class StreamKeyConflict(EventStoreError):
    """
    Raised when a unique stream key (a requisition number) is already taken

    Nothing of the losing batch is written. The caller may pick another
    key and try again.
    """

    def __init__(self, key: str, stream_id: str) -> None:
        self.key = key
        self.stream_id = stream_id
        super().__init__(f"Key {key} already belongs to another stream (wanted by {stream_id})")


# Workflow errors


class TransitionDenied(WorkflowError):
    """
    Raised when a from -> to pair is not allowed, or the role may not take it

    Never silently ignored or auto-corrected.
    """

    def __init__(
        self,
        entity: str,
        from_status: str | None,
        to_status: str | None,
        role: str | None,
        reason: str,
        identifier: str | None = None,
    ) -> None:
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status
        self.role = role
        self.reason = reason
        self.identifier = identifier
        target = f" {identifier}" if identifier else ""
        super().__init__(f"{entity}{target}: {reason}")


class CapabilityDenied(TransitionDenied):
    """Raised when the permission engine does not grant a capability"""

    def __init__(self, capability: str, status: str, role: str) -> None:
        self.capability = capability
        super().__init__(
            entity="requisition",
            from_status=status,
            to_status=None,
            role=role,
            reason=f"role {role} may not {capability.replace('_', ' ')} while status is {status}",
        )


class FieldError(BaseModel):
    """One offending field in a ValidationFailed error"""

    field: str
    message: str
    item_id: str | None = None

    model_config = {"frozen": True}

    def __str__(self) -> str:
        prefix = f"[{self.item_id}] " if self.item_id else ""
        return f"{prefix}{self.field}: {self.message}"


class ValidationFailed(WorkflowError):
    """
    Raised when input is missing or out of bounds

    Carries every offending field, not just the first one found.
    """

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = list(errors)
        super().__init__(
            "Validation failed: " + "; ".join(str(error) for error in self.errors)
        )

    @classmethod
    def single(
        cls, field: str, message: str, item_id: str | None = None
    ) -> "ValidationFailed":
        return cls([FieldError(field=field, message=message, item_id=item_id)])

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ValidationFailed":
        """Translate a pydantic ValidationError into per-field errors"""
        errors = []
        for detail in exc.errors():
            location: tuple[Any, ...] = detail.get("loc", ())
            field = ".".join(str(part) for part in location) or "input"
            errors.append(FieldError(field=field, message=detail.get("msg", "invalid")))
        return cls(errors)

    @property
    def fields(self) -> list[str]:
        return [error.field for error in self.errors]


class NotFound(WorkflowError):
    """Raised when a referenced entity does not exist in the stated scope"""

    def __init__(
        self, kind: str, identifier: str, requisition_id: str | None = None
    ) -> None:
        self.kind = kind
        self.identifier = identifier
        self.requisition_id = requisition_id
        scope = f" in requisition {requisition_id}" if requisition_id else ""
        super().__init__(f"{kind.capitalize()} {identifier} not found{scope}")


class RequisitionNotFound(NotFound):
    """Raised when requisition does not exist"""

    def __init__(self, requisition_id: str) -> None:
        super().__init__("requisition", requisition_id)


class ItemNotFound(NotFound):
    """Raised when one or more items do not belong to the requisition"""

    def __init__(self, item_ids: list[str], requisition_id: str) -> None:
        self.item_ids = list(item_ids)
        super().__init__("item", ", ".join(self.item_ids), requisition_id)


class LotNotFound(NotFound):
    """Raised when a lot does not belong to the requisition"""

    def __init__(self, lot_id: str, requisition_id: str) -> None:
        self.lot_id = lot_id
        super().__init__("lot", lot_id, requisition_id)


class UserNotFound(NotFound):
    """Raised when the identity collaborator cannot resolve an actor"""

    def __init__(self, user_id: str) -> None:
        super().__init__("user", user_id)


class ConflictStale(WorkflowError):
    """
    Raised on a mutation against a soft-deleted or already-terminal entity

    Never coerced into a no-op: reclassifying a RECHAZADO_COMPRA item
    is an error the caller must see.
    """

    def __init__(self, kind: str, identifier: str, reason: str) -> None:
        self.kind = kind
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"{kind.capitalize()} {identifier} {reason}")
