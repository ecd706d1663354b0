"""
Workflow Policy - tunable parameters of the requisition workflow

Minimum text lengths for reasons and comments, requisition numbering and
the classification auto-advance switch. The defaults reproduce the
production behavior; tests and deployments may override them.
"""

from pydantic import BaseModel, Field, model_validator


class WorkflowPolicy(BaseModel):
    """
    Workflow parameters

    Text-length limits are counted after stripping surrounding whitespace.
    """

    policy_version: str = Field(
        default="1.0",
        description="Policy version for tracking changes over time",
    )

    # Free-text minimums
    min_reason_length: int = Field(
        default=10,
        ge=1,
        description="Minimum length of the requisition reason",
    )

    min_rejection_comment_length: int = Field(
        default=10,
        ge=1,
        description="Minimum length of a requisition rejection comment",
    )

    min_purchase_rejection_reason_length: int = Field(
        default=10,
        ge=1,
        description="Minimum length of the reason when procurement rejects an item",
    )

    min_pickup_note_length: int = Field(
        default=10,
        ge=1,
        description="Minimum length of the note when a receiver schedules a pickup",
    )

    # Item flow
    auto_advance_classified_items: bool = Field(
        default=True,
        description=(
            "Move items classified EN_STOCK straight on to LISTO_PARA_DESPACHO and "
            "REQUIERE_COMPRA on to PENDIENTE_VALIDACION_ADMIN in the same batch"
        ),
    )

    # Numbering
    number_prefix: str = Field(
        default="REQ",
        min_length=1,
        description="Prefix of human-readable requisition numbers",
    )

    number_width: int = Field(
        default=4,
        ge=1,
        le=10,
        description="Zero-padded width of the yearly sequence",
    )

    # Notifications
    notify_requester: bool = Field(
        default=True,
        description="Notify the requester on every status change of their requisition",
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "description": "Tunable parameters of the requisition workflow"
        },
    }

    @model_validator(mode="after")
    def _check_prefix(self) -> "WorkflowPolicy":
        if "-" in self.number_prefix:
            raise ValueError("number_prefix must not contain '-'")
        return self

    @classmethod
    def default(cls) -> "WorkflowPolicy":
        """Policy used when the engine is built without one"""
        return cls()

    def format_number(self, year: int, sequence: int) -> str:
        """REQ-2025-0001 style number"""
        return f"{self.number_prefix}-{year}-{sequence:0{self.number_width}d}"
