"""
Collaborator protocols - what the workflow needs from its surroundings

The core decides who is notified and which number a requisition gets;
how a notification travels and where numbers are stored belong to the
surrounding system. In-memory implementations serve tests and the CLI.
"""

from typing import Protocol

from pydantic import BaseModel

from requisition_flow.kernel.logging import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    """Notification collaborator - fire-and-forget delivery"""

    def notify(
        self,
        target_user_ids: list[str],
        title: str,
        message: str,
        requisition_id: str,
    ) -> None:
        ...


class RequisitionNumbering(Protocol):
    """Numbering collaborator - unique, monotonic per calendar year"""

    def next_number(self, year: int) -> str:
        ...


class SentNotification(BaseModel):
    """One delivery captured by RecordingNotifier"""

    target_user_ids: list[str]
    title: str
    message: str
    requisition_id: str

    model_config = {"frozen": True}


class RecordingNotifier:
    """Keeps every notification in memory (tests, CLI dry runs)"""

    def __init__(self) -> None:
        self.sent: list[SentNotification] = []

    def notify(
        self,
        target_user_ids: list[str],
        title: str,
        message: str,
        requisition_id: str,
    ) -> None:
        self.sent.append(
            SentNotification(
                target_user_ids=list(target_user_ids),
                title=title,
                message=message,
                requisition_id=requisition_id,
            )
        )

    def for_user(self, user_id: str) -> list[SentNotification]:
        return [n for n in self.sent if user_id in n.target_user_ids]

    def clear(self) -> None:
        self.sent.clear()


class LoggingNotifier:
    """Writes notifications to the structured log instead of delivering them"""

    def notify(
        self,
        target_user_ids: list[str],
        title: str,
        message: str,
        requisition_id: str,
    ) -> None:
        logger.info(
            "Notification",
            title=title,
            message=message,
            requisition_id=requisition_id,
            recipient_count=len(target_user_ids),
        )
