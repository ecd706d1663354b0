"""
Sequential requisition numbering - REQ-YYYY-NNNN

Numbers are read from the event store's claimed keys, not from a
projection, so every process sharing the database sees the same
sequence. The next number of a year is one past the highest claimed,
deleted drafts included. The claim itself happens in the append
transaction; a writer that loses the race gets StreamKeyConflict and
asks again.
"""

from requisition_flow.kernel.event_store import SQLiteEventStore
from requisition_flow.kernel.policy import WorkflowPolicy


class SequentialNumbering:
    """Numbering collaborator backed by the event store"""

    def __init__(self, event_store: SQLiteEventStore, policy: WorkflowPolicy) -> None:
        self.event_store = event_store
        self.policy = policy

    def next_number(self, year: int) -> str:
        issued = self.event_store.keys_with_prefix(f"{self.policy.number_prefix}-{year}-")
        highest = max((int(number.rsplit("-", 1)[1]) for number in issued), default=0)
        return self.policy.format_number(year, highest + 1)
