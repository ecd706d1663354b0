"""
Notification planning - who has to hear about a committed event

plan_notifications is pure: it looks at one event and the requisition
read model and returns plans naming role groups and users. The
NotificationDispatcher, subscribed on the bus, resolves role groups to
active users and hands the plans to the notifier. How a notification
travels is the notifier's business.
"""

from pydantic import BaseModel, Field

from requisition_flow.access.identity import UserDirectory
from requisition_flow.access.models import UserRole
from requisition_flow.kernel.bus import InProcessBus
from requisition_flow.kernel.collaborators import Notifier
from requisition_flow.kernel.events import Event
from requisition_flow.kernel.logging import get_logger
from requisition_flow.kernel.metrics import notifications_sent_total
from requisition_flow.kernel.policy import WorkflowPolicy
from requisition_flow.lots.models import LotStatus
from requisition_flow.requisition.models import RequisitionStatus
from requisition_flow.requisition.projections import RequisitionRegistry
from requisition_flow.requisition.transitions import roles_to_notify

logger = get_logger(__name__)

# Event types the dispatcher subscribes to
NOTIFYING_EVENT_TYPES = ("RequisitionStatusChanged", "LotPickupScheduled", "LotStatusChanged")


class NotificationPlan(BaseModel):
    """One notification to deliver: role groups and/or explicit users"""

    requisition_id: str
    title: str
    message: str
    roles: tuple[UserRole, ...] = ()
    user_ids: tuple[str, ...] = Field(default=())

    model_config = {"frozen": True}


def plan_notifications(
    event: Event, requisition: dict, policy: WorkflowPolicy
) -> list[NotificationPlan]:
    """
    Notifications implied by one committed event

    - Status change: the role group that must act next, and the
      requester (unless they made the change themselves)
    - Pickup scheduled: logistics
    - Lot dispatched: receivers
    """
    payload = event.payload
    number = requisition["number"]
    requisition_id = requisition["requisition_id"]

    if event.event_type == "RequisitionStatusChanged":
        new_status = RequisitionStatus(payload["new_status"])
        plans = []
        roles = roles_to_notify(new_status)
        if roles:
            plans.append(
                NotificationPlan(
                    requisition_id=requisition_id,
                    title=f"Requisition {number} awaits your action",
                    message=f"Requisition {number} entered {new_status.value}",
                    roles=roles,
                )
            )
        requester_id = requisition["requester_id"]
        if policy.notify_requester and requester_id != event.actor_id:
            plans.append(
                NotificationPlan(
                    requisition_id=requisition_id,
                    title=f"Requisition {number} updated",
                    message=(
                        f"Status changed from {payload['previous_status']} "
                        f"to {new_status.value}"
                    ),
                    user_ids=(requester_id,),
                )
            )
        return plans

    if event.event_type == "LotPickupScheduled":
        lot = requisition["lots"].get(payload["lot_id"], {})
        return [
            NotificationPlan(
                requisition_id=requisition_id,
                title=f"Pickup scheduled for lot {lot.get('number')} of {number}",
                message=f"Pickup on {payload['scheduled_for']}: {payload['note']}",
                roles=(UserRole.LOGISTICA,),
            )
        ]

    if (
        event.event_type == "LotStatusChanged"
        and payload["new_status"] == LotStatus.DESPACHADO.value
    ):
        lot = requisition["lots"].get(payload["lot_id"], {})
        return [
            NotificationPlan(
                requisition_id=requisition_id,
                title=f"Lot {lot.get('number')} of {number} dispatched",
                message="A shipment is on its way; confirm its receipt on arrival",
                roles=(UserRole.RECEPTOR,),
            )
        ]

    return []


class NotificationDispatcher:
    """
    Bus subscriber delivering planned notifications

    Delivery errors are counted and re-raised; the bus logs them and
    the write that triggered them stands.
    """

    def __init__(
        self,
        registry: RequisitionRegistry,
        directory: UserDirectory,
        notifier: Notifier,
        policy: WorkflowPolicy,
    ) -> None:
        self.registry = registry
        self.directory = directory
        self.notifier = notifier
        self.policy = policy

    def __call__(self, event: Event) -> None:
        requisition = self.registry.get(event.stream_id)
        if requisition is None:
            return

        for plan in plan_notifications(event, requisition, self.policy):
            targets = self.resolve_targets(plan)
            if not targets:
                notifications_sent_total.labels(outcome="skipped").inc()
                logger.debug(
                    "Notification has no active recipients",
                    requisition_id=plan.requisition_id,
                    roles=[role.value for role in plan.roles],
                )
                continue
            try:
                self.notifier.notify(targets, plan.title, plan.message, plan.requisition_id)
            except Exception:
                notifications_sent_total.labels(outcome="failed").inc()
                raise
            notifications_sent_total.labels(outcome="sent").inc()

    def resolve_targets(self, plan: NotificationPlan) -> list[str]:
        targets = set(plan.user_ids)
        for role in plan.roles:
            targets.update(self.directory.active_user_ids(role))
        return sorted(targets)

    def subscribe(self, bus: InProcessBus) -> None:
        for event_type in NOTIFYING_EVENT_TYPES:
            bus.register_event_handler(event_type, self)
