"""
Requisition Flow CLI

Command-line interface over the RequisitionFlow facade.
Every mutating command takes --actor; the acting user is resolved through
the user directory (--users JSON file, or one user per role named after
the role in lower case: tecnico, seguridad, gerencia, logistica, ...).

Usage:
    reqflow init --db requisitions.db
    reqflow requisition create --actor tecnico --operating-unit OU-1 --cost-center CC-1 --reason "..."
    reqflow item add --requisition <id> --actor tecnico --description "Bearing 6205" --quantity 4
    reqflow requisition submit --id <id> --actor tecnico
    reqflow requisition approve --id <id> --actor seguridad
    reqflow item classify --requisition <id> --actor logistica --items '[...]'
    reqflow lot create --requisition <id> --actor logistica --items '[{"item_id": "...", "quantity": 4}]'
    reqflow lot dispatch --requisition <id> --lot <lot_id> --actor logistica
    reqflow lot deliver --requisition <id> --lot <lot_id> --actor receptor
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from prometheus_client import REGISTRY, generate_latest
from typing_extensions import Annotated

from requisition_flow.access.identity import InMemoryUserDirectory
from requisition_flow.flow import RequisitionFlow
from requisition_flow.kernel.errors import WorkflowError
from requisition_flow.kernel.logging import configure_logging

# Warnings and errors only, so command output stays readable
configure_logging(json_output=False, log_level="WARNING")

app = typer.Typer(
    name="reqflow",
    help="Requisition Flow - warehouse requisition approval and dispatch",
    add_completion=False,
)

# Sub-apps
requisition_app = typer.Typer(help="Requisition lifecycle commands")
item_app = typer.Typer(help="Item classification and purchase commands")
lot_app = typer.Typer(help="Shipment (lot) commands")

app.add_typer(requisition_app, name="requisition")
app.add_typer(item_app, name="item")
app.add_typer(lot_app, name="lot")

# Global state
DEFAULT_DB = Path(".reqflow.db")

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
UsersOption = Annotated[
    Optional[Path],
    typer.Option("--users", help="User directory (JSON list of {user_id, role})"),
]
ActorOption = Annotated[str, typer.Option("--actor", help="Acting user id")]


def get_flow(db_path: Optional[Path] = None, users: Optional[Path] = None) -> RequisitionFlow:
    """Get RequisitionFlow instance"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'reqflow init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    directory = InMemoryUserDirectory.from_json_file(users) if users else None
    return RequisitionFlow(db, directory=directory)


@contextmanager
def workflow_errors() -> Iterator[None]:
    """Print workflow errors as 'Error: ...' and exit 1"""
    try:
        yield
    except WorkflowError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


def parse_json(value: str, option: str) -> Any:
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: {option} is not valid JSON: {e}", err=True)
        raise typer.Exit(1) from e


def echo_requisition(requisition: dict[str, Any]) -> None:
    typer.echo(f"  Number: {requisition['number']}")
    typer.echo(f"  Status: {requisition['status']}")


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new requisition database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    # Create database by initializing the engine
    RequisitionFlow(db)
    typer.echo(f"✓ Initialized requisition database: {db}")


# Requisition commands


@requisition_app.command("create")
def requisition_create(
    actor: ActorOption,
    operating_unit: Annotated[str, typer.Option("--operating-unit", help="Operating unit id")],
    cost_center: Annotated[str, typer.Option("--cost-center", help="Cost center id")],
    reason: Annotated[str, typer.Option("--reason", help="Why the goods are needed")],
    comments: Annotated[Optional[str], typer.Option("--comments", help="Free comments")] = None,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Create a draft requisition"""
    flow = get_flow(db, users)
    with workflow_errors():
        requisition = flow.create_requisition(
            actor, operating_unit, cost_center, reason, comments=comments
        )

    typer.echo(f"✓ Created requisition: {requisition['requisition_id']}")
    echo_requisition(requisition)


@requisition_app.command("submit")
def requisition_submit(
    requisition_id: Annotated[str, typer.Option("--id", help="Requisition id")],
    actor: ActorOption,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Send a draft to safety validation"""
    flow = get_flow(db, users)
    with workflow_errors():
        requisition = flow.submit(requisition_id, actor)

    typer.echo(f"✓ Submitted requisition: {requisition_id}")
    echo_requisition(requisition)


@requisition_app.command("approve")
def requisition_approve(
    requisition_id: Annotated[str, typer.Option("--id", help="Requisition id")],
    actor: ActorOption,
    comment: Annotated[Optional[str], typer.Option("--comment", help="Approval comment")] = None,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Approve the current validation stage"""
    flow = get_flow(db, users)
    with workflow_errors():
        requisition = flow.approve(requisition_id, actor, comment=comment)

    typer.echo(f"✓ Approved requisition: {requisition_id}")
    echo_requisition(requisition)


@requisition_app.command("reject")
def requisition_reject(
    requisition_id: Annotated[str, typer.Option("--id", help="Requisition id")],
    actor: ActorOption,
    comment: Annotated[str, typer.Option("--comment", help="Reason (at least 10 characters)")],
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Reject the current validation stage (final)"""
    flow = get_flow(db, users)
    with workflow_errors():
        requisition = flow.reject(requisition_id, actor, comment)

    typer.echo(f"✓ Rejected requisition: {requisition_id}")
    echo_requisition(requisition)


@requisition_app.command("comment")
def requisition_comment(
    requisition_id: Annotated[str, typer.Option("--id", help="Requisition id")],
    actor: ActorOption,
    comment: Annotated[str, typer.Option("--comment", help="Comment text")],
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Add a comment to the history"""
    flow = get_flow(db, users)
    with workflow_errors():
        flow.add_comment(requisition_id, actor, comment)

    typer.echo(f"✓ Comment added to requisition: {requisition_id}")


@requisition_app.command("delete")
def requisition_delete(
    requisition_id: Annotated[str, typer.Option("--id", help="Requisition id")],
    actor: ActorOption,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Discard a draft requisition"""
    flow = get_flow(db, users)
    with workflow_errors():
        flow.delete_requisition(requisition_id, actor)

    typer.echo(f"✓ Deleted requisition: {requisition_id}")


@requisition_app.command("show")
def requisition_show(
    requisition_id: Annotated[str, typer.Option("--id", help="Requisition id")],
    db: DbOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show a requisition with its items and lots"""
    flow = get_flow(db)
    with workflow_errors():
        requisition = flow.get_requisition(requisition_id)

    if json_output:
        typer.echo(json.dumps(requisition, indent=2, default=str))
        return

    typer.echo(f"Requisition {requisition['number']} ({requisition['requisition_id']})")
    typer.echo(f"  Status: {requisition['status']}")
    typer.echo(f"  Requester: {requisition['requester_id']}")
    typer.echo(f"  Reason: {requisition['reason']}")

    items = [item for item in requisition["items"].values() if not item["deleted"]]
    typer.echo(f"\nItems ({len(items)}):")
    for item in items:
        quantity = item["approved_quantity"] or item["requested_quantity"]
        typer.echo(
            f"  {item['item_id']}: {item['description']} "
            f"x{quantity} {item['unit']} [{item['status']}]"
        )

    if requisition["lots"]:
        typer.echo(f"\nLots ({len(requisition['lots'])}):")
        for lot in requisition["lots"].values():
            shipped = sum(line["shipped_quantity"] for line in lot["items"])
            typer.echo(f"  #{lot['number']} {lot['lot_id']}: {shipped} unit(s) [{lot['status']}]")


@requisition_app.command("list")
def requisition_list(
    actor: ActorOption,
    status: Annotated[Optional[str], typer.Option("--status", help="Filter by status")] = None,
    pending: Annotated[
        bool,
        typer.Option("--pending", help="Only requisitions waiting for the actor's role"),
    ] = False,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """List the requisitions the actor may see"""
    flow = get_flow(db, users)
    with workflow_errors():
        if pending:
            requisitions = flow.pending_approvals(actor)
        else:
            requisitions = flow.list_requisitions(actor, status=status)

    if not requisitions:
        typer.echo("No requisitions")
        return

    typer.echo(f"Requisitions ({len(requisitions)}):")
    for requisition in requisitions:
        typer.echo(
            f"  {requisition['number']} {requisition['requisition_id']}: {requisition['status']}"
        )


@requisition_app.command("history")
def requisition_history(
    requisition_id: Annotated[str, typer.Option("--id", help="Requisition id")],
    db: DbOption = None,
) -> None:
    """Show status transitions and comments"""
    flow = get_flow(db)
    with workflow_errors():
        entries = flow.history(requisition_id)

    if not entries:
        typer.echo("No history entries")
        return

    for entry in entries:
        move = (
            entry["new_status"]
            if entry["previous_status"] == entry["new_status"]
            else f"{entry['previous_status']} → {entry['new_status']}"
        )
        comment = f": {entry['comment']}" if entry.get("comment") else ""
        typer.echo(f"  {entry['recorded_at']} [{entry['action']}] {move}{comment}")


# Item commands


@item_app.command("add")
def item_add(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    actor: ActorOption,
    description: Annotated[str, typer.Option("--description", help="Item description")],
    quantity: Annotated[int, typer.Option("--quantity", help="Requested quantity")],
    unit: Annotated[str, typer.Option("--unit", help="Unit of measure")] = "UND",
    part_number: Annotated[
        Optional[str], typer.Option("--part-number", help="Manufacturer part number")
    ] = None,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Add an item to a draft requisition"""
    flow = get_flow(db, users)
    with workflow_errors():
        before = set(flow.get_requisition(requisition_id)["items"])
        requisition = flow.add_item(
            requisition_id, actor, description, quantity, unit=unit, part_number=part_number
        )

    (item_id,) = set(requisition["items"]) - before
    typer.echo(f"✓ Added item: {item_id}")
    typer.echo(f"  {description} x{quantity} {unit}")


@item_app.command("remove")
def item_remove(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    item_id: Annotated[str, typer.Option("--item", help="Item id")],
    actor: ActorOption,
    reason: Annotated[Optional[str], typer.Option("--reason", help="Why it is removed")] = None,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Remove (soft-delete) an item"""
    flow = get_flow(db, users)
    with workflow_errors():
        flow.remove_item(requisition_id, item_id, actor, reason=reason)

    typer.echo(f"✓ Removed item: {item_id}")


@item_app.command("classify")
def item_classify(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    actor: ActorOption,
    items: Annotated[
        str,
        typer.Option(
            "--items",
            help='JSON list: [{"item_id", "classification", "approved_quantity"}]',
        ),
    ],
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Classify items as in stock (EN_STOCK) or requiring purchase (REQUIERE_COMPRA)"""
    flow = get_flow(db, users)
    entries = parse_json(items, "--items")
    with workflow_errors():
        requisition = flow.classify_items(requisition_id, actor, entries)

    typer.echo(f"✓ Classified {len(entries)} item(s)")
    echo_requisition(requisition)


@item_app.command("validate-purchase")
def item_validate_purchase(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    actor: ActorOption,
    decisions: Annotated[
        str,
        typer.Option("--decisions", help='JSON list: [{"item_id", "approved", "reason"}]'),
    ],
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Approve or reject purchases (all-or-nothing)"""
    flow = get_flow(db, users)
    entries = parse_json(decisions, "--decisions")
    with workflow_errors():
        requisition = flow.validate_purchase(requisition_id, actor, entries)

    typer.echo(f"✓ Recorded {len(entries)} purchase decision(s)")
    echo_requisition(requisition)


@item_app.command("confirm-receipt")
def item_confirm_receipt(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    actor: ActorOption,
    item_ids: Annotated[list[str], typer.Option("--item", help="Item id (repeatable)")],
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Confirm purchased items arrived at the warehouse"""
    flow = get_flow(db, users)
    with workflow_errors():
        requisition = flow.confirm_purchase_received(requisition_id, actor, item_ids)

    typer.echo(f"✓ Received {len(item_ids)} purchased item(s)")
    echo_requisition(requisition)


@item_app.command("transition")
def item_transition(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    item_id: Annotated[str, typer.Option("--item", help="Item id")],
    actor: ActorOption,
    to_status: Annotated[str, typer.Option("--to", help="Target item status")],
    reason: Annotated[Optional[str], typer.Option("--reason", help="Why")] = None,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Move an item manually (advance or revert a classification)"""
    flow = get_flow(db, users)
    with workflow_errors():
        requisition = flow.transition_item(requisition_id, item_id, actor, to_status, reason)

    typer.echo(f"✓ Item {item_id} is now {requisition['items'][item_id]['status']}")
    echo_requisition(requisition)


# Lot commands


@lot_app.command("create")
def lot_create(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    actor: ActorOption,
    items: Annotated[
        str,
        typer.Option("--items", help='JSON list: [{"item_id", "quantity"}]'),
    ],
    carrier: Annotated[Optional[str], typer.Option("--carrier", help="Carrier")] = None,
    destination: Annotated[
        Optional[str], typer.Option("--destination", help="Destination")
    ] = None,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Create a shipment for items ready for dispatch"""
    flow = get_flow(db, users)
    entries = parse_json(items, "--items")
    with workflow_errors():
        before = set(flow.get_requisition(requisition_id)["lots"])
        requisition = flow.create_lot(
            requisition_id, actor, entries, carrier=carrier, destination=destination
        )

    (lot_id,) = set(requisition["lots"]) - before
    typer.echo(f"✓ Created lot: {lot_id}")
    typer.echo(f"  Number: {requisition['lots'][lot_id]['number']}")


def _lot_action(
    action: str,
    requisition_id: str,
    lot_id: str,
    actor: str,
    db: Optional[Path],
    users: Optional[Path],
    **kwargs: Any,
) -> None:
    flow = get_flow(db, users)
    with workflow_errors():
        requisition = getattr(flow, action)(requisition_id, lot_id, actor, **kwargs)

    lot = requisition["lots"][lot_id]
    typer.echo(f"✓ Lot {lot['number']} is now {lot['status']}")
    echo_requisition(requisition)


@lot_app.command("prepare")
def lot_prepare(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    lot_id: Annotated[str, typer.Option("--lot", help="Lot id")],
    actor: ActorOption,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Start preparing a lot"""
    _lot_action("prepare_lot", requisition_id, lot_id, actor, db, users)


@lot_app.command("dispatch")
def lot_dispatch(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    lot_id: Annotated[str, typer.Option("--lot", help="Lot id")],
    actor: ActorOption,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Dispatch a lot"""
    _lot_action("dispatch_lot", requisition_id, lot_id, actor, db, users)


@lot_app.command("in-transit")
def lot_in_transit(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    lot_id: Annotated[str, typer.Option("--lot", help="Lot id")],
    actor: ActorOption,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Mark a dispatched lot as in transit"""
    _lot_action("mark_lot_in_transit", requisition_id, lot_id, actor, db, users)


@lot_app.command("cancel")
def lot_cancel(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    lot_id: Annotated[str, typer.Option("--lot", help="Lot id")],
    actor: ActorOption,
    reason: Annotated[Optional[str], typer.Option("--reason", help="Why")] = None,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Cancel a lot that has not left yet"""
    _lot_action("cancel_lot", requisition_id, lot_id, actor, db, users, reason=reason)


@lot_app.command("pickup")
def lot_pickup(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    lot_id: Annotated[str, typer.Option("--lot", help="Lot id")],
    actor: ActorOption,
    date: Annotated[datetime, typer.Option("--date", help="Pickup date")],
    note: Annotated[str, typer.Option("--note", help="Pickup note (at least 10 characters)")],
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Schedule the pickup of a dispatched lot"""
    _lot_action(
        "schedule_pickup", requisition_id, lot_id, actor, db, users, scheduled_for=date, note=note
    )


@lot_app.command("deliver")
def lot_deliver(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    lot_id: Annotated[str, typer.Option("--lot", help="Lot id")],
    actor: ActorOption,
    received: Annotated[
        Optional[str],
        typer.Option("--received", help='JSON object {"<item_id>": quantity}; default: all'),
    ] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Delivery notes")] = None,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Confirm delivery of a lot"""
    quantities = parse_json(received, "--received") if received else None
    _lot_action(
        "confirm_delivery",
        requisition_id,
        lot_id,
        actor,
        db,
        users,
        received=quantities,
        notes=notes,
    )


# Monitoring commands


@app.command()
def permissions(
    requisition_id: Annotated[str, typer.Option("--requisition", help="Requisition id")],
    actor: ActorOption,
    db: DbOption = None,
    users: UsersOption = None,
) -> None:
    """Show what a user may do on a requisition right now"""
    flow = get_flow(db, users)
    with workflow_errors():
        capability_set = flow.permissions(requisition_id, actor)

    granted = sorted(capability.value for capability in capability_set.granted)
    typer.echo(f"Capabilities of {actor}:")
    if not granted:
        typer.echo("  (none)")
    for capability in granted:
        typer.echo(f"  {capability}")


@app.command()
def metrics(
    db: DbOption = None,
    prometheus: Annotated[
        bool,
        typer.Option("--prometheus", help="Print Prometheus exposition format"),
    ] = False,
) -> None:
    """Show requisition counts per status"""
    flow = get_flow(db)

    if prometheus:
        typer.echo(generate_latest(REGISTRY).decode())
        return

    counts = flow.status_counts()
    typer.echo(f"Requisitions: {sum(counts.values())}")
    for status, count in sorted(counts.items()):
        typer.echo(f"  {status}: {count}")
    typer.echo(f"Events: {flow.event_store.count_events()}")


if __name__ == "__main__":
    app()
