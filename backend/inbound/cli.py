# Overview: Flask CLI command groups for bootstrap, tag provisioning, and inspection.

# backend/inbound/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (development; use `flask db upgrade` elsewhere).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Idempotent demo master data: items, one PO with two lines, a location, a user.
# - python -m flask system prune-locks [--older-than-hours 24]
#   Delete stale scope_locks rows left by non-PostgreSQL stores.
#
# Tag provisioning:
# - python -m flask tags register --po PO-1001 --lot LOT-A --item ITEM-A --qty 10 [--code ABC123]
# - python -m flask tags list [--po PO-1001]
#
# Purchase orders:
# - python -m flask po status PO-1001
# - python -m flask po recompute PO-1001
#
# Presence:
# - python -m flask presence current

from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Item, PurchaseOrder, PurchaseOrderLine, Location, User
from .services import fulfillment_service, presence_service, tag_service
from .services.broadcast_service import CHANNEL_STATUS, safe_publish, status_payload
from .services.concurrency import prune_scope_locks
from .validation import ConflictError, NotFoundError, ValidationError
from .time_utils import utcnow, to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create demo master data (skips anything that already exists)."""
    items = [
        ("ITEM-A", "Widget A", "EA"),
        ("ITEM-B", "Widget B", "EA"),
    ]
    for item_number, description, uom in items:
        if not db.session.query(Item).filter_by(item_number=item_number).first():
            db.session.add(Item(item_number=item_number, item_description=description, uom=uom))
            click.echo(f"PASS Created item {item_number}")

    location = db.session.query(Location).filter_by(location_code="DOCK-1").first()
    if not location:
        location = Location(location_code="DOCK-1", location_name="Receiving Dock 1", device_id="READER-01")
        db.session.add(location)
        click.echo("PASS Created location DOCK-1 (reader READER-01)")
    db.session.flush()

    if not db.session.query(User).filter_by(username="receiver").first():
        db.session.add(User(name="Dock Receiver", username="receiver", location_id=location.id))
        click.echo("PASS Created user 'receiver'")

    po = db.session.query(PurchaseOrder).filter_by(po_number="PO-1001").first()
    if not po:
        po = PurchaseOrder(po_number="PO-1001", supplier_name="Demo Supplier")
        po.lines = [
            PurchaseOrderLine(item_number="ITEM-A", quantity=10),
            PurchaseOrderLine(item_number="ITEM-B", quantity=5),
        ]
        db.session.add(po)
        click.echo("PASS Created purchase order PO-1001 (ITEM-A x10, ITEM-B x5)")

    db.session.commit()
    click.echo("DONE Demo data ready.")


@system_group.command('prune-locks')
@click.option('--older-than-hours', default=24, show_default=True, type=int, help='Age of lock rows to delete')
@with_appcontext
def prune_locks(older_than_hours):
    """Delete stale scope_locks rows (stores without advisory locks)."""
    cutoff = utcnow() - timedelta(hours=older_than_hours)
    deleted = prune_scope_locks(cutoff)
    click.echo(f"PASS Pruned {deleted} lock row(s) older than {older_than_hours}h")


@click.group('tags')
def tags_group():
    """Tag code provisioning."""


@tags_group.command('register')
@click.option('--po', 'po_number', required=True, help='Purchase order number')
@click.option('--lot', 'lot_no', required=True, help='Lot number')
@click.option('--item', 'item_number', required=True, help='Item number')
@click.option('--qty', 'quantity', required=True, type=int, help='Units the tag stands for')
@click.option('--uom', default=None, help='Unit of measure')
@click.option('--code', default=None, help='Explicit tag code (generated when omitted)')
@with_appcontext
def register_tag(po_number, lot_no, item_number, quantity, uom, code):
    """Register a tag code against a purchase order line."""
    try:
        registration = tag_service.register_tag(
            po_number=po_number,
            lot_no=lot_no,
            item_number=item_number,
            quantity=quantity,
            uom=uom,
            code=code,
        )
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Registered {registration.code} -> {po_number}/{item_number} x{quantity} (lot {lot_no})")


@tags_group.command('list')
@click.option('--po', 'po_number', default=None, help='Filter by purchase order')
@with_appcontext
def list_tags(po_number):
    """List tag registrations."""
    registrations = tag_service.list_registrations(po_number)

    if not registrations:
        click.echo("No tag registrations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Code':<20} {'PO':<15} {'Item':<15} {'Lot':<15} {'Qty'}")
    click.echo("="*80)
    for r in registrations:
        click.echo(f"{r.code:<20} {r.po_number:<15} {r.item_number:<15} {r.lot_no:<15} {r.quantity}")
    click.echo("="*80 + "\n")


@click.group('po')
def po_group():
    """Purchase order status inspection and repair."""


@po_group.command('status')
@click.argument('po_number')
@with_appcontext
def po_status(po_number):
    """Show status and per-line receipts for a purchase order."""
    try:
        summary = fulfillment_service.status_summary(po_number)
    except NotFoundError as e:
        raise click.ClickException(str(e))

    click.echo(f"\n{summary['po_number']}: {summary['status']}"
               f" ({summary['total_received_quantity']}/{summary['total_ordered_quantity']} received)")
    for line in summary["lines"]:
        click.echo(f"  {line['item_number']:<15} ordered {line['ordered_quantity']:<6}"
                   f" received {line['received_quantity']:<6} remaining {line['remaining_quantity']}")
    click.echo("")


@po_group.command('recompute')
@click.argument('po_number')
@with_appcontext
def po_recompute(po_number):
    """Re-derive a purchase order's status from its receipt ledger."""
    now = utcnow()
    try:
        result = fulfillment_service.recompute(po_number, now=now)
        db.session.commit()
    except NotFoundError as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    if result.changed:
        safe_publish(
            current_app.extensions["event_publisher"],
            CHANNEL_STATUS,
            status_payload(result, timestamp=now),
            current_app.logger,
        )
        click.echo(f"PASS {po_number}: {result.previous_status} -> {result.status}")
    else:
        click.echo(f"PASS {po_number}: unchanged ({result.status})")


@click.group('presence')
def presence_group():
    """Presence tracker inspection."""


@presence_group.command('current')
@with_appcontext
def presence_current():
    """Latest presence state per tag."""
    rows = presence_service.current_statuses()

    if not rows:
        click.echo("No tags tracked yet.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'EPC':<26} {'Status':<8} {'Location':<25} {'Seen at'}")
    click.echo("="*80)
    for row in rows:
        click.echo(f"{row.epc:<26} {row.status:<8} {row.location_name or '-':<25} {to_utc_z(row.seen_at)}")
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tags_group)
    app.cli.add_command(po_group)
    app.cli.add_command(presence_group)
