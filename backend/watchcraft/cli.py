# Overview: Flask CLI command groups for bootstrap, demo data, and maintenance.

# backend/watchcraft/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use `flask db upgrade` for managed schemas).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Load a few items, customers, a sale and a service ticket.
#
# Inventory inspection:
# - python -m flask inventory low-stock [--threshold 2]
#   List live items with 0 < quantity <= threshold.
#
# Customer maintenance:
# - python -m flask customers recompute-all
#   Rebuild every customer's derived summary from sales and services.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Customer, InventoryItem
from .services import customer_service, inventory_service, sales_service, service_lifecycle
from .validation import DomainError

DEMO_ACTOR_ID = 1

DEMO_ITEMS = [
    {"code": "ROL-SUB-01", "type": "Watch", "brand": "Rolex", "model": "Submariner",
     "price_cents": 85_000_00, "quantity": 2, "outlet": "Semmancheri"},
    {"code": "TIT-EDGE-02", "type": "Watch", "brand": "Titan", "model": "Edge",
     "price_cents": 12_500_00, "quantity": 5, "outlet": "Navalur"},
    {"code": "STR-LTH-20", "type": "Strap", "brand": "Hirsch", "model": "Duke", "size": "20mm",
     "price_cents": 2_400_00, "quantity": 10, "outlet": "Padur"},
]

DEMO_CUSTOMERS = [
    {"name": "Arun Kumar", "email": "arun@example.com", "phone": "9876543210"},
    {"name": "Meera Raman", "email": "meera@example.com", "phone": "9123456780"},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables."""
    db.create_all()
    click.echo("PASS Tables created")


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

    click.echo("PASS Database reset complete")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Load demo inventory, customers, one sale and one service ticket (idempotent)."""
    if db.session.query(InventoryItem).count() or db.session.query(Customer).count():
        click.echo("SKIP Database already has data")
        return

    try:
        items = [inventory_service.create_item(data, DEMO_ACTOR_ID) for data in DEMO_ITEMS]
        click.echo(f"PASS Created {len(items)} inventory items")

        customers = [customer_service.create_customer(data, DEMO_ACTOR_ID) for data in DEMO_CUSTOMERS]
        click.echo(f"PASS Created {len(customers)} customers")

        sale = sales_service.create_sale(
            customer_id=customers[0].id,
            inventory_id=items[1].id,
            quantity=1,
            discount={"type": "percentage", "value": 500},
            payment_method="UPI",
            actor_id=DEMO_ACTOR_ID,
        )
        click.echo(f"PASS Recorded sale {sale.id} ({sale.total_amount_cents} cents)")

        service = service_lifecycle.create_service({
            "customer_id": customers[1].id,
            "brand": "Seiko",
            "model": "Presage",
            "dial_color": "Blue",
            "movement_no": "4R35-01",
            "gender": "Female",
            "case_type": "Steel",
            "strap_type": "Leather",
            "issue": "Losing time",
            "cost_cents": 1_500_00,
        }, DEMO_ACTOR_ID)
        click.echo(f"PASS Opened service ticket {service.id}")
    except DomainError as e:
        click.echo(f"FAIL {e} {e.details}")
        raise click.Abort()


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Defaults to LOW_STOCK_THRESHOLD')
@with_appcontext
def low_stock(threshold):
    """List live items running low."""
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]

    items = (
        db.session.query(InventoryItem)
        .filter(
            InventoryItem.is_deleted.is_(False),
            InventoryItem.quantity > 0,
            InventoryItem.quantity <= threshold,
        )
        .order_by(InventoryItem.quantity.asc(), InventoryItem.code.asc())
        .all()
    )
    if not items:
        click.echo("No low-stock items")
        return

    click.echo(f"{'Code':<16} {'Outlet':<12} {'Qty':>4}  Item")
    click.echo("-" * 60)
    for item in items:
        click.echo(f"{item.code:<16} {item.outlet:<12} {item.quantity:>4}  {item.brand} {item.model}")


@click.group('customers')
def customers_group():
    """Customer maintenance commands."""


@customers_group.command('recompute-all')
@with_appcontext
def recompute_all():
    """Rebuild every customer's net value and counters from source rows."""
    repaired = customer_service.recompute_all()
    for entry in repaired:
        click.echo(f"FIX customer {entry['customer_id']}: {entry['before']} -> {entry['after']}")
    click.echo(f"PASS {len(repaired)} customer(s) repaired")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(customers_group)
