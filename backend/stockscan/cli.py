# Overview: Flask CLI command groups for bootstrap, demo data and stock inspection.

# backend/stockscan/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent) and a default store if none exists.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo [--store-id 1]
#   Create demo products with unit codes and seeded inventory.
#
# Stock inspection:
# - python -m flask stock list --store-id 1
#   List inventory counters for a store.
# - python -m flask stock low --store-id 1 [--threshold 6]
#   List products below the low-stock threshold.
# - python -m flask stock device --store-id 1 IMEI-0001
#   Show where a unit code lives (product, sold, debts).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Store
from .services import catalog_service
from .services.catalog_service import CatalogError
from .services.device_service import lookup_device
from .services.persistence import get_repository


DEMO_PRODUCTS = [
    # name, selling price (cents), codes, tags
    ("Phone X", 45_000_00, ["PX-0001", "PX-0002", "PX-0003"], ["128GB", "128GB", "256GB"]),
    ("Phone Y", 38_000_00, ["PY-0001", "PY-0002"], ["64GB", "64GB"]),
    ("Tablet Z", 52_000_00, ["TZ-0001"], [""]),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@click.option('--store-name', default='Main Store', help='Name of the default store')
@with_appcontext
def init_db(store_name):
    """Create tables and a default store (safe to re-run)."""
    db.create_all()
    click.echo("PASS Tables created")

    store = db.session.query(Store).first()
    if not store:
        store = Store(name=store_name, code="MAIN")
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")


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

    current_app.extensions["scan_sessions"].close_all()

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init-db' to initialize.")


@system_group.command('seed-demo')
@click.option('--store-id', type=int, default=None, help='Store to seed (defaults to the first store)')
@with_appcontext
def seed_demo(store_id):
    """Create demo products with unit codes; inventory is seeded from the code count."""
    store = db.session.get(Store, store_id) if store_id else db.session.query(Store).first()
    if not store:
        click.echo("FAIL No store exists. Run: python -m flask system init-db")
        return

    for name, price, codes, tags in DEMO_PRODUCTS:
        try:
            product = catalog_service.create_product(
                store.id, name, selling_price_cents=price, codes=codes, tags=tags,
            )
            click.echo(f"PASS Created {product.name} (ID: {product.id}) with {len(codes)} unit(s)")
        except CatalogError as e:
            click.echo(f"WARN  Skipped {name}: {e}")


@click.group('stock')
def stock_group():
    """Inventory inspection commands."""


@stock_group.command('list')
@click.option('--store-id', type=int, required=True)
@with_appcontext
def list_stock(store_id):
    """List inventory counters for a store."""
    records = get_repository().list_inventory(store_id)
    if not records:
        click.echo("No inventory records found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'Product':<8} {'Name':<30} {'Available':<10} {'Sold'}")
    click.echo("="*70)
    for r in records:
        name = r.product.name if r.product else "-"
        click.echo(f"{r.product_id:<8} {name:<30} {r.available_qty:<10} {r.quantity_sold}")
    click.echo("="*70 + "\n")


@stock_group.command('low')
@click.option('--store-id', type=int, required=True)
@click.option('--threshold', type=int, default=None, help='Defaults to LOW_STOCK_THRESHOLD')
@with_appcontext
def low_stock(store_id, threshold):
    """List products below the low-stock threshold."""
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    records = catalog_service.low_stock(store_id, threshold)
    if not records:
        click.echo(f"PASS No products below {threshold} unit(s)")
        return
    for r in records:
        name = r.product.name if r.product else f"product {r.product_id}"
        click.echo(f"WARN  {name}: {r.available_qty} unit(s) left")


@stock_group.command('device')
@click.option('--store-id', type=int, required=True)
@click.argument('code')
@with_appcontext
def device(store_id, code):
    """Show where a unit code lives."""
    result = lookup_device(store_id, code)
    if not result["found"]:
        click.echo(f"FAIL Code {code!r} not found")
        return

    product = result["product"]
    click.echo(f"Code:    {result['code']}")
    click.echo(f"Product: {product['name'] if product else '-'}")
    click.echo(f"Tag:     {result['tag'] or '-'}")
    click.echo(f"Sold:    {'yes' if result['sold'] else 'no'}")
    for line in result["sales"]:
        click.echo(f"  sale line {line['id']} ({line['sold_at']}, {line['payment_method']})")
    for debt in result["debts"]:
        click.echo(f"  debt {debt['id']} ({debt['customer_name']}, remaining {debt['remaining_balance_cents']})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
