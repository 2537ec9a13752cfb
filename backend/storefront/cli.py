# Overview: Flask CLI command groups for bootstrap, catalog loading, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (development; production uses `flask db upgrade`).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system issue-token --user-id 7 --email ana@example.com [--staff]
#   Sign an identity token for local testing of the API.
#
# Catalog:
# - python -m flask products import catalog.json
#   Upsert products from a legacy JSON export (SellingPrice/Price spellings accepted).
# - python -m flask products set-stock 12 40
#   Absolute stock override for one product.
#
# Maintenance:
# - python -m flask maintenance sweep-reservations
#   Mark stock reservations past their expiry as expired.
# - python -m flask maintenance purge-order 42 --yes
#   Remove an order from every collection (audit trail is kept).

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import catalog_service, identity_service, maintenance_service, stock_service
from .validation import StorefrontError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask products import <file>' to load the catalog.")


@system_group.command('issue-token')
@click.option('--user-id', default=None, help='Identity provider user id')
@click.option('--email', default=None, help='Customer email')
@click.option('--full-name', default=None, help='Display name')
@click.option('--staff', is_flag=True, help='Issue a staff identity')
@with_appcontext
def issue_token(user_id, email, full_name, staff):
    """Sign an identity token (stand-in for the identity provider)."""
    try:
        token = identity_service.issue_token(user_id=user_id, email=email, full_name=full_name, is_staff=staff)
    except ValueError as e:
        raise click.UsageError(str(e))
    click.echo(token)


@click.group('products')
def products_group():
    """Catalog and stock commands."""


@products_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_products(path):
    """
    Import a JSON catalog export (a list of product objects, or {"products": [...]}).
    """
    with open(path, encoding="utf-8") as fh:
        payload = json.load(fh)
    records = payload.get("products", []) if isinstance(payload, dict) else payload
    if not isinstance(records, list):
        raise click.UsageError("Catalog file must contain a list of products")

    result = catalog_service.import_products(records)
    click.echo(
        f"PASS Imported catalog: {result['created']} created, "
        f"{result['updated']} updated, {result['skipped']} skipped"
    )


@products_group.command('set-stock')
@click.argument('product_id', type=int)
@click.argument('quantity', type=int)
@with_appcontext
def set_stock(product_id, quantity):
    """Set a product's stock to an absolute quantity."""
    try:
        product = stock_service.set_stock(product_id, quantity)
    except StorefrontError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS {product.name} (ID: {product.id}) stock is now {product.stock_quantity}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('sweep-reservations')
@with_appcontext
def sweep_reservations():
    """Expire stock reservations past their expiry time."""
    swept = maintenance_service.sweep_expired_reservations()
    click.echo(f"Expired {swept} stock reservation(s).")


@maintenance_group.command('purge-order')
@click.argument('order_id', type=int)
@click.option('--yes', is_flag=True, help='Skip confirmation')
@click.option('--actor', default='cli', show_default=True, help='Recorded on the audit event')
@with_appcontext
def purge_order(order_id, yes, actor):
    """
    DANGER: Remove an order from whatever collection holds it.

    Stock is not restored. The audit trail keeps a snapshot.
    """
    if not yes:
        click.confirm(f"WARN This will permanently remove order {order_id}. Are you sure?", abort=True)
    try:
        summary = maintenance_service.purge_order(order_id, actor=actor)
    except StorefrontError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Purged order {summary['orderNumber']} from {summary['collection']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(maintenance_group)
