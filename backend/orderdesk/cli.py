# Overview: Flask CLI command groups for seeding, inspection, and maintenance.

# backend/orderdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to orderdesk (PowerShell: $env:FLASK_APP="orderdesk").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog seed
#   Idempotent demo data: brands, categories, products, customers.
#
# Inventory:
# - python -m flask inventory low-stock
#   Print rows that are low or out of stock.
#
# Invoices:
# - python -m flask invoices mark-overdue [--as-of 2026-11-30T00:00:00Z]
#   Move sent invoices past their due date to overdue.

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Brand, Category, Customer, Product
from .services import inventory_service, invoice_service
from .time_utils import parse_iso_datetime, to_utc_z


DEMO_BRANDS = ("Glow Lab", "Velvet Co")
DEMO_CATEGORIES = ("Lips", "Face")
DEMO_PRODUCTS = (
    # sku, name, base price, brand, category
    ("GL-LIP-001", "Satin Lipstick", "15.00", "Glow Lab", "Lips"),
    ("GL-LIP-002", "Lip Gloss", "10.00", "Glow Lab", "Lips"),
    ("VC-FACE-001", "Matte Foundation", "32.50", "Velvet Co", "Face"),
    ("VC-FACE-002", "Setting Powder", "18.00", "Velvet Co", "Face"),
)
DEMO_CUSTOMERS = (
    ("Ada", "Obi", "ada@example.com", "@ada.glam"),
    ("Tunde", "Bello", "tunde@example.com", None),
)


@click.group('system')
def system_group():
    """System maintenance commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask catalog seed' for demo data.")


@click.group('catalog')
def catalog_group():
    """Catalog bootstrap commands."""


def _get_or_create(model, **fields):
    row = model.query.filter_by(**fields).first()
    if row is None:
        row = model(**fields)
        db.session.add(row)
        db.session.flush()
        return row, True
    return row, False


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Create demo brands, categories, products and customers (idempotent)."""
    brands = {name: _get_or_create(Brand, name=name)[0] for name in DEMO_BRANDS}
    categories = {name: _get_or_create(Category, name=name)[0] for name in DEMO_CATEGORIES}

    created = 0
    for sku, name, price, brand, category in DEMO_PRODUCTS:
        if Product.query.filter_by(sku=sku).first() is not None:
            continue
        db.session.add(Product(
            sku=sku,
            name=name,
            base_price=Decimal(price),
            brand_id=brands[brand].id,
            category_id=categories[category].id,
        ))
        created += 1

    for first_name, last_name, email, handle in DEMO_CUSTOMERS:
        if Customer.query.filter_by(email=email).first() is not None:
            continue
        db.session.add(Customer(
            first_name=first_name,
            last_name=last_name,
            email=email,
            instagram_handle=handle,
        ))
        created += 1

    db.session.commit()
    click.echo(f"PASS Catalog seeded ({created} new rows)")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    """List inventory rows that are low or out of stock."""
    items, total = inventory_service.list_inventory(low_stock_only=True, out_of_stock_only=True, limit=1000)
    if not total:
        click.echo("PASS No low or out-of-stock items")
        return

    click.echo(f"{'SKU':<24} {'Product':<32} {'Stock':>6} {'Min':>6}  Status")
    for item in items:
        name = item.product.name if item.product else "-"
        click.echo(
            f"{item.sku:<24} {name[:32]:<32} {item.current_stock:>6} {item.minimum_stock:>6}  {item.stock_status}"
        )
    click.echo(f"\n{total} item(s) need restocking")


@click.group('invoices')
def invoices_group():
    """Invoice maintenance commands."""


@invoices_group.command('mark-overdue')
@click.option('--as-of', 'as_of', default=None, help='ISO-8601 cutoff (default: now, UTC)')
@with_appcontext
def mark_overdue(as_of):
    """Move sent invoices past their due date to overdue."""
    try:
        cutoff = parse_iso_datetime(as_of) if as_of else None
    except ValueError:
        raise click.BadParameter(f"'{as_of}' is not an ISO-8601 datetime", param_hint="--as-of")

    invoices = invoice_service.mark_overdue_invoices(cutoff)
    for invoice in invoices:
        click.echo(f"OVERDUE {invoice.invoice_number} (due {to_utc_z(invoice.due_date)})")
    click.echo(f"PASS {len(invoices)} invoice(s) marked overdue")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(invoices_group)
