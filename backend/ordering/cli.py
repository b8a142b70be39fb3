# Overview: Flask CLI commands for bootstrap, demo data, restocking and order inspection.

# backend/ordering/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask ordering <command> [options]
#
# - python -m flask ordering init-db [--reset --yes]
#   Create all tables (--reset drops them first; deletes all data).
# - python -m flask ordering create-org --name "Acme Corp" --code ACME
#   Create a new organization (tenant).
# - python -m flask ordering seed-demo [--org-code DEMO]
#   Idempotent demo organization with two stores, four products and stock.
# - python -m flask ordering restock --org DEMO --store 1 --product 2 --packs 10
#   Add packs to a store's stock.
# - python -m flask ordering orders --org DEMO [--status approval_pending]
#   List recent orders.

import click
from flask.cli import with_appcontext

from .errors import OrderingError
from .extensions import db
from .models import Organization, Product, Store
from .services import allocation_service, order_service, stock_ledger_service, store_service
from .validation import ValidationError


@click.group('ordering')
def ordering_group():
    """Ordering core bootstrap and inspection commands."""


@ordering_group.command('init-db')
@click.option('--reset', is_flag=True, help='Drop all tables first')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def init_db(reset, yes):
    """Create the schema (optionally dropping it first)."""
    if reset:
        if not yes:
            click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
        click.echo("DELETE  Dropping all tables...")
        db.drop_all()
    db.create_all()
    click.echo("PASS Schema ready")


@ordering_group.command('create-org')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique, used in API paths)')
@with_appcontext
def create_org(name, code):
    """Create a new organization (tenant)."""
    if db.session.query(Organization).filter_by(code=code).first():
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return
    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


DEMO_PRODUCTS = [
    # sku, name, price_cents, pack_quantity
    ("TONER-S", "Toner cartridge (standard)", 4500, 1),
    ("TONER-XL", "Toner cartridge (XL)", 7200, 1),
    ("PAPER-A4", "Copy paper A4", 2599, 5),
    ("PAPER-A3", "Copy paper A3", 3899, 5),
]


@ordering_group.command('seed-demo')
@click.option('--org-code', default='DEMO', help='Organization code')
@with_appcontext
def seed_demo(org_code):
    """Create (or reuse) a demo organization with stores, products, allocations and stock."""
    db.create_all()

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if org is None:
        org = Organization(name="Demo Organization", code=org_code, is_active=True)
        db.session.add(org)
        db.session.flush()
        click.echo(f"PASS Created organization: {org.name} (Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    stores = []
    for code, name in (("NORTH", "North Agency"), ("SOUTH", "South Agency")):
        store = db.session.query(Store).filter_by(org_id=org.id, code=code).first()
        if store is None:
            store = Store(org_id=org.id, name=name, code=code)
            db.session.add(store)
        stores.append(store)

    products = []
    for sku, name, price_cents, pack_quantity in DEMO_PRODUCTS:
        product = db.session.query(Product).filter_by(org_id=org.id, sku=sku).first()
        if product is None:
            product = Product(
                org_id=org.id, sku=sku, name=name,
                price_cents=price_cents, pack_quantity=pack_quantity,
            )
            db.session.add(product)
        products.append(product)
    db.session.commit()

    allocation_service.allocate(org.id, [p.id for p in products], [s.id for s in stores])
    allocation_service.link_variants(org.id, products[0].id, [products[1].id])
    allocation_service.link_variants(org.id, products[2].id, [products[3].id])

    for store in stores:
        for product in products:
            if stock_ledger_service.get_available_packs(product.id, store.id) == 0:
                stock_ledger_service.restock(
                    product_id=product.id, store_id=store.id, packs=20, reference="seed-demo",
                )

    click.echo(f"PASS Seeded {len(stores)} store(s) and {len(products)} product(s)")
    for store in stores:
        click.echo(f"   Store {store.id}: {store.name}  -> /api/{org.code}/stores/{store.id}/catalog")


@ordering_group.command('restock')
@click.option('--org', 'org_code', required=True, help='Organization code')
@click.option('--store', 'store_id', required=True, type=int, help='Store ID')
@click.option('--product', 'product_id', required=True, type=int, help='Product ID')
@click.option('--packs', required=True, type=int, help='Packs to add')
@with_appcontext
def restock(org_code, store_id, product_id, packs):
    """Add packs to a store's stock."""
    try:
        org = store_service.get_active_org(org_code)
        store_service.get_store(org.id, store_id)
        store_service.get_product(org.id, product_id)
        stock_ledger_service.restock(
            product_id=product_id, store_id=store_id, packs=packs, reference="cli",
        )
    except (OrderingError, ValidationError) as exc:
        click.echo(f"FAIL {exc}")
        return
    level = stock_ledger_service.get_stock_level(product_id, store_id)
    click.echo(
        f"PASS Product {product_id} at store {store_id}: "
        f"{level['available_packs']} available / {level['total_packs']} total"
    )


@ordering_group.command('orders')
@click.option('--org', 'org_code', required=True, help='Organization code')
@click.option('--status', default=None, help='Filter by status')
@click.option('--limit', default=50, show_default=True, type=int)
@with_appcontext
def list_orders(org_code, status, limit):
    """List recent orders."""
    try:
        org = store_service.get_active_org(org_code)
        orders = order_service.list_orders(org.id, status=status, limit=limit)
    except (OrderingError, ValidationError) as exc:
        click.echo(f"FAIL {exc}")
        return

    if not orders:
        click.echo("No orders found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<6} {'Store':<7} {'Status':<18} {'Total':>12} {'Created'}")
    click.echo("="*72)
    for order in orders:
        total = f"{order.total_amount_cents / 100:.2f}"
        click.echo(
            f"{order.id:<6} {order.store_id:<7} {order.status:<18} {total:>12} "
            f"{order.created_at:%Y-%m-%d %H:%M}"
        )
    click.echo("="*72 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ordering_group)
