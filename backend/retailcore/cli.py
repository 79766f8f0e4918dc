# Overview: Flask CLI command groups for bootstrap and stock inspection.

# backend/retailcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (use "flask db upgrade" for migration-managed databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Idempotent demo data: one merchant, two shops, three items, a 10% promotion.
#
# Stock inspection/receipts:
# - python -m flask stock show --shop-id 1
#   List on-hand quantities for a shop.
# - python -m flask stock in --merchant-id 1 --shop-id 1 --item-id 1 --quantity 10
#   Receive stock (same code path as POST /api/stock/in).

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import InventoryItem, Merchant, Promotion, Shop
from .models.promotions import PROMO_PERCENTAGE
from .services import stock_service


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for demo data.")


@system_group.command('seed-demo')
@click.option('--merchant', 'merchant_name', default='Demo Merchant', help='Merchant name')
@with_appcontext
def seed_demo(merchant_name):
    """Create a demo merchant with shops, items, stock and a promotion (idempotent)."""
    merchant = db.session.query(Merchant).filter_by(name=merchant_name).first()
    if merchant:
        click.echo(f"WARN  Merchant '{merchant_name}' already exists (ID: {merchant.id}), skipping...")
        return

    merchant = Merchant(name=merchant_name, is_active=True)
    db.session.add(merchant)
    db.session.flush()

    main_shop = Shop(merchant_id=merchant.id, name="Main Street")
    kiosk = Shop(merchant_id=merchant.id, name="Station Kiosk")
    db.session.add_all([main_shop, kiosk])

    items = [
        InventoryItem(merchant_id=merchant.id, name="Espresso Beans 250g", sku="BEAN-250",
                      selling_price_cents=500, original_price_cents=350),
        InventoryItem(merchant_id=merchant.id, name="Ceramic Mug", sku="MUG-01",
                      selling_price_cents=1000, original_price_cents=600),
        InventoryItem(merchant_id=merchant.id, name="Paper Filters x100", sku="FLT-100",
                      selling_price_cents=250, original_price_cents=120),
    ]
    db.session.add_all(items)
    db.session.add(Promotion(
        merchant_id=merchant.id,
        name="10% off everything",
        promo_type=PROMO_PERCENTAGE,
        promo_value=1000,
        min_spend_cents=0,
        is_active=True,
    ))
    db.session.commit()

    stock_service.stock_in(
        main_shop.id,
        merchant.id,
        None,
        [(item.id, 20) for item in items],
        reason="Demo opening stock",
    )

    click.echo(f"PASS Created merchant: {merchant.name} (ID: {merchant.id})")
    click.echo(f"PASS Shops: {main_shop.name} (ID: {main_shop.id}), {kiosk.name} (ID: {kiosk.id})")
    for item in items:
        click.echo(f"PASS Item {item.sku}: {item.name} (ID: {item.id}) x20 at {main_shop.name}")


@click.group('stock')
def stock_group():
    """Stock inspection and receipts."""


@stock_group.command('show')
@click.option('--shop-id', type=int, required=True)
@with_appcontext
def show_stock(shop_id):
    """List on-hand quantities for a shop."""
    shop = db.session.query(Shop).filter_by(id=shop_id).first()
    if not shop:
        click.echo(f"FAIL Shop {shop_id} not found")
        raise SystemExit(1)

    rows = stock_service.list_shop_stock(shop.id, shop.merchant_id)
    if not rows:
        click.echo(f"No stock at shop {shop.name} (ID: {shop.id})")
        return

    click.echo(f"Stock at {shop.name} (ID: {shop.id}):")
    for row in rows:
        item = db.session.query(InventoryItem).filter_by(id=row.item_id).first()
        label = f"{item.sku or '-'} {item.name}" if item else f"item {row.item_id}"
        click.echo(f"  {row.item_id:>6}  {label:<40} {row.quantity:>8}")


@stock_group.command('in')
@click.option('--merchant-id', type=int, required=True)
@click.option('--shop-id', type=int, required=True)
@click.option('--item-id', type=int, required=True)
@click.option('--quantity', type=click.IntRange(min=1), required=True)
@click.option('--reason', default=None)
@with_appcontext
def stock_in_command(merchant_id, shop_id, item_id, quantity, reason):
    """Receive stock into a shop."""
    try:
        movements = stock_service.stock_in(
            shop_id, merchant_id, None, [(item_id, quantity)], reason=reason
        )
    except ServiceError as e:
        click.echo(f"FAIL {e} {e.details}")
        raise SystemExit(1)

    movement = movements[0]
    click.echo(f"PASS Item {item_id} at shop {shop_id}: +{quantity}, now {movement.new_quantity}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
