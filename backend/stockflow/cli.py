# Overview: Flask CLI command groups for bootstrap, stocking, and maintenance.

# backend/stockflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init
#   Idempotent bootstrap: one store and an admin, manager and seller user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalogue and stock:
# - python -m flask stores create --name "Downtown" --code DT --tax-rate-bps 2000
# - python -m flask products create --sku SKU-1 --name "Coffee" --price-cents 450
# - python -m flask stock receive --product-id 1 --store-id 1 --quantity 10
#
# Users and sessions:
# - python -m flask users create --username alice --role seller
# - python -m flask users grant-store --user-id 2 --store-id 1
# - python -m flask users token --user-id 2
#   Print a bearer token for API calls (shown once).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Store, User
from .services import session_service
from .services.products_service import ProductError, create_product
from .services.scope_service import ActorScope, Role
from .services.stock_service import stock_product
from .services.store_service import StoreError, create_store, scope_for


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create a default store and one user per role if none exist.

    Users: admin, manager, seller (manager and seller assigned to the store).
    """
    click.echo("START Initializing StockFlow...")

    store = db.session.query(Store).first()
    if not store:
        store = create_store("Main Store", code="MAIN")
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    for username, role in (("admin", "admin"), ("manager", "manager"), ("seller", "seller")):
        user = db.session.query(User).filter_by(username=username).first()
        if user:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        user = session_service.create_user(username=username, role=role)
        if role != "admin":
            session_service.grant_store(user_id=user.id, store_id=store.id)
        click.echo(f"PASS Created user: {username} with role '{role}'")

    click.echo("DONE StockFlow initialized. Use 'flask users token --user-id <id>' for API tokens.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('stores')
def stores_group():
    """Store management commands."""


@stores_group.command('create')
@click.option('--name', required=True, help='Store name')
@click.option('--code', help='Short store code')
@click.option('--tax-rate-bps', type=int, help='Tax rate override in basis points (2000 = 20%)')
@with_appcontext
def create_store_cmd(name, code, tax_rate_bps):
    try:
        store = create_store(name, code=code, tax_rate_bps=tax_rate_bps)
    except StoreError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created store: {store.name} (ID: {store.id})")


@stores_group.command('list')
@with_appcontext
def list_stores_cmd():
    stores = db.session.query(Store).order_by(Store.id.asc()).all()
    if not stores:
        click.echo("No stores found.")
        return
    for store in stores:
        status = "ACTIVE" if store.is_active else "INACTIVE"
        click.echo(f"{store.id:>4}  {store.name:<30} {store.code or '-':<8} {status}")


@click.group('products')
def products_group():
    """Product catalogue commands."""


@products_group.command('create')
@click.option('--sku', required=True, help='Unique SKU')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, help='Current price in cents')
@with_appcontext
def create_product_cmd(sku, name, price_cents):
    try:
        product = create_product(sku=sku, name=name, price_cents=price_cents)
    except ProductError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created product: {product.sku} {product.name} (ID: {product.id})")


@click.group('stock')
def stock_group():
    """Stock receiving commands."""


@stock_group.command('receive')
@click.option('--product-id', type=int, required=True)
@click.option('--store-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--min-threshold', type=int, help='Low-stock threshold (first receipt only)')
@with_appcontext
def receive_stock_cmd(product_id, store_id, quantity, min_threshold):
    # Operator commands act with admin scope.
    scope = scope_for(ActorScope(actor_id=0, role=Role.ADMIN))
    try:
        record = stock_product(
            scope,
            product_id=product_id,
            store_id=store_id,
            quantity=quantity,
            min_threshold=min_threshold,
        )
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Product {product_id} at store {store_id}: quantity now {record.quantity}")


@click.group('users')
def users_group():
    """User, store assignment and token commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', help='Display name')
@click.option('--role', type=click.Choice([r.value for r in Role]), prompt=True, help='Role')
@with_appcontext
def create_user_cmd(username, name, role):
    try:
        user = session_service.create_user(username=username, role=role, name=name)
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {e}")
        return
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


@users_group.command('grant-store')
@click.option('--user-id', type=int, required=True)
@click.option('--store-id', type=int, required=True)
@with_appcontext
def grant_store_cmd(user_id, store_id):
    try:
        session_service.grant_store(user_id=user_id, store_id=store_id)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS User {user_id} assigned to store {store_id}")


@users_group.command('token')
@click.option('--user-id', type=int, required=True)
@with_appcontext
def token_cmd(user_id):
    try:
        token = session_service.issue_token(user_id)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(token)


@users_group.command('list')
@with_appcontext
def list_users_cmd():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        stores = ",".join(str(s) for s in user.to_dict()["store_ids"]) or "-"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<8} stores={stores}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(products_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(users_group)
