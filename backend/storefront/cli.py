# Overview: Flask CLI command groups for bootstrap and catalog seeding.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and one account per staff role.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --email pm@store.local --password "Password123" --role product_manager
#   Create a user (prompts if options are omitted).
#
# Catalog and pricing:
# - python -m flask products add --sku MUG-01 --name "Coffee Mug" --price-cents 1299 --quantity 40
# - python -m flask coupons add --code SPRING10 --rate 10 --min-subtotal-cents 5000

import click
from flask.cli import with_appcontext

from .errors import StorefrontError
from .extensions import db
from .models import Product, User
from .permissions import ALL_ROLES, STAFF_ROLES
from .services import checkout_service, inventory_service
from .services.auth_service import create_user
from .time_utils import parse_iso_datetime


DEFAULT_PASSWORD = "Password123"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the storefront: tables plus one account per staff role.

    Creates:
    - admin@storefront.local, sales_manager@storefront.local,
      product_manager@storefront.local, support_agent@storefront.local
    - All passwords default to: "Password123"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing storefront...")

    db.create_all()
    click.echo("PASS Tables ready")

    for role in STAFF_ROLES:
        email = f"{role}@storefront.local"
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"SKIP {email} already exists")
            continue
        create_user(email, DEFAULT_PASSWORD, first_name=role.replace("_", " ").title(), role=role)
        click.echo(f"PASS Created {role}: {email}")

    click.echo("DONE Default password for seeded accounts: Password123")


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


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ALL_ROLES)), prompt=True, help='Role')
@click.option('--first-name', default='', help='First name')
@click.option('--last-name', default='', help='Last name')
@with_appcontext
def create_user_cli(email, password, role, first_name, last_name):
    """Create a user with the given role."""
    try:
        user = create_user(email, password, first_name=first_name, last_name=last_name, role=role)
    except StorefrontError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@click.group('products')
def products_group():
    """Catalog commands."""


@products_group.command('add')
@click.option('--sku', required=True, help='Unique SKU')
@click.option('--name', required=True, help='Product name')
@click.option('--price-cents', type=int, required=True, help='Unit price in cents')
@click.option('--quantity', type=int, default=0, show_default=True, help='Initial stock')
@click.option('--description', default=None, help='Description')
@with_appcontext
def add_product_cli(sku, name, price_cents, quantity, description):
    """Create a product; initial stock is recorded as an ADJUST movement."""
    if price_cents < 0 or quantity < 0:
        raise click.ClickException("price-cents and quantity must not be negative")
    if db.session.query(Product).filter_by(sku=sku).first():
        raise click.ClickException(f"SKU {sku} already exists")

    product = Product(sku=sku, name=name, description=description, price_cents=price_cents, quantity=0)
    db.session.add(product)
    db.session.commit()

    if quantity:
        inventory_service.adjust_stock(product.id, quantity, actor_user_id=None, note="Initial stock")

    click.echo(f"PASS Created product {product.sku} (ID: {product.id}, stock: {product.quantity})")


@click.group('coupons')
def coupons_group():
    """Coupon commands."""


@coupons_group.command('add')
@click.option('--code', required=True, help='Coupon code (case-insensitive)')
@click.option('--rate', type=int, required=True, help='Percent off (1-100)')
@click.option('--min-subtotal-cents', type=int, default=0, show_default=True, help='Minimum cart subtotal')
@click.option('--expires-at', default=None, help='ISO-8601 expiry, e.g. 2026-06-01T00:00Z')
@with_appcontext
def add_coupon_cli(code, rate, min_subtotal_cents, expires_at):
    """Create a percentage coupon."""
    try:
        coupon = checkout_service.create_coupon(
            code,
            rate,
            min_subtotal_cents=min_subtotal_cents,
            expires_at=parse_iso_datetime(expires_at),
        )
    except ValueError:
        raise click.ClickException("expires-at must be an ISO-8601 datetime")
    except StorefrontError as e:
        raise click.ClickException(f"{e.message}: {', '.join(e.details.get('failed', []))}")

    click.echo(f"PASS Created coupon {coupon.code} ({coupon.discount_rate}% off)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(coupons_group)
