# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/billing/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use `flask db upgrade` for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Business / user bootstrap:
# - python -m flask business create --name "Sharma Traders" --gstin 27ABCDE1234F1Z5
# - python -m flask business list
# - python -m flask users create --business-id 1 --username owner --email owner@example.com --password "Password123!"
# - python -m flask users list [--business-id 1]
#
# Catalog:
# - python -m flask products add --business-id 1 --name "Widget" --price-cents 25000 --stock 10
#
# Maintenance:
# - python -m flask maintenance cleanup-rate-limits
#   Delete sale rate-limit windows that have already ended.
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired/revoked session tokens older than the retention window.

import click
from flask.cli import with_appcontext

from .errors import BillingError
from .extensions import db
from .models import Business, User
from .services import auth_service, products_service, rate_limit_service, session_service
from .services.ledger_service import Actor


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet. Safe to re-run."""
    db.create_all()
    click.echo("PASS Database tables ensured.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask business create' next.")


@click.group('business')
def business_group():
    """Business (tenant) management."""


@business_group.command('create')
@click.option('--name', required=True, help='Business name')
@click.option('--gstin', help='GST identification number')
@click.option('--address', help='Postal address')
@click.option('--phone', help='Contact phone')
@with_appcontext
def create_business_cli(name, gstin, address, phone):
    business = auth_service.create_business(name, gstin=gstin, address=address, phone=phone)
    click.echo(f"PASS Created business: {business.name} (ID: {business.id})")


@business_group.command('list')
@with_appcontext
def list_businesses():
    businesses = db.session.query(Business).order_by(Business.id.asc()).all()
    if not businesses:
        click.echo("No businesses found.")
        return
    for b in businesses:
        active_str = "active" if b.is_active else "inactive"
        click.echo(f"{b.id:<5} {b.name:<40} {b.gstin or '-':<20} {active_str}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--business-id', type=int, help='Business ID (uses the first business if not specified)')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--display-name', help='Name shown in the audit log')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(business_id, username, email, display_name, password):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    if business_id is None:
        business = db.session.query(Business).order_by(Business.id.asc()).first()
        if not business:
            click.echo("FAIL No business found. Run 'python -m flask business create' first.")
            return
        business_id = business.id

    try:
        user = auth_service.create_user(
            username=username,
            email=email,
            password=password,
            business_id=business_id,
            display_name=display_name,
        )
    except auth_service.PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except BillingError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {user.username} ({user.email}) in business {business_id}")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@click.option('--business-id', type=int, help='Filter by business ID')
@with_appcontext
def list_users(business_id):
    query = db.session.query(User)
    if business_id:
        query = query.filter_by(business_id=business_id)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Biz':<5} {'Username':<20} {'Email':<30} {'Active'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.business_id:<5} {user.username:<20} {user.email:<30} {active_str}")
    click.echo("="*80 + "\n")


@click.group('products')
def products_group():
    """Catalog bootstrap."""


@products_group.command('add')
@click.option('--business-id', type=int, required=True)
@click.option('--id', 'product_id', help='Product id (generated if omitted)')
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True)
@click.option('--stock', type=int, default=0, show_default=True, help='Opening stock')
@click.option('--unit', default='pcs', show_default=True)
@click.option('--category', default='General', show_default=True)
@with_appcontext
def add_product_cli(business_id, product_id, name, price_cents, stock, unit, category):
    payload = {
        "name": name,
        "price_cents": price_cents,
        "stock": stock,
        "unit": unit,
        "category": category,
    }
    if product_id:
        payload["id"] = product_id

    try:
        product = products_service.create_product(
            business_id, payload, Actor(user_id=None, business_id=business_id, user_name="cli")
        )
    except BillingError as e:
        click.echo(f"FAIL {str(e)}")
        return
    click.echo(f"PASS Added product {product.name} (ID: {product.id}, stock {product.stock})")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-rate-limits')
@with_appcontext
def cleanup_rate_limits_cli():
    deleted = rate_limit_service.cleanup_expired_windows()
    click.echo(f"Deleted {deleted} expired rate-limit windows.")


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} expired or revoked sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(business_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(maintenance_group)
