# Overview: Flask CLI command groups for bootstrap, ledger verification, and maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin and staff users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username priya --password "Password123!" --role staff
#   Create a user (prompts if options are omitted).
#
# Ledger:
# - python -m flask ledger verify [--product-id 12]
#   Replay the stock ledger and compare against stored stock quantities.
#
# Customers:
# - python -m flask customers reconcile
#   Recompute every customer's purchase totals from their bills.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLES, ROLE_ADMIN, ROLE_STAFF
from .services.auth_service import create_user, PasswordValidationError
from .services import customer_service
from .services import ledger_service
from .validation import BackOfficeError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the back office: schema plus default users.

    Creates:
    - All tables (no-op for tables that already exist)
    - Users: admin (role admin), staff (role staff)
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing back office...")

    db.create_all()
    click.echo("PASS Schema ready")

    click.echo("\nUSERS Creating default users...")
    default_password = "Password123!"
    default_users = [
        ("admin", "Administrator", ROLE_ADMIN),
        ("staff", "Counter Staff", ROLE_STAFF),
    ]

    for username, name, role in default_users:
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username=username, password=default_password, role=role, name=name)
            click.echo(f"PASS Created user: {username} with role '{role}'")
        except BackOfficeError as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{username}': {e.message}")

    click.echo("\n" + "="*60)
    click.echo("DONE Back office initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin -> Password123!")
    click.echo("   staff -> Password123!")
    click.echo("")


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
    click.echo("PASS Database reset. Run 'python -m flask system init' to create users.")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', default=None, help='Display name')
@click.option('--email', default=None, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, name, email, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(username=username, password=password, role=role, name=name, email=email)
        click.echo(f"PASS Created user: {user.username} with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except BackOfficeError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<30} {'Active':<8} {'Role'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {(user.name or ''):<30} {active_str:<8} {user.role}")

    click.echo("="*80 + "\n")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, help='Verify a single product')
@with_appcontext
def verify_ledger(product_id):
    """
    Replay the stock ledger and compare against stored stock quantities.

    Exits with status 1 when any product is inconsistent.
    """
    try:
        results = [ledger_service.verify_product_ledger(product_id)] if product_id else ledger_service.verify_all_products()
    except BackOfficeError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    bad = [r for r in results if not r["consistent"]]
    for r in bad:
        click.echo(
            f"FAIL {r['sku']}: stock={r['stock_quantity']} ledger={r['ledger_quantity']} "
            f"entries={r['entry_count']} broken_links={len(r['broken_links'])}"
        )

    click.echo(f"\nChecked {len(results)} product(s), {len(bad)} inconsistent")
    if bad:
        raise SystemExit(1)
    click.echo("PASS Ledger consistent")


@click.group('customers')
def customers_group():
    """Customer maintenance commands."""


@customers_group.command('reconcile')
@with_appcontext
def reconcile_customers():
    """Recompute purchase totals for every customer from their bill history."""
    changed = customer_service.reconcile_all_customers()
    click.echo(f"PASS Reconciled customers, {changed} updated")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(customers_group)
