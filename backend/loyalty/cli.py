# Overview: Flask CLI command groups for bootstrap and point ledger operations.

# backend/loyalty/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to loyalty (PowerShell: $env:FLASK_APP="loyalty").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--create-tables] [--admin-username admin --admin-email admin@loyalty.local --admin-password "Password123!"]
#   Idempotent bootstrap: default roles, optional admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username staff1 --email staff1@loyalty.local --password "Password123!" --role staff
#
# Points:
# - python -m flask points expire [--now 2026-01-01T00:00:00Z]
#   Run the expiration batch once (what the cron endpoint does). Exit code 1 if any lot failed.
# - python -m flask points balance --customer-id 1
# - python -m flask points adjust --customer-id 1 --amount -200 --reason "Duplicate grant"

import click
from flask.cli import with_appcontext

from .extensions import db
from .services.auth_service import (
    DEFAULT_ROLES,
    create_user,
    create_default_roles,
    assign_role,
    PasswordValidationError,
)
from .services import point_ledger_service, point_expiration_service
from .services.point_ledger_service import PointLedgerError
from .time_utils import parse_iso_datetime


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--create-tables', is_flag=True, help='Create missing tables without running migrations')
@click.option('--admin-username', help='Create an admin user with this username')
@click.option('--admin-email', help='Admin email (required with --admin-username)')
@click.option('--admin-password', help='Admin password (required with --admin-username)')
@with_appcontext
def init_system(create_tables, admin_username, admin_email, admin_password):
    """
    Initialize the point ledger service: roles and optional admin user.

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing loyalty point service...")

    if create_tables:
        db.create_all()
        click.echo("PASS Tables created")

    create_default_roles()
    click.echo(f"PASS Roles ready: {', '.join(name for name, _ in DEFAULT_ROLES)}")

    if admin_username:
        if not admin_email or not admin_password:
            click.echo("FAIL --admin-email and --admin-password are required with --admin-username")
            return
        try:
            user = create_user(username=admin_username, email=admin_email, password=admin_password)
            assign_role(user.id, "admin")
            click.echo(f"PASS Created admin user: {admin_username}")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed: {str(e)}")
        except ValueError as e:
            click.echo(f"SKIP Admin user not created: {str(e)}")

    click.echo("DONE Initialization complete")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the point ledger audit trail!
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
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([name for name, _ in DEFAULT_ROLES]), prompt=True, help='Role')
@click.option('--customer-id', type=int, help='Link a customer account to this user')
@with_appcontext
def create_user_cli(username, email, password, role, customer_id):
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
        user = create_user(username=username, email=email, password=password, customer_id=customer_id)
        assign_role(user.id, role)
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")

    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@click.group('points')
def points_group():
    """Customer point ledger commands."""


@points_group.command('expire')
@click.option('--now', 'now_raw', help='Evaluate eligibility as of this ISO-8601 time (default: now)')
@with_appcontext
def expire_points_cli(now_raw):
    """Run the point expiration batch once."""
    try:
        now = parse_iso_datetime(now_raw)
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 datetime", param_hint="--now")

    result = point_expiration_service.run_expiration(now)

    click.echo(f"PASS Expired lots: {result.processed_count}")
    if result.error_count:
        click.echo(f"FAIL Lots with errors: {result.error_count}")
        for error in result.errors:
            click.echo(f"     customer {error['customer_id']}: {error['reason']}")
        raise click.exceptions.Exit(1)


@points_group.command('balance')
@click.option('--customer-id', type=int, required=True, help='Customer ID')
@with_appcontext
def balance_cli(customer_id):
    """Show a customer's point balance."""
    try:
        balance = point_ledger_service.get_balance(customer_id)
    except PointLedgerError as e:
        click.echo(f"FAIL {str(e)}")
        return
    click.echo(f"Customer {customer_id}: {balance} pt")


@points_group.command('adjust')
@click.option('--customer-id', type=int, required=True, help='Customer ID')
@click.option('--amount', type=int, required=True, help='Signed number of points')
@click.option('--reason', required=True, help='Reason recorded in the ledger')
@with_appcontext
def adjust_cli(customer_id, amount, reason):
    """Record a manual adjustment."""
    try:
        entry = point_ledger_service.adjust_points(customer_id, amount, reason)
    except PointLedgerError as e:
        click.echo(f"FAIL {str(e)}")
        return
    click.echo(f"PASS Adjusted customer {customer_id} by {amount} pt (balance {entry.balance_snapshot} pt)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(points_group)
