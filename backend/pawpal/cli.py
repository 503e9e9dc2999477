# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/pawpal/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@pawpal.com] [--admin-password "Password123"]
#   Idempotent bootstrap: creates tables and the default admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role client]
#   List users with role and active status.
# - python -m flask users create --first-name Ana --last-name Cruz --email ana@pawpal.com --password "Password123" --role employee
#   Create an account (prompts if options are omitted).
#
# Email:
# - python -m flask email flush [--pending-only] [--limit 100]
#   Retry delivery of queued and failed outbox rows.
#
# Maintenance:
# - python -m flask maintenance cleanup [--session-retention-days 30] [--event-retention-days 90]
#   Delete expired sessions and old security events.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLES
from .services import auth_service, email_service, login_throttle_service, session_service
from .services.auth_service import PasswordValidationError
from .validation import ValidationError


DEFAULT_ADMIN_EMAIL = "admin@pawpal.com"
DEFAULT_ADMIN_PASSWORD = "Password123"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default=DEFAULT_ADMIN_EMAIL, show_default=True, help='Email of the default admin')
@click.option('--admin-password', default=DEFAULT_ADMIN_PASSWORD, help='Password of the default admin')
@with_appcontext
def init_system(admin_email, admin_password):
    """
    Initialize the clinic backend: schema and the default admin account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing Pawpal...")

    db.create_all()
    click.echo("PASS Tables ready")

    try:
        user, created = auth_service.ensure_default_admin(admin_email, admin_password)
    except (PasswordValidationError, ValidationError) as e:
        db.session.rollback()
        click.echo(f"FAIL Could not create admin: {e}")
        return

    if created:
        click.echo(f"PASS Created admin: {user.email}")
    else:
        click.echo(f"PASS Admin already exists: {user.email}")

    click.echo("\nDONE Initialization complete.")


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
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', prompt=True, help='Last name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(first_name, last_name, email, password, role):
    """
    Create a new user interactively.

    Password must be at least 8 characters with a letter and a digit.
    """
    try:
        user = auth_service.create_user(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=password,
            role=role,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, at least one letter and one digit")
        return
    except ValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {user.full_name} ({user.email}) with role '{role}'")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their role."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)

    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<35} {'Active':<8} {'Role'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.full_name:<25} {user.email:<35} {active_str:<8} {user.role}")

    click.echo("="*90 + "\n")


@click.group('email')
def email_group():
    """Outbound email commands."""


@email_group.command('flush')
@click.option('--pending-only', is_flag=True, help='Skip rows that already failed')
@click.option('--limit', type=int, default=100, show_default=True)
@with_appcontext
def flush_email_cli(pending_only, limit):
    """Retry delivery of queued mail (at-least-once)."""
    result = email_service.flush_outbox(include_failed=not pending_only, limit=limit)
    click.echo(f"Attempted {result['attempted']}: {result['sent']} sent, {result['failed']} failed.")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup')
@click.option('--session-retention-days', type=int, default=30, show_default=True)
@click.option('--event-retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_cli(session_retention_days, event_retention_days):
    """Delete expired or revoked sessions and old security events."""
    sessions = session_service.cleanup_expired_sessions(retention_days=session_retention_days)
    events = login_throttle_service.cleanup_security_events(retention_days=event_retention_days)
    click.echo(f"Deleted {sessions} sessions older than {session_retention_days} days.")
    click.echo(f"Deleted {events} security events older than {event_retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(email_group)
    app.cli.add_command(maintenance_group)
