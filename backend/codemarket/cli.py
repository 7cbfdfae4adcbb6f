# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/codemarket/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app wsgi <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app wsgi system init
#   Create any missing tables (idempotent).
# - python -m flask --app wsgi system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask --app wsgi users list
#   List all users with role and active status.
# - python -m flask --app wsgi users create --name "Site Admin" --email admin@example.com --password "secret123" --role admin
#   Create a user (prompts if options are omitted).
# - python -m flask --app wsgi users set-role admin@example.com admin
#   Promote or demote an existing user.
#
# Recovery staging:
# - python -m flask --app wsgi recovery list
#   Show staged booking codes and their status.
#
# Sessions:
# - python -m flask --app wsgi sessions cleanup
#   Delete expired and revoked session tokens.

import click
from flask.cli import with_appcontext

from .errors import NotFound, ValidationFailed
from .extensions import db
from .models import RecoveryItem, VALID_ROLES
from .services import auth_service, session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    click.echo("START Initializing CodeMarket database...")
    db.create_all()
    click.echo("PASS Tables ready.")
    click.echo("NEXT Create an admin: python -m flask --app wsgi users create --role admin")


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

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<32} {'Active':<8} {'Role'}")
    click.echo("="*80)
    for user in users:
        click.echo(f"{user.id:<5} {user.name:<25} {user.email:<32} {str(user.is_active):<8} {user.role}")
    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(VALID_ROLES), default='user', show_default=True)
@with_appcontext
def create_user_cmd(name, email, password, role):
    """Create a user."""
    try:
        user = auth_service.create_user(name=name, email=email, password=password, role=role)
    except ValidationFailed as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('set-role')
@click.argument('email')
@click.argument('role', type=click.Choice(VALID_ROLES))
@with_appcontext
def set_role_cmd(email, role):
    """Change a user's role."""
    try:
        user = auth_service.change_role(email, role)
    except NotFound:
        raise click.ClickException(f"User not found: {email}")
    except ValidationFailed as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS {user.email} is now {role}")


@click.group('recovery')
def recovery_group():
    """Recovery staging inspection."""


@recovery_group.command('list')
@with_appcontext
def list_recovery():
    """Show staged booking codes, newest first."""
    items = db.session.query(RecoveryItem).order_by(
        RecoveryItem.created_at.desc(), RecoveryItem.id.desc()
    ).all()

    if not items:
        click.echo("No staged booking codes.")
        return

    click.echo(f"{'ID':<6} {'Status':<10} {'Price':<12} {'Booking code'}")
    for item in items:
        click.echo(f"{item.id:<6} {item.status.value:<10} {item.to_dict()['price']:<12} {item.booking_code}")


@click.group('sessions')
def sessions_group():
    """Session maintenance."""


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions():
    """Delete expired and revoked sessions."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} session(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(recovery_group)
    app.cli.add_command(sessions_group)
