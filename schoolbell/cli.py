# cli.py
"""
Flask CLI commands for the pickup notifier.
"""

import click
from flask import current_app
from flask.cli import with_appcontext

from schoolbell.errors import SchoolbellError
from schoolbell.extensions import db


@click.command("init-db")
@with_appcontext
def init_database():
    """Create all database tables."""
    from schoolbell import models  # noqa: F401

    try:
        db.create_all()
        click.echo("✅ Database tables created.")
    except Exception as e:
        click.echo(f"❌ Database initialization failed: {str(e)}", err=True)
        raise


@click.command("create-user")
@click.option("--name", prompt=True, help="Display name")
@click.option("--email", prompt=True, help="Login email address")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Login password")
@with_appcontext
def create_user(name, email, password):
    """Create an API user that can log in through the /login route."""
    from schoolbell.services.auth_service import AuthService

    try:
        user = AuthService.register_user(name, email, password)
    except SchoolbellError as e:
        click.echo(f"❌ Error: {e.message}", err=True)
        return

    click.echo(f"✅ User '{user.email}' created successfully!")
    click.echo(f"   Name: {user.name}")


@click.command("whatsapp-status")
@with_appcontext
def whatsapp_status_command():
    """Show the WhatsApp session state and stored credentials."""
    supervisor = current_app.extensions['session_supervisor']
    status = supervisor.status()

    click.echo("📱 WhatsApp Session Status:")
    click.echo(f"   State: {status['state']}")
    click.echo(f"   Transport configured: {status['transport_configured']}")
    click.echo(f"   Restart in progress: {status['restart_in_progress']}")
    click.echo(f"   Scheduled restarts: {status['scheduled_restarts']}")
    click.echo(f"   Auth directory: {supervisor.credential_store.auth_dir}")
    click.echo(f"   Stored credentials: {'yes' if supervisor.credential_store.exists() else 'no'}")


@click.command("whatsapp-logout")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@with_appcontext
def whatsapp_logout_command(yes):
    """
    Erase the stored WhatsApp session so the next start shows a new QR code.

    Example usage:
        flask whatsapp-logout --yes
    """
    store = current_app.extensions['session_supervisor'].credential_store

    if not store.exists():
        click.echo("No stored WhatsApp credentials found.")
        return

    if not yes and not click.confirm(f"Erase stored credentials in {store.auth_dir}?"):
        click.echo("Operation cancelled.")
        return

    try:
        store.erase()
    except OSError as e:
        click.echo(f"❌ Error erasing credentials: {str(e)}", err=True)
        raise

    click.echo("✅ Stored WhatsApp credentials erased.")


def register_cli_commands(app):
    """
    Register all CLI commands with the Flask application.

    Args:
        app: Flask application instance
    """
    app.cli.add_command(init_database)
    app.cli.add_command(create_user)
    app.cli.add_command(whatsapp_status_command)
    app.cli.add_command(whatsapp_logout_command)


# # Initialize system
# flask init-db
#
# # Create an API user
# flask create-user --name Admin --email admin@school.mx
#
# # Inspect or reset the WhatsApp session
# flask whatsapp-status
# flask whatsapp-logout --yes
