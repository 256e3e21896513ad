"""Typer CLI for EventDesk."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

from sqlalchemy.exc import OperationalError
import typer
import uvicorn

from .config import (
    MAIL_BACKENDS,
    load_settings,
    settings,
    settings_as_dict,
    update_config_file,
)
from .crud import create_user, get_user_by_email, set_admin
from .database import get_session
from .scheduler import start_scheduler, stop_scheduler
from .seed import SEED_PASSWORD, seed_fake_data
from .storage import init_db, upgrade_database, vacuum_database

app = typer.Typer(help="EventDesk command-line interface")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _fail(message: str) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _is_readonly(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return "readonly" in message or "read-only" in message


@app.command("upgrade-db")
def upgrade_db(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip creating a .bak copy of the database before upgrading",
    ),
) -> None:
    """Upgrade the SQLite database schema if needed."""
    try:
        actions = upgrade_database(make_backup=not no_backup)
    except OperationalError as exc:
        if _is_readonly(exc):
            _fail(
                "Unable to upgrade because the database is read-only. "
                f"Ensure write access to {settings.database_path}."
            )
        raise

    if not actions:
        typer.echo("Database already up to date.")
        return

    typer.echo("Database upgrade complete:")
    for action in actions:
        typer.echo(f"- {action}")


@app.command("create-user")
def create_user_command(
    email: str = typer.Argument(..., help="Email address used to sign in"),
    name: str | None = typer.Option(None, "--name", help="Display name"),
    admin: bool = typer.Option(False, "--admin", help="Grant admin rights"),
    password: str = typer.Option(
        ...,
        "--password",
        prompt=True,
        hide_input=True,
        confirmation_prompt=True,
        help="Password for the new account",
    ),
) -> None:
    """Create an organizer or admin account."""
    init_db()
    try:
        with get_session() as session:
            user = create_user(
                session, email=email, password=password, name=name, admin=admin
            )
            user_id = user.id
    except ValueError as exc:
        _fail(str(exc))
    role = "admin" if admin else "user"
    typer.echo(f"Created {role} {email.strip().lower()} ({user_id})")


@app.command("promote")
def promote(
    email: str = typer.Argument(..., help="Email of the account to change"),
    revoke: bool = typer.Option(False, "--revoke", help="Remove admin rights instead"),
) -> None:
    """Grant or revoke admin rights for an existing account."""
    init_db()
    with get_session() as session:
        user = get_user_by_email(session, email)
        if not user:
            _fail(f"No user with email {email}")
        set_admin(session, user, not revoke)
    verb = "Revoked admin rights from" if revoke else "Granted admin rights to"
    typer.echo(f"{verb} {email.strip().lower()}")


@app.command("vacuum")
def vacuum() -> None:
    """Run SQLite VACUUM now."""
    init_db()
    vacuum_database()
    typer.echo("Database vacuum complete.")


@app.command("runserver")
def runserver(
    host: str = typer.Option(settings.app_host, "--host", help="Host to bind"),
    port: int = typer.Option(settings.app_port, "--port", help="Port to bind"),
):
    """Start FastAPI with APScheduler."""
    init_db()
    start_scheduler()
    config = uvicorn.Config(
        "eventdesk.api:app",
        host=host,
        port=port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    server = uvicorn.Server(config)
    try:
        typer.echo(f"Starting EventDesk on {host}:{port}")
        server.run()
    finally:
        stop_scheduler()


@app.command("seed-data")
def seed_data(
    users: int = typer.Option(
        settings.seed_users, "--users", min=1, help="Number of organizers to create"
    ),
    events: int = typer.Option(
        settings.seed_events, "--events", min=0, help="Number of events to create"
    ),
    approved_percent: int = typer.Option(
        70,
        "--approved-percent",
        min=0,
        max=100,
        help="Percentage of events that start out approved (0-100)",
    ),
):
    """Populate the database with fake organizers and events for testing."""
    stats = seed_fake_data(
        user_count=users,
        event_count=events,
        approved_percentage=approved_percent,
    )
    typer.echo(
        f"Seed complete: {stats['users']} organizers, {stats['events']} events "
        f"({stats['approved']} approved). Seeded accounts use the password "
        f"'{SEED_PASSWORD}'."
    )


@app.command("config")
def configure(
    show: bool = typer.Option(
        False, "--show", help="Show the current effective configuration"
    ),
    admin_email: str | None = typer.Option(
        None, "--admin-email", help="Address notified about new submissions"
    ),
    mail_from: str | None = typer.Option(
        None, "--mail-from", help="Sender used for outgoing mail"
    ),
    mail_backend: str | None = typer.Option(
        None, "--mail-backend", help="console, smtp or memory"
    ),
    smtp_host: str | None = typer.Option(None, "--smtp-host", help="SMTP server"),
    smtp_port: int | None = typer.Option(None, "--smtp-port", min=1, help="SMTP port"),
    smtp_username: str | None = typer.Option(
        None, "--smtp-username", help="SMTP login"
    ),
    smtp_use_tls: bool | None = typer.Option(
        None, "--smtp-tls/--no-smtp-tls", help="Use STARTTLS for SMTP"
    ),
    vacuum_hours: int | None = typer.Option(
        None, "--vacuum-hours", min=1, help="Hours between SQLite VACUUM runs"
    ),
    host: str | None = typer.Option(None, "--host", help="Default host for runserver"),
    port: int | None = typer.Option(None, "--port", help="Default port for runserver"),
    config_path: Path | None = typer.Option(
        None, "--config-path", help="Path to eventdesk.toml (default: ./eventdesk.toml)"
    ),
    admin_events_per_page: int | None = typer.Option(
        None, "--admin-events-per-page", min=1, help="Admin pagination size"
    ),
    seed_users: int | None = typer.Option(
        None, "--seed-users", min=1, help="Default seed-data organizers"
    ),
    seed_events: int | None = typer.Option(
        None, "--seed-events", min=0, help="Default seed-data events"
    ),
    enable_scheduler: bool | None = typer.Option(
        None,
        "--enable-scheduler/--disable-scheduler",
        help="Toggle the background VACUUM job",
    ),
):
    """View or update the persistent configuration file."""

    updates = {
        "admin_email": admin_email,
        "mail_from": mail_from,
        "mail_backend": mail_backend,
        "smtp_host": smtp_host,
        "smtp_port": smtp_port,
        "smtp_username": smtp_username,
        "smtp_use_tls": smtp_use_tls,
        "sqlite_vacuum_hours": vacuum_hours,
        "app_host": host,
        "app_port": port,
        "admin_events_per_page": admin_events_per_page,
        "seed_users": seed_users,
        "seed_events": seed_events,
        "enable_scheduler": enable_scheduler,
    }
    clean_updates = {k: v for k, v in updates.items() if v is not None}
    if "mail_backend" in clean_updates and clean_updates["mail_backend"] not in MAIL_BACKENDS:
        _fail(f"--mail-backend must be one of: {', '.join(sorted(MAIL_BACKENDS))}")

    target_path = config_path or settings.config_path
    if clean_updates:
        settings_ref = update_config_file(clean_updates, path=target_path)
        typer.echo(f"Updated configuration in {target_path}")
    else:
        settings_ref = load_settings(target_path)
    if show or not clean_updates:
        effective = settings_as_dict(settings_ref)
        effective["config_path"] = str(target_path)
        typer.echo(json.dumps(effective, indent=2))


@app.command("test")
def run_tests(pytest_args: list[str] = typer.Argument(None, help="Extra pytest args")):
    """Run the test suite with helpful defaults."""
    env = os.environ.copy()
    env.setdefault("PYTHONPATH", ".")
    env.setdefault("UV_CACHE_DIR", ".uv-cache")
    uv_path = shutil.which("uv")
    if uv_path:
        cmd = [uv_path, "run", "pytest"]
    else:
        typer.echo("uv not found, falling back to python -m pytest")
        cmd = [sys.executable, "-m", "pytest"]
    if pytest_args:
        cmd.extend(pytest_args)
    typer.echo(f"Running tests: {' '.join(cmd)}")
    result = subprocess.run(cmd, env=env)
    raise typer.Exit(code=result.returncode)


if __name__ == "__main__":
    app()
