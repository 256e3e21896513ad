from __future__ import annotations

import pytest
from typer.testing import CliRunner

from eventdesk import cli, database
from eventdesk.auth import verify_password
from eventdesk.crud import get_user_by_email

runner = CliRunner()


@pytest.fixture(autouse=True)
def skip_migrations(monkeypatch):
    monkeypatch.setattr(cli, "init_db", lambda: None)


def _lookup(email: str):
    session = database.SessionLocal()
    session.expire_all()
    return get_user_by_email(session, email)


def test_create_user_and_promote():
    result = runner.invoke(
        cli.app,
        ["create-user", "Ada@Example.com", "--name", "Ada", "--password", "pw-12345"],
    )
    assert result.exit_code == 0, result.output
    assert "Created user ada@example.com" in result.output

    user = _lookup("ada@example.com")
    assert user.admin is False
    assert verify_password("pw-12345", user.password_hash)

    promoted = runner.invoke(cli.app, ["promote", "ada@example.com"])
    assert promoted.exit_code == 0
    assert _lookup("ada@example.com").admin is True

    revoked = runner.invoke(cli.app, ["promote", "ada@example.com", "--revoke"])
    assert revoked.exit_code == 0
    assert _lookup("ada@example.com").admin is False


def test_create_user_rejects_duplicates():
    runner.invoke(cli.app, ["create-user", "a@example.com", "--password", "pw"])

    result = runner.invoke(cli.app, ["create-user", "a@example.com", "--password", "pw"])

    assert result.exit_code == 1


def test_promote_unknown_user_fails():
    result = runner.invoke(cli.app, ["promote", "ghost@example.com"])
    assert result.exit_code == 1


def test_seed_data_creates_organizers_and_events(monkeypatch):
    monkeypatch.setattr("eventdesk.seed.init_db", lambda: None)

    result = runner.invoke(cli.app, ["seed-data", "--users", "2", "--events", "3"])

    assert result.exit_code == 0, result.output
    assert "Seed complete: 2 organizers, 3 events" in result.output
