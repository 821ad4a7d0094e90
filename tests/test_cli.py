import pytest
from typer.testing import CliRunner

import shopguard.db.session as db_session
from shopguard.cli import app
from shopguard.core.sliding_window import now_ms
from shopguard.models.user import User
from shopguard.services.ip_ban_service import SqlBanStore

from conftest import create_user

runner = CliRunner()


@pytest.fixture()
def cli_db(session_local, monkeypatch):
    monkeypatch.setattr(db_session, "SessionLocal", session_local)
    return session_local


def test_make_admin_promotes_existing_user(cli_db):
    user = create_user(cli_db, email="owner@example.com", name="Shop Owner")

    result = runner.invoke(app, ["make-admin", "OWNER@example.com"])

    assert result.exit_code == 0, result.output
    assert "Shop Owner (owner@example.com) is now an admin" in result.output
    with cli_db() as db:
        promoted = db.get(User, user.id)
        assert promoted.is_admin is True
        assert promoted.role == "admin"


def test_make_admin_unknown_email_exits_nonzero(cli_db):
    result = runner.invoke(app, ["make-admin", "missing@example.com"])

    assert result.exit_code == 1


def test_list_bans_and_unban(cli_db):
    store = SqlBanStore(cli_db)
    store.ban("203.0.113.5", now_ms() + 60_000, 1)

    listing = runner.invoke(app, ["list-bans"])
    assert listing.exit_code == 0, listing.output
    assert "203.0.113.5" in listing.output
    assert "attempts=1" in listing.output

    first = runner.invoke(app, ["unban", "203.0.113.5"])
    assert "IP 203.0.113.5 has been unbanned" in first.output

    second = runner.invoke(app, ["unban", "203.0.113.5"])
    assert "IP 203.0.113.5 was not banned" in second.output

    empty = runner.invoke(app, ["list-bans"])
    assert "No active bans" in empty.output
