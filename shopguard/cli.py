"""Operator commands run against the configured database."""
from datetime import datetime, timezone

import typer
from sqlalchemy import func, select

app = typer.Typer(no_args_is_help=True)


def _durable_store():
    from shopguard.db.session import SessionLocal
    from shopguard.services.ip_ban_service import SqlBanStore

    return SqlBanStore(SessionLocal)


@app.command("make-admin")
def make_admin(email: str = typer.Argument(..., help="Email of the account to promote")):
    """Grant admin privileges to an existing account."""
    from shopguard.db.session import SessionLocal
    from shopguard.models.user import User

    with SessionLocal() as db:
        user = db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        ).scalar_one_or_none()
        if user is None:
            typer.echo(f"User with email {email} not found", err=True)
            raise typer.Exit(code=1)
        user.is_admin = True
        user.role = "admin"
        db.commit()
        typer.echo(f"User {user.name} ({user.email}) is now an admin")
    typer.echo("Existing sessions keep their old isAdmin claim until they expire.")


@app.command("list-bans")
def list_bans():
    """Show active bans from the database."""
    entries = _durable_store().list_active()
    if not entries:
        typer.echo("No active bans")
        return
    for entry in entries:
        until = datetime.fromtimestamp(entry.banned_until / 1000, tz=timezone.utc)
        typer.echo(f"{entry.identity:<40} until {until:%Y-%m-%d %H:%M} UTC  attempts={entry.attempts}")


@app.command()
def unban(ip: str = typer.Argument(..., help="Identity (IP) to unban")):
    """Remove a ban from the database."""
    if _durable_store().unban(ip.strip()):
        typer.echo(f"IP {ip} has been unbanned")
    else:
        typer.echo(f"IP {ip} was not banned")


if __name__ == "__main__":
    app()
