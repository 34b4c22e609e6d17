import requests
import typer
from typing import Optional

from cli.core.api import ApiError, api_list_accounts, api_set_account_status, api_sweep_sessions
from cli.core.utils import call_with_refresh

app = typer.Typer(help="Account administration commands (Admin only)")

VALID_ROLES = ["user", "doctor", "admin", "lab"]
VALID_STATUSES = ["active", "pending", "rejected", "suspended"]


@app.command("list")
def list_accounts(
    role: Optional[str] = typer.Option(None, "--role", help="Filter by role"),
    status: Optional[str] = typer.Option(None, "--status", help="Filter by account status"),
):
    """
    List accounts.
    """
    if role and role not in VALID_ROLES:
        typer.echo(f"Invalid role. Choose one of: {', '.join(VALID_ROLES)}")
        raise typer.Exit(code=1)
    if status and status not in VALID_STATUSES:
        typer.echo(f"Invalid status. Choose one of: {', '.join(VALID_STATUSES)}")
        raise typer.Exit(code=1)

    try:
        accounts = call_with_refresh(api_list_accounts, role=role, status=status)
    except ApiError as e:
        typer.echo(f"Failed to list accounts: {e.message}")
        raise typer.Exit(code=1)
    except requests.RequestException as e:
        typer.echo(f"Failed to list accounts: {e}")
        raise typer.Exit(code=1)

    if not accounts:
        typer.echo("No accounts found.")
        return

    typer.echo(f"{'ID':>5}  {'EMAIL':<32} {'ROLE':<8} STATUS")
    for account in accounts:
        typer.echo(f"{account['id']:>5}  {account['email']:<32} {account['role']:<8} {account['account_status']}")


@app.command("set-status")
def set_status(
    account_id: int = typer.Argument(..., help="Account ID"),
    status: str = typer.Argument(..., help="active | pending | rejected | suspended"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Verification notes"),
):
    """
    Change the status of an account. Anything but 'active' revokes its sessions.
    """
    if status not in VALID_STATUSES:
        typer.echo(f"Invalid status. Choose one of: {', '.join(VALID_STATUSES)}")
        raise typer.Exit(code=1)

    try:
        account = call_with_refresh(api_set_account_status, account_id, status, notes)
    except ApiError as e:
        typer.echo(f"Failed to update account: {e.message}")
        raise typer.Exit(code=1)
    except requests.RequestException as e:
        typer.echo(f"Failed to update account: {e}")
        raise typer.Exit(code=1)

    typer.echo(f"Account {account['id']} is now {account['account_status']}.")


@app.command("sweep")
def sweep():
    """
    Delete expired refresh tokens from the ledger.
    """
    try:
        deleted = call_with_refresh(api_sweep_sessions)
    except ApiError as e:
        typer.echo(f"Sweep failed: {e.message}")
        raise typer.Exit(code=1)
    except requests.RequestException as e:
        typer.echo(f"Sweep failed: {e}")
        raise typer.Exit(code=1)

    typer.echo(f"Deleted {deleted} expired session(s).")
