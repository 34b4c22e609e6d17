import getpass
import typer
import requests

from cli.core.api import ApiError, api_get_me, api_login, api_logout
from cli.core.session import clear_session, is_logged_in, load_refresh_token, save_session
from cli.core.utils import EMAIL_REGEX, call_with_refresh, refresh_session


app = typer.Typer(help="Authentication commands (login, logout, refresh, whoami)")


@app.command("login")
def login(
    email: str = typer.Option(None, "--email", "-e", help="Account email"),
):
    """
    Login to the system. Only allowed if no session is active.
    """
    if is_logged_in():
        typer.echo("Session already active. Logout first to remove current session token.")
        raise typer.Exit(code=1)

    if email is None:
        email = typer.prompt("Email")

    if not EMAIL_REGEX.match(email):
        typer.echo("Invalid email.")
        raise typer.Exit(code=1)

    password = getpass.getpass("Password: ")

    try:
        body, refresh_token = api_login(email, password)
    except ApiError as e:
        typer.echo(f"Login failed: {e.message}")
        raise typer.Exit(code=1)
    except requests.RequestException as e:
        typer.echo(f"Login failed: {e}")
        raise typer.Exit(code=1)

    save_session(body["access_token"], refresh_token)
    typer.echo(f"Login successful as '{email}' ({body['role']}).")


@app.command("logout")
def logout():
    """
    Revoke the refresh token on the backend and delete the local session.
    """
    refresh_token = load_refresh_token()
    if refresh_token:
        try:
            api_logout(refresh_token)
            typer.echo("Logged out from backend.")
        except (ApiError, requests.RequestException):
            typer.echo("Warning: Failed to logout from backend. The session may have already expired.")

    clear_session()
    typer.echo("Session ended.")


@app.command("refresh")
def refresh():
    """
    Exchange the stored refresh token for a new access token.
    """
    try:
        refresh_session()
    except requests.RequestException as e:
        typer.echo(f"Refresh failed: {e}")
        raise typer.Exit(code=1)
    typer.echo("Session refreshed.")


@app.command("whoami")
def whoami():
    """
    Show the account behind the current session.
    """
    try:
        info = call_with_refresh(api_get_me)
    except ApiError as e:
        typer.echo(f"Failed to get account information: {e.message}")
        raise typer.Exit(code=1)
    except requests.RequestException as e:
        typer.echo(f"Failed to get account information: {e}")
        raise typer.Exit(code=1)

    typer.echo("\nAccount Information:")
    typer.echo(f"   ID:     {info.get('id', '-')}")
    typer.echo(f"   Name:   {info.get('name', '-')}")
    typer.echo(f"   Email:  {info.get('email', '-')}")
    typer.echo(f"   Role:   {info.get('role', '-')}")
    typer.echo(f"   Status: {info.get('account_status', '-')}")
