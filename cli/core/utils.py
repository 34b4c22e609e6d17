import re
import typer

from .api import ApiError, api_refresh
from .session import clear_session, load_refresh_token, load_session, save_session

EMAIL_REGEX = re.compile(r"^[\w\.+-]+@[\w\.-]+\.\w+$")


def require_token() -> str:
    token = load_session().get("access_token")
    if not token:
        typer.echo("No active session. Please run `hms auth login` first.")
        raise typer.Exit(code=1)
    return token


def refresh_session() -> str:
    """
    Rotates the stored refresh cookie and returns the new access token.
    A rejected refresh ends the local session: the user must log in again.
    """
    refresh_token = load_refresh_token()
    if not refresh_token:
        clear_session()
        typer.echo("Session expired. Please login again.")
        raise typer.Exit(code=1)

    try:
        access_token, rotated = api_refresh(refresh_token)
    except ApiError as e:
        clear_session()
        typer.echo(f"Session expired ({e.message}). Please login again.")
        raise typer.Exit(code=1)

    save_session(access_token, rotated or refresh_token)
    return access_token


def call_with_refresh(func, *args, **kwargs):
    """
    Calls func(token, ...) and retries once with a refreshed token when the
    API reports that the access token expired.
    """
    token = require_token()
    try:
        return func(token, *args, **kwargs)
    except ApiError as e:
        if e.code != "refresh_required":
            raise
    return func(refresh_session(), *args, **kwargs)
