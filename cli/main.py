# cli/main.py


import typer
from cli.auth.commands import app as auth_app
from cli.accounts.commands import app as accounts_app

app = typer.Typer(help="HMS Auth command line client")
app.add_typer(auth_app, name="auth")
app.add_typer(accounts_app, name="accounts")

if __name__ == "__main__":
    app()
