from pathlib import Path

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlmodel import SQLModel, Session, create_engine

from .settings import Settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless this is set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(settings: Settings) -> Engine:
    url = make_url(settings.DATABASE_URL)
    connect_args = {}

    if url.get_backend_name() == "sqlite":
        # check_same_thread=False is needed only for SQLite
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)

    if url.get_backend_name() == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def create_db_and_tables(engine: Engine):
    # Models must be imported so their tables are registered on the metadata
    from ..models import Account, Audit, PasswordResetToken, RefreshToken  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session(request: Request):
    with Session(request.app.state.engine) as session:
        yield session
