import tempfile
from datetime import datetime, timedelta
from pathlib import Path

from sqlmodel import Session

from backend.hms_auth.core.database import build_engine, create_db_and_tables
from backend.hms_auth.core.settings import Settings

ADMIN_EMAIL = "admin@hms.local"
ADMIN_PASSWORD = "Adm1n!pass"


class FakeClock:
    """
    Naive-UTC clock that only moves when told to.
    """

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2025, 1, 15, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


def make_settings(db_dir: str, **overrides) -> Settings:
    values = dict(
        DATABASE_URL=f"sqlite:///{Path(db_dir) / 'test.db'}",
        ACCESS_TOKEN_SECRET="test-access-secret-0123456789abcdef",
        REFRESH_TOKEN_SECRET="test-refresh-secret-0123456789abcdef",
        ADMIN_EMAIL=ADMIN_EMAIL,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        LOG_LEVEL="WARNING",
    )
    values.update(overrides)
    return Settings(**values)


class DatabaseTestCase:
    """
    Mixin giving each test a fresh SQLite file and an open session.
    """

    def setUp(self):
        super().setUp()
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.settings = make_settings(tmp.name)
        self.engine = build_engine(self.settings)
        self.addCleanup(self.engine.dispose)
        create_db_and_tables(self.engine)
        self.session = Session(self.engine)
        self.addCleanup(self.session.close)
