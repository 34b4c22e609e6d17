import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Annotated, Callable

from fastapi import Depends, FastAPI
from sqlmodel import Session

from .accounts.router import router as accounts_router
from .audit.router import router as audit_router
from .auth.dependencies import get_current_admin
from .auth.hashing import SecretHasher
from .auth.ledger import RefreshLedger
from .auth.router import router as auth_router
from .auth.tokens import TokenIssuer
from .core.clock import utcnow
from .core.database import build_engine, create_db_and_tables
from .core.errors import register_exception_handlers
from .core.init_db import init_db
from .core.logging_config import configure_logging
from .core.settings import Settings, get_settings
from .models.Token import AccessClaims

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, clock: Callable[[], datetime] = utcnow) -> FastAPI:
    """
    Application factory. Collaborators are built here from one explicit
    Settings instance and hung off app.state; the engine lives for the
    lifespan of the app. Run with: uvicorn --factory backend.hms_auth.main:create_app
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings)
        create_db_and_tables(engine)
        init_db(engine, settings, app.state.hasher)
        with Session(engine) as session:
            RefreshLedger(session, clock=clock).sweep_expired()

        app.state.engine = engine
        logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)
        yield
        engine.dispose()
        logger.info("%s stopped", settings.PROJECT_NAME)

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.hasher = SecretHasher(settings.PASSWORD_PEPPER)
    app.state.issuer = TokenIssuer(settings, clock=clock)

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(accounts_router)
    app.include_router(audit_router)

    @app.get("/")
    def read_root():
        return {"message": f"Welcome to {settings.PROJECT_NAME}"}

    @app.get("/admin/dashboard")
    def admin_dashboard(admin: Annotated[AccessClaims, Depends(get_current_admin)]):
        return {"message": "Admin dashboard", "account_id": admin.account_id}

    return app
