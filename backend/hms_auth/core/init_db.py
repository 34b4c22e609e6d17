import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..auth.credentials import CredentialStore, normalize_email
from ..auth.hashing import SecretHasher
from ..models.Account import Account, AccountStatus
from ..models.Role import Role
from .settings import Settings

logger = logging.getLogger(__name__)


def init_db(engine: Engine, settings: Settings, hasher: SecretHasher):
    """
    Seed the administrator from ADMIN_EMAIL / ADMIN_PASSWORD. No-op when
    either is unset or the account already exists.
    """
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        logger.info("No admin credentials configured, skipping admin seed")
        return

    with Session(engine) as session:
        statement = select(Account).where(Account.email == normalize_email(settings.ADMIN_EMAIL))
        if session.exec(statement).first():
            logger.info("Admin account already exists")
            return

        logger.info("Creating initial admin account: %s", settings.ADMIN_EMAIL)
        CredentialStore(session, hasher).create_account(
            settings.ADMIN_NAME,
            settings.ADMIN_EMAIL,
            settings.ADMIN_PASSWORD,
            role=Role.ADMIN,
            status=AccountStatus.ACTIVE,
        )
