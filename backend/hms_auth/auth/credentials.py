import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..core.clock import utcnow
from ..core.errors import Conflict
from ..models.Account import Account, AccountStatus
from ..models.Role import Role
from .hashing import SecretHasher

logger = logging.getLogger(__name__)


class AccountNotFound(LookupError):
    """
    Raised by the store only. Callers above it must not tell this apart
    from a wrong secret.
    """


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    def __init__(self, session: Session, hasher: SecretHasher):
        self.session = session
        self.hasher = hasher

    def find_by_email(self, email: str) -> Account:
        statement = select(Account).where(Account.email == normalize_email(email))
        account = self.session.exec(statement).first()
        if account is None:
            raise AccountNotFound(email)
        return account

    def get(self, account_id: int) -> Account | None:
        return self.session.get(Account, account_id)

    def verify_secret(self, account: Account, candidate: str) -> bool:
        return self.hasher.verify(account.hash_scheme, account.hashed_secret, candidate)

    def hash_and_store(self, account: Account, secret: str, commit: bool = True) -> Account:
        """
        The only place a secret is hashed. Always writes the current scheme,
        which is how legacy hashes get migrated.
        """
        account.hashed_secret, account.hash_scheme = self.hasher.hash(secret)
        account.updated_at = utcnow()
        self.session.add(account)
        if commit:
            self.session.commit()
            self.session.refresh(account)
        return account

    def create_account(
        self,
        name: str,
        email: str,
        secret: str,
        role: Role = Role.USER,
        status: AccountStatus = AccountStatus.ACTIVE,
    ) -> Account:
        email = normalize_email(email)
        existing = self.session.exec(select(Account).where(Account.email == email)).first()
        if existing:
            raise Conflict("Email already registered")

        account = Account(name=name.strip(), email=email, hashed_secret="", role=role, account_status=status)
        self.hash_and_store(account, secret, commit=False)
        try:
            self.session.commit()
        except IntegrityError:
            # Lost a race against a concurrent signup for the same e-mail
            self.session.rollback()
            raise Conflict("Email already registered")
        self.session.refresh(account)
        logger.info("Created account %s with role %s", account.id, account.role.value)
        return account
