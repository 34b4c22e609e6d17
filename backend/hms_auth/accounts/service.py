import logging

from sqlmodel import Session, select

from ..auth.credentials import CredentialStore
from ..auth.ledger import RefreshLedger
from ..core.errors import Forbidden, NotFound
from ..models.Account import Account, AccountCreate, AccountStatus
from ..models.Role import Role

logger = logging.getLogger(__name__)


def get_account(session: Session, account_id: int) -> Account:
    account = session.get(Account, account_id)
    if not account:
        raise NotFound("Account not found")
    return account


def list_accounts(
    session: Session,
    role: Role | None = None,
    account_status: AccountStatus | None = None,
) -> list[Account]:
    statement = select(Account)
    if role is not None:
        statement = statement.where(Account.role == role)
    if account_status is not None:
        statement = statement.where(Account.account_status == account_status)
    return session.exec(statement.order_by(Account.id)).all()


def create_account(credentials: CredentialStore, data: AccountCreate) -> Account:
    return credentials.create_account(
        data.name,
        data.email,
        data.password,
        role=data.role,
        status=data.account_status,
    )


def set_account_status(
    session: Session,
    ledger: RefreshLedger,
    account: Account,
    status: AccountStatus,
    admin_id: int,
    notes: str | None = None,
) -> Account:
    """
    Status gates login and refresh. Leaving "active" also drops every
    refresh token, so the account is locked out once its access token lapses.
    """
    account.account_status = status
    account.verification_notes = notes
    account.verified_by = admin_id
    account.verified_at = ledger.clock()
    session.add(account)
    session.commit()
    session.refresh(account)

    if status != AccountStatus.ACTIVE:
        ledger.revoke_all(account.id)

    logger.info("Account %s set to %s by %s", account.id, status.value, admin_id)
    return account


def delete_account(session: Session, account_id: int, admin_id: int):
    account = get_account(session, account_id)
    if account.id == admin_id:
        raise Forbidden("Administrators cannot delete their own account")

    # refresh_tokens and password_reset_tokens go with it (ON DELETE CASCADE)
    session.delete(account)
    session.commit()
    logger.info("Account %s deleted by %s", account_id, admin_id)
