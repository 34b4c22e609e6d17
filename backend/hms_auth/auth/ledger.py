import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import delete, func
from sqlmodel import Session, select

from ..core.clock import utcnow
from ..core.errors import ReauthenticationRequired
from ..models.Account import Account
from ..models.RefreshToken import RefreshToken
from .tokens import hash_token

logger = logging.getLogger(__name__)


class RefreshLedger:
    """
    Persisted set of refresh tokens that may still be exchanged.

    A token is valid only while its row exists. consume() deletes the row
    with a conditional DELETE and trusts the rowcount, so when two requests
    race on the same token the storage engine lets exactly one of them win.
    """

    def __init__(self, session: Session, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    def store(self, account_id: int, token: str, issued_at: datetime, expires_at: datetime) -> RefreshToken:
        # No dedup: every login is its own session
        row = RefreshToken(
            account_id=account_id,
            token_hash=hash_token(token),
            issued_at=issued_at,
            expires_at=expires_at,
        )
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def consume(self, token: str) -> Account:
        """
        Single-use exchange. Returns the owning account, or raises
        ReauthenticationRequired for unknown, already consumed, revoked or
        expired tokens. Never retried: a miss may mean the token was stolen.
        """
        token_hash = hash_token(token)
        row = self.session.exec(select(RefreshToken).where(RefreshToken.token_hash == token_hash)).first()
        if row is None:
            logger.warning("Refresh token not in ledger (reused, revoked or unknown)")
            raise ReauthenticationRequired("Invalid refresh token")

        row_id, account_id, expires_at = row.id, row.account_id, row.expires_at
        self.session.expunge(row)

        result = self.session.exec(delete(RefreshToken).where(RefreshToken.id == row_id))
        self.session.commit()

        if result.rowcount != 1:
            logger.warning("Refresh token for account %s consumed concurrently", account_id)
            raise ReauthenticationRequired("Invalid refresh token")

        if expires_at <= self.clock():
            raise ReauthenticationRequired("Refresh token expired")

        account = self.session.get(Account, account_id)
        if account is None:
            raise ReauthenticationRequired("Invalid refresh token")
        return account

    def revoke(self, token: str) -> bool:
        result = self.session.exec(delete(RefreshToken).where(RefreshToken.token_hash == hash_token(token)))
        self.session.commit()
        return result.rowcount > 0

    def revoke_all(self, account_id: int) -> int:
        result = self.session.exec(delete(RefreshToken).where(RefreshToken.account_id == account_id))
        self.session.commit()
        if result.rowcount:
            logger.info("Revoked %d refresh token(s) for account %s", result.rowcount, account_id)
        return result.rowcount

    def sweep_expired(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        result = self.session.exec(delete(RefreshToken).where(RefreshToken.expires_at <= now))
        self.session.commit()
        if result.rowcount:
            logger.info("Swept %d expired refresh token(s)", result.rowcount)
        return result.rowcount

    def active_sessions(self, account_id: int) -> int:
        statement = (
            select(func.count())
            .select_from(RefreshToken)
            .where(RefreshToken.account_id == account_id, RefreshToken.expires_at > self.clock())
        )
        return self.session.exec(statement).one()
