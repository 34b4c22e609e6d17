import logging

from sqlalchemy import update
from sqlmodel import Session, select

from ..audit.service import log_event
from ..core.errors import (
    AccountInactive,
    Forbidden,
    InvalidCredentials,
    InvalidResetToken,
    ReauthenticationRequired,
)
from ..core.settings import Settings
from ..models.Account import Account, SignupRequest
from ..models.PasswordResetToken import PasswordResetToken
from ..models.Role import Role
from ..models.Token import TokenPair
from .credentials import AccountNotFound, CredentialStore
from .hashing import SecretHasher
from .ledger import RefreshLedger
from .tokens import TokenIssuer, hash_token

logger = logging.getLogger(__name__)


class AuthService:
    """
    Login, refresh, logout and secret management over one DB session.
    Built per request by the get_auth_service dependency.
    """

    def __init__(self, session: Session, settings: Settings, issuer: TokenIssuer, hasher: SecretHasher):
        self.session = session
        self.settings = settings
        self.issuer = issuer
        self.credentials = CredentialStore(session, hasher)
        self.ledger = RefreshLedger(session, clock=issuer.clock)

    def signup(self, data: SignupRequest, ip_address: str | None = None) -> Account:
        # Doctor, lab and admin accounts are created by an administrator
        if data.role is not None and data.role != Role.USER:
            raise Forbidden("Only patient accounts can be created by signup")

        account = self.credentials.create_account(data.name, data.email, data.password)
        log_event(self.session, account.id, "signup", f"Account created for {account.email}", ip_address)
        return account

    def authenticate(self, email: str, password: str, ip_address: str | None = None) -> Account:
        try:
            account = self.credentials.find_by_email(email)
        except AccountNotFound:
            self.credentials.hasher.verify_dummy(password)
            logger.info("Failed login for unknown email")
            log_event(self.session, None, "login_failed", "Unknown email", ip_address)
            raise InvalidCredentials()

        if not self.credentials.verify_secret(account, password):
            logger.info("Failed login for account %s", account.id)
            log_event(self.session, account.id, "login_failed", "Wrong password", ip_address)
            raise InvalidCredentials()

        if not account.is_active:
            log_event(self.session, account.id, "login_refused", f"Account is {account.account_status.value}", ip_address)
            raise AccountInactive(f"Your account is {account.account_status.value}. Please contact admin.")

        return account

    def login(self, email: str, password: str, ip_address: str | None = None) -> tuple[Account, TokenPair]:
        account = self.authenticate(email, password, ip_address)
        tokens = self.issuer.issue(account, self.ledger)
        log_event(self.session, account.id, "login_success", "Login successful", ip_address)
        logger.info("Account %s logged in", account.id)
        return account, tokens

    def refresh(self, refresh_token: str | None) -> tuple[Account, TokenPair]:
        """
        Rotate a refresh token: the presented token is consumed and a new
        pair is issued. Every failure requires a fresh login.
        """
        if not refresh_token:
            raise ReauthenticationRequired("No refresh token provided")

        claims = self.issuer.verify_refresh(refresh_token)
        account = self.ledger.consume(refresh_token)

        if str(account.id) != claims.sub:
            logger.warning("Refresh token subject does not match its ledger owner %s", account.id)
            raise ReauthenticationRequired("Invalid refresh token")

        if not account.is_active:
            self.ledger.revoke_all(account.id)
            raise ReauthenticationRequired(f"Account is {account.account_status.value}")

        tokens = self.issuer.issue(account, self.ledger)
        logger.info("Rotated refresh token for account %s", account.id)
        return account, tokens

    def logout(self, refresh_token: str | None, ip_address: str | None = None) -> bool:
        if not refresh_token:
            return False
        revoked = self.ledger.revoke(refresh_token)
        if revoked:
            log_event(self.session, None, "logout", "Refresh token revoked", ip_address)
        return revoked

    def logout_all(self, account: Account, ip_address: str | None = None) -> int:
        count = self.ledger.revoke_all(account.id)
        log_event(self.session, account.id, "logout_all", f"Revoked {count} session(s)", ip_address)
        return count

    def change_password(self, account: Account, current_password: str, new_password: str) -> Account:
        if not self.credentials.verify_secret(account, current_password):
            raise InvalidCredentials("Current password is incorrect")

        self.credentials.hash_and_store(account, new_password)
        self.ledger.revoke_all(account.id)
        log_event(self.session, account.id, "password_changed", "Password changed, sessions revoked")
        return account

    def forgot_password(self, email: str, ip_address: str | None = None) -> str | None:
        """
        Returns the raw reset token, or None when the e-mail is unknown.
        The HTTP layer answers the same way in both cases.
        """
        try:
            account = self.credentials.find_by_email(email)
        except AccountNotFound:
            logger.info("Password reset requested for unknown email")
            return None

        token, expires_at = self.issuer.create_reset_token()
        self.session.add(PasswordResetToken(
            account_id=account.id,
            token_hash=hash_token(token),
            expires_at=expires_at,
        ))
        self.session.commit()
        log_event(self.session, account.id, "password_reset_requested", "Reset token issued", ip_address)
        return token

    def reset_password(self, token: str, new_password: str, ip_address: str | None = None) -> Account:
        statement = select(PasswordResetToken).where(PasswordResetToken.token_hash == hash_token(token))
        reset = self.session.exec(statement).first()
        if reset is None or reset.used or reset.expires_at <= self.issuer.now():
            raise InvalidResetToken()

        account = self.credentials.get(reset.account_id)
        if account is None:
            raise InvalidResetToken()

        # Claim the token with a conditional UPDATE; of two concurrent resets
        # only the one that flips `used` may change the secret
        claimed = self.session.exec(
            update(PasswordResetToken)
            .where(PasswordResetToken.id == reset.id, PasswordResetToken.used == False)  # noqa: E712
            .values(used=True)
        )
        self.session.commit()
        if claimed.rowcount != 1:
            logger.warning("Reset token for account %s used concurrently", account.id)
            raise InvalidResetToken()

        self.credentials.hash_and_store(account, new_password)
        self.ledger.revoke_all(account.id)
        log_event(self.session, account.id, "password_reset_completed", "Password reset, sessions revoked", ip_address)
        return account

