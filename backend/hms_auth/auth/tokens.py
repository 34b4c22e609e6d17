import hashlib
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Callable

from jose import JWTError, jwt
from pydantic import ValidationError

from ..core.clock import to_timestamp, utcnow
from ..core.errors import ReauthenticationRequired, TokenExpired, TokenInvalid
from ..core.settings import Settings
from ..models.Account import Account
from ..models.Token import AccessClaims, RefreshClaims, TokenPair

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_token(token: str) -> str:
    """
    Lookup key for persisted tokens. Refresh and reset tokens are high-entropy,
    so an unsalted SHA-256 is enough to keep the raw value out of the database.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenIssuer:
    """
    Mints and verifies the access/refresh pair. Access tokens are verified
    from the signature and the exp claim alone; refresh tokens must also be
    present in the ledger (see RefreshLedger.consume).

    Expiry is compared against the server clock with no leeway for skew.
    """

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = utcnow):
        self.algorithm = settings.ALGORITHM
        self.access_secret = settings.ACCESS_TOKEN_SECRET
        self.refresh_secret = settings.REFRESH_TOKEN_SECRET
        self.access_ttl = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
        self.reset_ttl = timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    def create_access_token(self, account: Account) -> str:
        issued_at = self.now()
        claims = {
            "sub": str(account.id),
            "role": account.role.value,
            "type": ACCESS_TOKEN_TYPE,
            "iat": to_timestamp(issued_at),
            "exp": to_timestamp(issued_at + self.access_ttl),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(claims, self.access_secret, algorithm=self.algorithm)

    def create_refresh_token(self, account: Account) -> tuple[str, datetime, datetime]:
        issued_at = self.now()
        expires_at = issued_at + self.refresh_ttl
        claims = {
            "sub": str(account.id),
            "type": REFRESH_TOKEN_TYPE,
            "iat": to_timestamp(issued_at),
            "exp": to_timestamp(expires_at),
            "jti": uuid.uuid4().hex,
        }
        token = jwt.encode(claims, self.refresh_secret, algorithm=self.algorithm)
        return token, issued_at, expires_at

    def issue(self, account: Account, ledger) -> TokenPair:
        """
        Mint a new pair and record the refresh half in the ledger.
        """
        access_token = self.create_access_token(account)
        refresh_token, issued_at, expires_at = self.create_refresh_token(account)
        ledger.store(account.id, refresh_token, issued_at, expires_at)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            refresh_expires_at=expires_at,
        )

    def _decode(self, token: str, secret: str, token_type: str) -> dict:
        # exp is checked by the caller against self.clock, not by jose
        payload = jwt.decode(
            token,
            secret,
            algorithms=[self.algorithm],
            options={"verify_exp": False},
        )
        if payload.get("type") != token_type:
            raise JWTError(f"Expected a {token_type} token")
        return payload

    def _is_expired(self, exp: int) -> bool:
        return exp <= to_timestamp(self.now())

    def verify_access(self, token: str) -> AccessClaims:
        try:
            claims = AccessClaims.model_validate(self._decode(token, self.access_secret, ACCESS_TOKEN_TYPE))
        except (JWTError, ValidationError):
            raise TokenInvalid()

        if self._is_expired(claims.exp):
            raise TokenExpired()
        return claims

    def verify_refresh(self, token: str) -> RefreshClaims:
        """
        Signature and expiry of a refresh token. Any failure means the
        client has to log in again.
        """
        try:
            claims = RefreshClaims.model_validate(self._decode(token, self.refresh_secret, REFRESH_TOKEN_TYPE))
        except (JWTError, ValidationError):
            raise ReauthenticationRequired("Invalid refresh token")

        if self._is_expired(claims.exp):
            raise ReauthenticationRequired("Refresh token expired")
        return claims

    def create_reset_token(self) -> tuple[str, datetime]:
        return secrets.token_urlsafe(32), self.now() + self.reset_ttl
