from datetime import datetime

from sqlmodel import SQLModel

from .Account import AccountResponse
from .Role import Role


class AccessTokenResponse(SQLModel):
    access_token: str  # JWT Token
    token_type: str = "bearer"


class LoginResponse(AccessTokenResponse):
    role: Role
    account: AccountResponse


class AccessClaims(SQLModel):
    sub: str  # Account ID
    role: Role
    iat: int  # Issued at time
    exp: int  # Expiration time
    jti: str  # Token ID

    @property
    def account_id(self) -> int:
        return int(self.sub)


class RefreshClaims(SQLModel):
    sub: str
    iat: int
    exp: int
    jti: str


class TokenPair(SQLModel):
    access_token: str
    refresh_token: str
    refresh_expires_at: datetime
