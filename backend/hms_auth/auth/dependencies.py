from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from ..core.database import get_session
from ..core.errors import Forbidden, MissingToken, ReauthenticationRequired
from ..core.settings import Settings
from ..models.Account import Account
from ..models.Role import Role
from ..models.Token import AccessClaims
from .ledger import RefreshLedger
from .service import AuthService
from .tokens import TokenIssuer

# Extracts the bearer token; missing tokens are turned into our own 401 below
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_issuer(request: Request) -> TokenIssuer:
    return request.app.state.issuer


def get_auth_service(request: Request, session: Session = Depends(get_session)) -> AuthService:
    state = request.app.state
    return AuthService(session, state.settings, state.issuer, state.hasher)


def get_ledger(request: Request, session: Session = Depends(get_session)) -> RefreshLedger:
    return RefreshLedger(session, clock=request.app.state.issuer.clock)


def get_current_claims(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)],
    issuer: TokenIssuer = Depends(get_issuer),
) -> AccessClaims:
    """
    Request gate:
      no token            -> 401 missing_token
      expired token       -> 401 refresh_required
      bad signature/shape -> 403 token_invalid
      valid               -> claims attached to request.state.identity
    """
    if not token:
        raise MissingToken()

    claims = issuer.verify_access(token)
    request.state.identity = claims
    return claims


def require_roles(*roles: Role):
    """
    Secondary gate, applied after identity: the role claim must be one of `roles`.
    """
    allowed = frozenset(roles)

    def checker(claims: Annotated[AccessClaims, Depends(get_current_claims)]) -> AccessClaims:
        if claims.role not in allowed:
            raise Forbidden()
        return claims

    return checker


def get_current_account(
    claims: Annotated[AccessClaims, Depends(get_current_claims)],
    session: Session = Depends(get_session),
) -> Account:
    # Only for handlers that need the row; the gate itself does no I/O
    account = session.get(Account, claims.account_id)
    if account is None:
        raise ReauthenticationRequired("Account no longer exists")
    return account


get_current_admin = require_roles(Role.ADMIN)
