from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from ..core.errors import ReauthenticationRequired, error_body
from ..core.settings import Settings
from ..models.Account import Account, AccountResponse, LoginRequest, PasswordChange, SignupRequest
from ..models.PasswordResetToken import ForgotPasswordRequest, ResetPasswordRequest
from ..models.Token import AccessTokenResponse, LoginResponse, TokenPair
from .dependencies import get_auth_service, get_current_account, get_settings
from .service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def set_refresh_cookie(response: Response, settings: Settings, tokens: TokenPair):
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=tokens.refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        path=settings.COOKIE_PATH,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
    )


def clear_refresh_cookie(response: Response, settings: Settings):
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path=settings.COOKIE_PATH,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
    )


@router.post("/signup", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def signup(
    data: SignupRequest,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Self-service registration. Always creates an active patient account.
    """
    account = auth.signup(data, client_ip(request))
    return AccountResponse.model_validate(account)


@router.post("/login", response_model=LoginResponse)
def login(
    login_data: LoginRequest,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """
    Login with email and password. The access token is returned in the body;
    the refresh token only as an httpOnly cookie.
    """
    account, tokens = auth.login(login_data.email, login_data.password, client_ip(request))
    set_refresh_cookie(response, settings, tokens)
    return LoginResponse(
        access_token=tokens.access_token,
        role=account.role,
        account=AccountResponse.model_validate(account),
    )


@router.post("/refresh", response_model=AccessTokenResponse)
def refresh(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """
    Exchange the refresh cookie for a new access token and a rotated cookie.
    """
    try:
        _, tokens = auth.refresh(request.cookies.get(settings.REFRESH_COOKIE_NAME))
    except ReauthenticationRequired as exc:
        failed = JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message),
            headers=exc.headers,
        )
        clear_refresh_cookie(failed, settings)
        return failed

    set_refresh_cookie(response, settings, tokens)
    return AccessTokenResponse(access_token=tokens.access_token)


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """
    Revoke the refresh cookie (if any) and clear it. Idempotent.
    """
    auth.logout(request.cookies.get(settings.REFRESH_COOKIE_NAME), client_ip(request))
    clear_refresh_cookie(response, settings)
    return {"message": "Logged out successfully"}


@router.post("/logout-all")
def logout_all(
    request: Request,
    response: Response,
    current_account: Annotated[Account, Depends(get_current_account)],
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """
    Revoke every refresh token of the current account.
    """
    revoked = auth.logout_all(current_account, client_ip(request))
    clear_refresh_cookie(response, settings)
    return {"revoked": revoked}


@router.get("/me", response_model=AccountResponse)
def me(current_account: Annotated[Account, Depends(get_current_account)]):
    return AccountResponse.model_validate(current_account)


@router.post("/password")
def change_password(
    data: PasswordChange,
    response: Response,
    current_account: Annotated[Account, Depends(get_current_account)],
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    """
    Change the current password. Every session of the account is revoked,
    including the caller's refresh cookie.
    """
    auth.change_password(current_account, data.current_password, data.new_password)
    clear_refresh_cookie(response, settings)
    return {"message": "Password changed successfully"}


@router.post("/forgot-password")
def forgot_password(
    data: ForgotPasswordRequest,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    token = auth.forgot_password(data.email, client_ip(request))
    body = {"message": "If the email exists, a reset link has been sent."}

    # No mail delivery in development; hand the token back directly
    if token and not settings.is_production:
        body["reset_token"] = token
    return body


@router.post("/reset-password")
def reset_password(
    data: ResetPasswordRequest,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
):
    auth.reset_password(data.token, data.new_password, client_ip(request))
    return {"message": "Password reset successfully"}
