# cli/core/api.py
from typing import Optional

import requests

from .config import BASE_URL, REFRESH_COOKIE_NAME, REQUEST_TIMEOUT


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"{status_code} {code}: {message}")


def _raise_for_error(resp: requests.Response):
    if resp.status_code < 400:
        return
    try:
        error = resp.json().get("error") or {}
    except ValueError:
        error = {}
    raise ApiError(resp.status_code, error.get("code", "http_error"), error.get("message", resp.text))


def _auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def api_login(email: str, password: str) -> tuple[dict, Optional[str]]:
    """
    Logs in and returns (body, refresh cookie value).
    """
    resp = requests.post(
        f"{BASE_URL}/auth/login",
        json={"email": email, "password": password},
        timeout=REQUEST_TIMEOUT,
    )
    _raise_for_error(resp)
    return resp.json(), resp.cookies.get(REFRESH_COOKIE_NAME)


def api_refresh(refresh_token: str) -> tuple[str, Optional[str]]:
    """
    Exchanges the refresh cookie. Returns (new access token, rotated refresh cookie).
    """
    resp = requests.post(
        f"{BASE_URL}/auth/refresh",
        cookies={REFRESH_COOKIE_NAME: refresh_token},
        timeout=REQUEST_TIMEOUT,
    )
    _raise_for_error(resp)
    return resp.json()["access_token"], resp.cookies.get(REFRESH_COOKIE_NAME)


def api_logout(refresh_token: Optional[str]) -> None:
    cookies = {REFRESH_COOKIE_NAME: refresh_token} if refresh_token else None
    resp = requests.post(f"{BASE_URL}/auth/logout", cookies=cookies, timeout=REQUEST_TIMEOUT)
    _raise_for_error(resp)


def api_get_me(token: str) -> dict:
    resp = requests.get(f"{BASE_URL}/auth/me", headers=_auth_headers(token), timeout=REQUEST_TIMEOUT)
    _raise_for_error(resp)
    return resp.json()


def api_list_accounts(token: str, role: Optional[str] = None, status: Optional[str] = None) -> list:
    params = {k: v for k, v in (("role", role), ("account_status", status)) if v}
    resp = requests.get(
        f"{BASE_URL}/accounts",
        headers=_auth_headers(token),
        params=params,
        timeout=REQUEST_TIMEOUT,
    )
    _raise_for_error(resp)
    return resp.json()


def api_set_account_status(token: str, account_id: int, status: str, notes: Optional[str] = None) -> dict:
    resp = requests.patch(
        f"{BASE_URL}/accounts/{account_id}/status",
        headers=_auth_headers(token),
        json={"account_status": status, "notes": notes},
        timeout=REQUEST_TIMEOUT,
    )
    _raise_for_error(resp)
    return resp.json()


def api_sweep_sessions(token: str) -> int:
    resp = requests.post(f"{BASE_URL}/accounts/sessions/sweep", headers=_auth_headers(token), timeout=REQUEST_TIMEOUT)
    _raise_for_error(resp)
    return resp.json()["deleted"]
