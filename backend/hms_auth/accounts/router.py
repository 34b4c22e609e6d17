from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlmodel import Session

from ..audit.service import log_event
from ..auth.credentials import CredentialStore
from ..auth.dependencies import get_current_admin, get_ledger
from ..auth.ledger import RefreshLedger
from ..core.database import get_session
from ..models.Account import AccountCreate, AccountResponse, AccountStatus, StatusUpdate
from ..models.Role import Role
from ..models.Token import AccessClaims
from .service import create_account, delete_account, get_account, list_accounts, set_account_status

router = APIRouter(prefix="/accounts", tags=["accounts"])

Admin = Annotated[AccessClaims, Depends(get_current_admin)]


@router.get("", response_model=list[AccountResponse])
def read_accounts(
    admin: Admin,
    role: Role | None = None,
    account_status: AccountStatus | None = None,
    session: Session = Depends(get_session),
):
    """
    List accounts, optionally filtered by role and status (Admin only).
    """
    return [AccountResponse.model_validate(a) for a in list_accounts(session, role, account_status)]


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_new_account(
    data: AccountCreate,
    request: Request,
    admin: Admin,
    session: Session = Depends(get_session),
):
    """
    Create a doctor, lab, admin or patient account (Admin only).
    """
    account = create_account(CredentialStore(session, request.app.state.hasher), data)
    log_event(session, admin.account_id, "account_created", f"Account {account.id} ({account.role.value})")
    return AccountResponse.model_validate(account)


@router.get("/{account_id}", response_model=AccountResponse)
def read_account(account_id: int, admin: Admin, session: Session = Depends(get_session)):
    return AccountResponse.model_validate(get_account(session, account_id))


@router.patch("/{account_id}/status", response_model=AccountResponse)
def update_account_status(
    account_id: int,
    data: StatusUpdate,
    admin: Admin,
    session: Session = Depends(get_session),
    ledger: RefreshLedger = Depends(get_ledger),
):
    """
    Approve, reject or suspend an account. Any status other than "active"
    revokes the account's refresh tokens.
    """
    account = get_account(session, account_id)
    account = set_account_status(session, ledger, account, data.account_status, admin.account_id, data.notes)
    log_event(session, admin.account_id, "account_status_changed", f"Account {account_id} -> {data.account_status.value}")
    return AccountResponse.model_validate(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account_endpoint(account_id: int, admin: Admin, session: Session = Depends(get_session)):
    delete_account(session, account_id, admin.account_id)
    log_event(session, admin.account_id, "account_deleted", f"Account {account_id}")
    return None


@router.post("/sessions/sweep")
def sweep_sessions(admin: Admin, ledger: RefreshLedger = Depends(get_ledger)):
    """
    Delete expired refresh tokens from the ledger.
    """
    return {"deleted": ledger.sweep_expired()}
