from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ..auth.dependencies import get_current_admin
from ..core.database import get_session
from ..models.Audit import AuditChainStatus, AuditLog
from ..models.Token import AccessClaims
from .service import list_events, verify_chain

router = APIRouter(
    prefix="/audit",
    tags=["audit"],
    responses={404: {"description": "Not found"}},
)


@router.get("/log", response_model=List[AuditLog])
def get_audit_logs(
    admin: Annotated[AccessClaims, Depends(get_current_admin)],
    actor_id: Optional[int] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    session: Session = Depends(get_session),
):
    return list_events(session, actor_id, limit, offset)


@router.get("/verify", response_model=AuditChainStatus)
def verify_audit_chain(
    admin: Annotated[AccessClaims, Depends(get_current_admin)],
    session: Session = Depends(get_session),
):
    valid, broken_id, entries = verify_chain(session)
    return AuditChainStatus(valid=valid, broken_id=broken_id, entries=entries)
