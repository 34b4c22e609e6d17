from datetime import datetime
from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel
import hashlib

from ..core.clock import utcnow

GENESIS_HASH = "0" * 32


def audit_timestamp() -> datetime:
    return utcnow().replace(microsecond=0)


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    timestamp: datetime = Field(default_factory=audit_timestamp, sa_type=DateTime)
    actor_id: Optional[int] = Field(default=None, index=True)
    action: str = Field(index=True)
    details: Optional[str] = None
    ip_address: Optional[str] = Field(default=None, max_length=45)
    # Unique: every entry has exactly one successor, so two appends that
    # read the same tail cannot both be written
    previous_hash: str = Field(unique=True)
    current_hash: str

    def calculate_hash(self) -> str:
        """
        SHA-256 over previous_hash + timestamp + actor_id + action + details + ip_address.
        """
        ts_str = self.timestamp.isoformat()

        data = (
            self.previous_hash +
            ts_str +
            str(self.actor_id if self.actor_id is not None else "") +
            self.action +
            (self.details or "") +
            (self.ip_address or "")
        )
        return hashlib.sha256(data.encode("utf-8")).hexdigest()


class AuditChainStatus(SQLModel):
    valid: bool
    broken_id: Optional[int] = None
    entries: int
