from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Column, DateTime, ForeignKey, Integer
from sqlmodel import Field, Relationship, SQLModel

from ..core.clock import utcnow

if TYPE_CHECKING:
    from .Account import Account


class RefreshToken(SQLModel, table=True):
    """
    Ledger row for one issued refresh token. Only the SHA-256 of the token
    is kept; the row is deleted when the token is rotated or revoked.
    """
    __tablename__ = "refresh_tokens"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(
        sa_column=Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    token_hash: str = Field(unique=True, index=True, max_length=64)
    issued_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    expires_at: datetime = Field(index=True, sa_type=DateTime)

    account: Optional["Account"] = Relationship(back_populates="refresh_tokens")
