from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import EmailStr
from sqlalchemy import Column, DateTime, ForeignKey, Integer
from sqlmodel import Field, Relationship, SQLModel

from ..core.clock import utcnow
from .Role import Role


class AccountStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class HashScheme(str, Enum):
    """
    Closed set of secret hashing formats. Stored next to the hash so the
    verifier dispatches on it instead of sniffing the hash prefix.
    """
    ARGON2 = "argon2"   # current
    BCRYPT = "bcrypt"   # legacy, verified only


# ==========================================
# SQLModel (Database Entity + Base Pydantic)
# ==========================================
class Account(SQLModel, table=True):
    __tablename__ = "accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    email: str = Field(unique=True, index=True, nullable=False, max_length=150)
    hashed_secret: str = Field(nullable=False)
    hash_scheme: HashScheme = Field(default=HashScheme.ARGON2)
    role: Role = Field(default=Role.USER, index=True)
    account_status: AccountStatus = Field(default=AccountStatus.ACTIVE, index=True)
    verification_notes: Optional[str] = Field(default=None, nullable=True)
    verified_at: Optional[datetime] = Field(default=None, nullable=True, sa_type=DateTime)
    verified_by: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True),
    )
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow),
    )

    refresh_tokens: List["RefreshToken"] = Relationship(
        back_populates="account",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "passive_deletes": True,
        },
    )

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE


# ==========================================
# Pydantic Models (DTOs)
# ==========================================

# Self-service signup; role is accepted only to reject anything but "user"
class SignupRequest(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Optional[Role] = None


# Admin-created accounts (doctors, lab operators, other admins)
class AccountCreate(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role = Role.USER
    account_status: AccountStatus = AccountStatus.ACTIVE


class LoginRequest(SQLModel):
    email: str
    password: str


class AccountResponse(SQLModel):
    id: int
    name: str
    email: str
    role: Role
    account_status: AccountStatus
    created_at: datetime
    verified_at: Optional[datetime] = None


class StatusUpdate(SQLModel):
    account_status: AccountStatus
    notes: Optional[str] = None


class PasswordChange(SQLModel):
    current_password: str
    new_password: str = Field(min_length=6)


from .RefreshToken import RefreshToken  # noqa: E402,F401
