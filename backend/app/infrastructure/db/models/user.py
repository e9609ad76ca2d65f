"""
User Database Model

SQLModel table for accounts. The subscription record is stored whole as JSON;
status, revision, the access flag and the provider id are mirrored into plain
columns so the revision compare-and-swap, the one-account-per-provider-id
constraint and operational queries can use them.
"""

from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class UserModel(UUIDMixin, TimestampMixin, table=True):
    """Maps to the 'users' table."""

    __tablename__ = "users"

    email: str = Field(max_length=255, unique=True, index=True, nullable=False)
    password_hash: str = Field(nullable=False)

    # Profile
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    age: int
    gender: str = Field(max_length=20)
    university: str = Field(max_length=200)
    profile_status: str = Field(max_length=50)
    description: str
    looking_for: str = Field(max_length=200)
    guardian_email: Optional[str] = Field(default=None, max_length=255)
    guardian_phone: Optional[str] = Field(default=None, max_length=50)
    is_admin: bool = Field(default=False)

    # Subscription record
    subscription: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    subscription_status: str = Field(default="trial", max_length=30, index=True)
    subscription_revision: int = Field(default=0, nullable=False)
    has_active_subscription: bool = Field(default=True)
    # One provider charge or agreement backs at most one account.
    provider_reference_id: Optional[str] = Field(default=None, max_length=255, unique=True)
