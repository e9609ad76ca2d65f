"""
Domain Models for Unistudents Match

Pure Python/Pydantic models with no framework dependencies.
These models define the user entity, the guardian-oversight rule and the
account request/response schemas.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import Field, field_validator, model_validator

from app.domain.subscription import CamelModel, SubscriptionRecord, SubscriptionStatus


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class User(CamelModel):
    """User entity with its embedded subscription record."""
    id: str
    email: str
    password_hash: str = Field(exclude=True)
    first_name: str
    last_name: str
    age: int
    gender: Gender
    university: str
    profile_status: str = Field(alias="status")
    description: str
    looking_for: str
    guardian_email: Optional[str] = None
    guardian_phone: Optional[str] = None
    is_admin: bool = False
    subscription: SubscriptionRecord = Field(default_factory=SubscriptionRecord)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_active_subscription(self) -> bool:
        return self.subscription.has_active_subscription

    @property
    def requires_guardian_oversight(self) -> bool:
        """Users flagged female with a guardian contact get guardian fan-out."""
        return self.gender == Gender.FEMALE and bool(self.guardian_email)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# =============================================================================
# Request/Response DTOs
# =============================================================================

class RegisterRequest(CamelModel):
    """Registration payload: profile fields plus credentials."""
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    age: int = Field(..., ge=18, le=120)
    gender: Gender
    university: str = Field(..., min_length=1, max_length=200)
    profile_status: str = Field(..., alias="status", min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=2000)
    looking_for: str = Field(..., min_length=1, max_length=200)
    guardian_email: Optional[str] = Field(None, max_length=255)
    guardian_phone: Optional[str] = Field(None, max_length=50)

    @field_validator("email", "guardian_email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v

    @model_validator(mode="after")
    def require_guardian_for_female(self) -> "RegisterRequest":
        if self.gender == Gender.FEMALE and not (self.guardian_email and self.guardian_phone):
            raise ValueError("Guardian details are required for female users")
        return self


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RegisterResponse(CamelModel):
    token: str
    user_id: str


class LoginResponse(CamelModel):
    """Profile snapshot returned on login."""
    token: str
    user_id: str
    email: str
    first_name: str
    last_name: str
    age: int
    gender: Gender
    university: str
    profile_status: str = Field(alias="status")
    description: str
    looking_for: str
    guardian_email: Optional[str] = None
    guardian_phone: Optional[str] = None
    is_admin: bool
    has_active_subscription: bool
    subscription_status: SubscriptionStatus
    trial_end_date: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User, token: str) -> "LoginResponse":
        return cls(
            token=token,
            user_id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            age=user.age,
            gender=user.gender,
            university=user.university,
            profile_status=user.profile_status,
            description=user.description,
            looking_for=user.looking_for,
            guardian_email=user.guardian_email,
            guardian_phone=user.guardian_phone,
            is_admin=user.is_admin,
            has_active_subscription=user.has_active_subscription,
            subscription_status=user.subscription.status,
            trial_end_date=user.subscription.trial_end_date,
        )
