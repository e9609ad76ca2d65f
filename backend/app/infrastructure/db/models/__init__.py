"""
SQLModel ORM Models for Unistudents Match

Import models here to register them with SQLModel.metadata (Alembic).
"""

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin
from app.infrastructure.db.models.user import UserModel


__all__ = [
    "TimestampMixin",
    "UUIDMixin",
    "UserModel",
]
