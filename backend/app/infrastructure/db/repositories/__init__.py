"""
Repository Layer for Unistudents Match
"""

from app.infrastructure.db.repositories.user_repository import UserRepository


__all__ = ["UserRepository"]
