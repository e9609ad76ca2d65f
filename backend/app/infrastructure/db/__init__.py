"""
Database Infrastructure Package for Unistudents Match

Exports database utilities and the user repository.
"""

from app.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session_context,
    init_db,
    close_db,
)
from app.infrastructure.db.repositories import UserRepository


__all__ = [
    "DatabaseManager",
    "get_db_manager",
    "get_session_context",
    "init_db",
    "close_db",
    "UserRepository",
]
