"""
Database Infrastructure Package for the Platform Billing Service

Exports database utilities and repositories.
"""

from app.infrastructure.db.database import (
    DatabaseManager,
    SessionFactory,
    get_db_manager,
    get_session_context,
    init_db,
    close_db,
)


__all__ = [
    "DatabaseManager",
    "SessionFactory",
    "get_db_manager",
    "get_session_context",
    "init_db",
    "close_db",
]
