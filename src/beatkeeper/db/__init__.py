"""Database module for beatkeeper.

Exports:
- Base: SQLAlchemy declarative base
- models: UserAuth, SaveActionLog, SaveStatus
- session: Async session management
"""

from beatkeeper.db.models import Base, SaveActionLog, SaveStatus, UserAuth
from beatkeeper.db.session import AsyncSessionLocal, db_session, make_session_factory

__all__ = [
    "AsyncSessionLocal",
    "Base",
    "SaveActionLog",
    "SaveStatus",
    "UserAuth",
    "db_session",
    "make_session_factory",
]
