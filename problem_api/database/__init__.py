"""
Database module for the problem service.

Provides SQLAlchemy async database connection, models, and repositories.
"""
from problem_api.database.connection import (
    Base,
    close_db,
    get_db,
    get_engine,
    get_session,
    get_session_maker,
)
from problem_api.database.repositories import (
    BaseRepository,
    OutboxRepository,
    ProblemRepository,
    TechnicianRepository,
)

__all__ = [
    # Connection
    "Base",
    "get_engine",
    "get_session",
    "get_session_maker",
    "get_db",
    "close_db",
    # Repositories
    "BaseRepository",
    "OutboxRepository",
    "ProblemRepository",
    "TechnicianRepository",
]
