"""
Database repositories for the problem service.
"""
from problem_api.database.repositories.base import BaseRepository
from problem_api.database.repositories.outbox import OutboxRepository
from problem_api.database.repositories.problem import ProblemRepository
from problem_api.database.repositories.technician import TechnicianRepository

__all__ = [
    "BaseRepository",
    "OutboxRepository",
    "ProblemRepository",
    "TechnicianRepository",
]
