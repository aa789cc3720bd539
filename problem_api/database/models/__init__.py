"""
SQLAlchemy models for the problem service.
"""
from problem_api.database.models.outbox_message import OutboxKind, OutboxMessage, OutboxStatus
from problem_api.database.models.problem import Problem, ProblemStatus
from problem_api.database.models.technician_assignment import TechnicianAssignment
from problem_api.database.models.user import TECHNICIAN_ROLE, User

__all__ = [
    "OutboxKind",
    "OutboxMessage",
    "OutboxStatus",
    "Problem",
    "ProblemStatus",
    "TechnicianAssignment",
    "TECHNICIAN_ROLE",
    "User",
]
