"""Services module."""
from problem_api.services.assignment_service import AssignmentResult, AssignmentService
from problem_api.services.lifecycle_service import LifecycleService
from problem_api.services.reconciliation_service import ReconciliationService

__all__ = [
    "AssignmentResult",
    "AssignmentService",
    "LifecycleService",
    "ReconciliationService",
]
