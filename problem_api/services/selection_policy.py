"""
Technician selection policy.

Every assignment path (problem creation and the backfill of unassigned
problems) picks technicians through `select_technician`, so the
selection criteria cannot diverge between them.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID


@dataclass(frozen=True)
class TechnicianCandidate:
    """A qualified technician and the workload used for the decision."""

    technician_id: UUID
    workload: int
    last_assigned_at: Optional[datetime] = None
    email: Optional[str] = None


class SelectionPolicy(str, Enum):
    """How to choose among qualified technicians."""

    LEAST_WORKLOAD = "least_workload"
    FIRST_MATCH = "first_match"


def _least_workload_key(candidate: TechnicianCandidate):
    # Never-assigned technicians sort before anyone with a timestamp
    last = candidate.last_assigned_at
    return (
        candidate.workload,
        last is not None,
        last or datetime.min,
        str(candidate.technician_id),
    )


def select_technician(
    candidates: Iterable[TechnicianCandidate],
    policy: SelectionPolicy = SelectionPolicy.LEAST_WORKLOAD,
) -> Optional[TechnicianCandidate]:
    """
    Choose the technician to assign.

    LEAST_WORKLOAD picks the minimum workload; ties go to the technician
    assigned least recently (never-assigned first), then to the lowest id.
    FIRST_MATCH picks the lowest id, ignoring workload. Deployments choose
    between them with the ASSIGNMENT_POLICY setting.

    Args:
        candidates: Qualified, available technicians
        policy: Selection policy

    Returns:
        The chosen candidate, or None when there are no candidates
    """
    candidates = list(candidates)
    if not candidates:
        return None

    if policy == SelectionPolicy.FIRST_MATCH:
        return min(candidates, key=lambda c: str(c.technician_id))

    return min(candidates, key=_least_workload_key)
