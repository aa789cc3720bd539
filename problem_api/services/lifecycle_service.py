"""
Problem lifecycle.

Status changes follow an explicit state machine. Solving a problem
releases its technician; reopening a solved problem gives it back.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Union
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession

from problem_api.config.settings import ServiceSettings, get_settings
from problem_api.database.models.problem import Problem, ProblemStatus
from problem_api.database.repositories.problem import ProblemRepository
from problem_api.database.repositories.technician import TechnicianRepository
from problem_api.services.errors import InvalidTransitionError, NotFoundError, store_operation
from problem_api.services.outbox_service import enqueue_technician_release

logger = logging.getLogger(__name__)

# Legacy spelling still sent by older clients
STATUS_ALIASES: Dict[str, ProblemStatus] = {"progressing": ProblemStatus.IN_PROGRESS}

ALLOWED_TRANSITIONS: Dict[ProblemStatus, FrozenSet[ProblemStatus]] = {
    ProblemStatus.WAITING: frozenset({ProblemStatus.IN_PROGRESS, ProblemStatus.SOLVED}),
    ProblemStatus.IN_PROGRESS: frozenset({ProblemStatus.WAITING, ProblemStatus.SOLVED}),
    # Leaving SOLVED requires reopen()
    ProblemStatus.SOLVED: frozenset(),
}


def parse_status(value: Union[str, ProblemStatus]) -> ProblemStatus:
    """
    Convert a status string (or alias) into a ProblemStatus.

    Raises:
        ValueError: for unknown statuses
    """
    if isinstance(value, ProblemStatus):
        return value
    normalized = value.strip().lower()
    if normalized in STATUS_ALIASES:
        return STATUS_ALIASES[normalized]
    return ProblemStatus(normalized)


def can_transition(current: ProblemStatus, requested: ProblemStatus) -> bool:
    """Whether `requested` may be written over `current` (same status is a no-op)."""
    return current == requested or requested in ALLOWED_TRANSITIONS[current]


def release_episode(problem: Problem) -> Optional[str]:
    """Which solve of the problem a technician release belongs to."""
    return f"reopen-{problem.reopen_count}" if problem.reopen_count else None


@dataclass
class TransitionResult:
    """Outcome of a status change."""

    problem: Problem
    changed: bool
    technician_updated: bool = False

    @property
    def message(self) -> str:
        if not self.changed:
            return "Problem status unchanged"
        return "Problem status updated successfully"


class LifecycleService:
    """Moves problems through their lifecycle and keeps technicians in sync."""

    def __init__(self, session: AsyncSession, settings: Optional[ServiceSettings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.problems = ProblemRepository(session)
        self.technicians = TechnicianRepository(session)

    async def _get_problem(self, problem_id: UUID) -> Problem:
        # Row lock serializes concurrent status changes of the same problem
        problem = await self.problems.get_by_id(problem_id, for_update=True)
        if problem is None:
            raise NotFoundError("Problem not found", details={"problem_id": str(problem_id)})
        return problem

    async def _release_technician(self, problem: Problem) -> bool:
        """
        Release the problem's technician and queue the peer update.

        Returns:
            True if a peer update was queued for this release
        """
        technician = await self.technicians.get_by_id(problem.assigned_technician_id)
        if technician is None:
            logger.warning(
                f"Technician {problem.assigned_technician_id} of problem {problem.id} no longer exists"
            )
            return False

        released = await self.technicians.release_assignment(
            technician.id, problem.id, self.settings.capacity_for(technician.specialty)
        )
        queued = await enqueue_technician_release(
            self.session, str(problem.id), str(technician.id), episode=release_episode(problem)
        )
        logger.info(
            f"Technician {technician.id} released from problem {problem.id} "
            f"(assignment {'released' if released else 'already inactive'}, "
            f"peer update {'queued' if queued else 'already queued'})"
        )
        return queued

    async def transition(self, problem_id: UUID, new_status: Union[str, ProblemStatus]) -> TransitionResult:
        """
        Change the status of a problem.

        Writing the current status again is accepted and changes nothing,
        so solving twice keeps the first `solved_at`.

        Raises:
            ValueError: for unknown statuses
            NotFoundError: when the problem does not exist
            InvalidTransitionError: when the state machine forbids the change
            StoreFailureError: when the store could not be read or written
        """
        requested = parse_status(new_status)

        with store_operation("update problem"):
            problem = await self._get_problem(problem_id)
            current = parse_status(problem.status)

            if current == requested:
                logger.debug(f"Problem {problem.id} already '{current.value}'")
                return TransitionResult(problem=problem, changed=False)

            if not can_transition(current, requested):
                raise InvalidTransitionError(current.value, requested.value)

            problem.status = requested.value
            if requested == ProblemStatus.SOLVED:
                problem.solved_at = func.now()

            technician_updated = False
            if requested == ProblemStatus.SOLVED and problem.assigned_technician_id:
                technician_updated = await self._release_technician(problem)

            problem = await self.problems.update(problem)

        logger.info(f"Problem {problem.id}: {current.value} -> {requested.value}")
        return TransitionResult(problem=problem, changed=True, technician_updated=technician_updated)

    async def reopen(self, problem_id: UUID) -> TransitionResult:
        """
        Move a solved problem back to waiting.

        The assigned technician (if any) gets the problem back, without a
        capacity check.

        Raises:
            NotFoundError: when the problem does not exist
            InvalidTransitionError: when the problem is not solved
            StoreFailureError: when the store could not be read or written
        """
        with store_operation("reopen problem"):
            problem = await self._get_problem(problem_id)
            current = parse_status(problem.status)
            if current != ProblemStatus.SOLVED:
                raise InvalidTransitionError(current.value, "reopen")

            problem.status = ProblemStatus.WAITING.value
            problem.solved_at = None
            problem.reopen_count = (problem.reopen_count or 0) + 1

            technician_updated = False
            if problem.assigned_technician_id:
                technician = await self.technicians.get_by_id(problem.assigned_technician_id)
                if technician is not None:
                    await self.technicians.add_assignment(
                        technician.id, problem.id, self.settings.capacity_for(technician.specialty)
                    )
                    technician_updated = True

            problem = await self.problems.update(problem)

        logger.info(f"Problem {problem.id} reopened")
        return TransitionResult(problem=problem, changed=True, technician_updated=technician_updated)

    async def delete(self, problem_id: UUID) -> None:
        """
        Delete a problem, releasing its technician if it was still open.

        The release is sent to the user-management service the same way
        as when the problem is solved.

        Raises:
            NotFoundError: when the problem does not exist
            StoreFailureError: when the store could not be written
        """
        with store_operation("delete problem"):
            problem = await self._get_problem(problem_id)

            if problem.assigned_technician_id and problem.status != ProblemStatus.SOLVED.value:
                await self._release_technician(problem)

            await self.problems.delete(problem)

        logger.info(f"Problem {problem_id} deleted")
