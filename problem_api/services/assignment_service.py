"""
Assignment engine.

Creates problems and assigns each regular problem to the least-loaded
available technician of the matching specialty. The problem insert, the
technician update and the notification enqueue all run in the caller's
transaction, so they commit or roll back together.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from problem_api.config.settings import ServiceSettings, get_settings
from problem_api.database.models.problem import TEMPLATE_REPORTER_ID, Problem
from problem_api.database.repositories.problem import ProblemRepository
from problem_api.database.repositories.technician import TechnicianRepository
from problem_api.services.errors import store_operation
from problem_api.services.outbox_service import enqueue_assignment_email
from problem_api.services.selection_policy import (
    SelectionPolicy,
    TechnicianCandidate,
    select_technician,
)

logger = logging.getLogger(__name__)

NO_TECHNICIAN_SENTINEL = "no available technician"


@dataclass
class AssignmentResult:
    """Outcome of creating and assigning a problem."""

    problem_id: UUID
    technician_id: Optional[UUID] = None
    workload: Optional[int] = None

    @property
    def assigned(self) -> bool:
        return self.technician_id is not None

    @property
    def message(self) -> str:
        if self.assigned:
            return f"Assigned to technician with {self.workload} existing problems"
        return "No available technicians found"


@dataclass
class BackfillReport:
    """Outcome of a backfill run."""

    examined: int = 0
    assigned: List[UUID] = field(default_factory=list)

    @property
    def still_unassigned(self) -> int:
        return self.examined - len(self.assigned)


class AssignmentService:
    """Creates problems and assigns them to technicians."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[ServiceSettings] = None,
        policy: Optional[SelectionPolicy] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.policy = policy or SelectionPolicy(self.settings.assignment_policy)
        self.problems = ProblemRepository(session)
        self.technicians = TechnicianRepository(session)

    async def find_candidates(self, category: str) -> List[TechnicianCandidate]:
        """Get the qualified, available technicians for a category."""
        rows = await self.technicians.find_available_by_specialty(category)
        return [
            TechnicianCandidate(
                technician_id=technician.id,
                workload=workload,
                last_assigned_at=technician.last_assigned_at,
                email=technician.email,
            )
            for technician, workload in rows
        ]

    async def choose_technician(self, category: str) -> Optional[TechnicianCandidate]:
        """Pick the technician for a new problem of the given category."""
        candidates = await self.find_candidates(category)
        chosen = select_technician(candidates, self.policy)
        if chosen:
            logger.debug(
                f"Selected technician {chosen.technician_id} for '{category}' "
                f"({chosen.workload} active problems, {len(candidates)} candidates)"
            )
        else:
            logger.info(f"No available technician for category '{category}'")
        return chosen

    async def _record_assignment(self, problem: Problem, technician: TechnicianCandidate) -> None:
        """Add the problem to the technician's set and queue the notification."""
        capacity = self.settings.capacity_for(problem.category)
        is_available = await self.technicians.add_assignment(
            technician.technician_id, problem.id, capacity
        )
        logger.info(
            f"Problem {problem.id} assigned to technician {technician.technician_id} "
            f"(workload {technician.workload} -> {technician.workload + 1}, "
            f"available={is_available})"
        )

        if technician.email:
            await enqueue_assignment_email(
                self.session, str(problem.id), technician.email, problem.description
            )
        else:
            logger.warning(f"Technician {technician.technician_id} has no email, notification skipped")

    async def assign(
        self,
        category: str,
        description: Optional[str],
        reporter_id: str,
        title: Optional[str] = None,
    ) -> AssignmentResult:
        """
        Create a regular problem and assign it to a technician.

        Finding no technician is a valid outcome: the problem is created
        unassigned and can be picked up later by the backfill.

        Raises:
            StoreFailureError: when the store could not be read or written
        """
        with store_operation("create problem"):
            technician = await self.choose_technician(category)

            problem = await self.problems.create_problem(
                reporter_id=reporter_id,
                title=title,
                description=description or title or "",
                category=category,
                is_template=False,
                assigned_technician_id=technician.technician_id if technician else None,
            )

            if technician is None:
                logger.info(f"Problem {problem.id} created without technician")
                return AssignmentResult(problem_id=problem.id)

            await self._record_assignment(problem, technician)

        return AssignmentResult(
            problem_id=problem.id,
            technician_id=technician.technician_id,
            workload=technician.workload,
        )

    async def create_template(
        self, title: Optional[str], category: str, description: Optional[str]
    ) -> Problem:
        """
        Create a predefined (template) problem.

        Templates skip assignment entirely and are never assigned later.

        Raises:
            StoreFailureError: when the store could not be written
        """
        with store_operation("create predefined problem"):
            problem = await self.problems.create_problem(
                reporter_id=TEMPLATE_REPORTER_ID,
                title=title,
                description=description or title or "",
                category=category,
                is_template=True,
                assigned_technician_id=None,
            )
        logger.info(f"Predefined problem {problem.id} created for category '{category}'")
        return problem

    async def assign_unassigned(self, problem: Problem) -> Optional[UUID]:
        """
        Assign an existing problem that has no technician yet.

        Uses the same selection as `assign`. The problem is only updated if
        it is still unassigned, so a concurrent assignment is not
        overwritten.

        Returns:
            The technician id, or None if nothing was assigned
        """
        if problem.is_template or problem.assigned_technician_id is not None:
            return None

        technician = await self.choose_technician(problem.category)
        if technician is None:
            return None

        claimed = await self.problems.set_assignee_if_absent(problem.id, technician.technician_id)
        if not claimed:
            logger.debug(f"Problem {problem.id} was assigned concurrently, skipping")
            return None

        await self._record_assignment(problem, technician)
        return technician.technician_id

    async def backfill(self, limit: Optional[int] = None) -> BackfillReport:
        """
        Assign open problems that were created without a technician.

        Raises:
            StoreFailureError: when the store could not be read or written
        """
        limit = limit or self.settings.backfill_batch_size
        report = BackfillReport()

        with store_operation("backfill unassigned problems"):
            problems = await self.problems.find_unassigned(limit=limit)
            for problem in problems:
                report.examined += 1
                technician_id = await self.assign_unassigned(problem)
                if technician_id:
                    report.assigned.append(problem.id)

        if report.examined:
            logger.info(
                f"Backfill: {len(report.assigned)} of {report.examined} unassigned problems assigned"
            )
        return report
