"""
Repository for technician workload and availability.

Workload is the number of active rows in `technician_assignments`. Every
write that changes the assignment set is followed by a single UPDATE of
the technician row that recomputes `is_available` (and, on release,
`current_problem_id`) from the assignment table, so concurrent writers
cannot lose each other's counter updates.
"""

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from problem_api.database.models.problem import Problem, ProblemStatus
from problem_api.database.models.technician_assignment import TechnicianAssignment
from problem_api.database.models.user import TECHNICIAN_ROLE, User
from problem_api.database.repositories.base import BaseRepository


def _active_count_for_user():
    """Correlated subquery: active assignments of the technician being updated."""
    return (
        select(func.count(TechnicianAssignment.id))
        .where(
            TechnicianAssignment.technician_id == User.id,
            TechnicianAssignment.released_at.is_(None),
        )
        .scalar_subquery()
    )


def _latest_active_problem_for_user():
    """Correlated subquery: most recently assigned active problem."""
    return (
        select(TechnicianAssignment.problem_id)
        .where(
            TechnicianAssignment.technician_id == User.id,
            TechnicianAssignment.released_at.is_(None),
        )
        .order_by(TechnicianAssignment.assigned_at.desc(), TechnicianAssignment.id.desc())
        .limit(1)
        .scalar_subquery()
    )


class TechnicianRepository(BaseRepository[User]):
    """Repository for technicians (users with the technician role)."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, User)

    def _active_counts(self):
        return (
            select(
                TechnicianAssignment.technician_id.label("technician_id"),
                func.count(TechnicianAssignment.id).label("workload"),
            )
            .where(TechnicianAssignment.released_at.is_(None))
            .group_by(TechnicianAssignment.technician_id)
            .subquery()
        )

    async def find_available_by_specialty(self, specialty: str) -> List[Tuple[User, int]]:
        """
        Get available technicians of a specialty with their active workload.

        Returns:
            List of (technician, workload) ordered by id
        """
        counts = self._active_counts()
        result = await self.session.execute(
            select(User, func.coalesce(counts.c.workload, 0))
            .outerjoin(counts, counts.c.technician_id == User.id)
            .where(
                User.role == TECHNICIAN_ROLE,
                User.specialty == specialty,
                User.is_available.is_(True),
            )
            .order_by(User.id)
            .execution_options(populate_existing=True)
        )
        return [(row[0], int(row[1])) for row in result.all()]

    async def list_technicians_with_workload(self) -> List[Tuple[User, int]]:
        """Get every technician with their active workload."""
        counts = self._active_counts()
        result = await self.session.execute(
            select(User, func.coalesce(counts.c.workload, 0))
            .outerjoin(counts, counts.c.technician_id == User.id)
            .where(User.role == TECHNICIAN_ROLE)
            .order_by(User.specialty, User.id)
            .execution_options(populate_existing=True)
        )
        return [(row[0], int(row[1])) for row in result.all()]

    async def add_assignment(
        self, technician_id: UUID, problem_id: UUID, capacity: int
    ) -> Optional[bool]:
        """
        Add a problem to a technician's assignment set.

        Adding a pair that already exists re-activates it instead of
        creating a duplicate. The technician row is then updated in one
        statement: current problem, last assignment time and availability.

        Returns:
            The technician's new availability, or None if the technician
            does not exist
        """
        await self.session.execute(
            insert(TechnicianAssignment)
            .values(technician_id=technician_id, problem_id=problem_id)
            .on_conflict_do_update(
                constraint="uq_technician_problem",
                set_={"released_at": None, "assigned_at": func.now()},
            )
        )

        result = await self.session.execute(
            update(User)
            .where(User.id == technician_id)
            .values(
                current_problem_id=problem_id,
                last_assigned_at=func.now(),
                is_available=_active_count_for_user() < capacity,
            )
            .returning(User.is_available)
            .execution_options(synchronize_session=False)
        )
        is_available = result.scalar_one_or_none()
        await self.session.flush()
        return is_available

    async def release_assignment(
        self, technician_id: UUID, problem_id: UUID, capacity: int
    ) -> bool:
        """
        Release an active assignment and recompute the technician's fields.

        Returns:
            True if an active assignment was released
        """
        result = await self.session.execute(
            update(TechnicianAssignment)
            .where(
                TechnicianAssignment.technician_id == technician_id,
                TechnicianAssignment.problem_id == problem_id,
                TechnicianAssignment.released_at.is_(None),
            )
            .values(released_at=func.now())
            .returning(TechnicianAssignment.id)
        )
        released = result.scalar_one_or_none() is not None

        if released:
            await self.refresh_counters(technician_id, capacity)

        await self.session.flush()
        return released

    async def refresh_counters(self, technician_id: UUID, capacity: int) -> Optional[bool]:
        """
        Recompute availability and current problem from the assignment set.

        Returns:
            The technician's availability, or None if it does not exist
        """
        result = await self.session.execute(
            update(User)
            .where(User.id == technician_id)
            .values(
                current_problem_id=_latest_active_problem_for_user(),
                is_available=_active_count_for_user() < capacity,
            )
            .returning(User.is_available)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def release_stale_assignments(self) -> List[Tuple[UUID, UUID, datetime]]:
        """
        Release active assignments whose problem is solved or deleted.

        Returns:
            List of released (technician_id, problem_id, released_at)
        """
        open_problem = select(Problem.id).where(
            and_(
                Problem.id == TechnicianAssignment.problem_id,
                Problem.status != ProblemStatus.SOLVED.value,
            )
        )
        result = await self.session.execute(
            update(TechnicianAssignment)
            .where(
                TechnicianAssignment.released_at.is_(None),
                ~open_problem.exists(),
            )
            .values(released_at=func.now())
            .returning(
                TechnicianAssignment.technician_id,
                TechnicianAssignment.problem_id,
                TechnicianAssignment.released_at,
            )
        )
        released = [(row[0], row[1], row[2]) for row in result.all()]
        await self.session.flush()
        return released
