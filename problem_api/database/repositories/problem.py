"""Repository for problem operations."""

from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from problem_api.database.models.problem import Problem, ProblemStatus
from problem_api.database.repositories.base import BaseRepository


class ProblemRepository(BaseRepository[Problem]):
    """Repository for problem CRUD operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Problem)

    async def create_problem(
        self,
        reporter_id: str,
        description: str,
        category: str,
        title: Optional[str] = None,
        is_template: bool = False,
        assigned_technician_id: Optional[UUID] = None,
    ) -> Problem:
        """Create a new problem in the waiting status."""
        problem = Problem(
            reporter_id=reporter_id,
            title=title,
            description=description,
            category=category,
            status=ProblemStatus.WAITING.value,
            is_template=is_template,
            assigned_technician_id=assigned_technician_id,
        )
        return await self.create(problem)

    async def list_problems(
        self,
        reporter_id: Optional[str] = None,
        assigned_technician_id: Optional[UUID] = None,
        is_template: Optional[bool] = None,
        skip: int = 0,
        limit: int = 500,
    ) -> List[Problem]:
        """List problems matching the given equality filters, newest first."""
        query = select(Problem)

        if reporter_id:
            query = query.where(Problem.reporter_id == reporter_id)
        if assigned_technician_id:
            query = query.where(Problem.assigned_technician_id == assigned_technician_id)
        if is_template is not None:
            query = query.where(Problem.is_template == is_template)

        query = query.order_by(Problem.created_at.desc()).offset(skip).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def set_assignee_if_absent(self, problem_id: UUID, technician_id: UUID) -> bool:
        """
        Assign a technician only if the problem still has none.

        Template and solved problems are never touched.

        Returns:
            True if the problem was updated
        """
        result = await self.session.execute(
            update(Problem)
            .where(
                Problem.id == problem_id,
                Problem.assigned_technician_id.is_(None),
                Problem.is_template.is_(False),
                Problem.status != ProblemStatus.SOLVED.value,
            )
            .values(assigned_technician_id=technician_id)
            .returning(Problem.id)
        )
        updated = result.scalar_one_or_none() is not None
        await self.session.flush()
        return updated

    async def find_unassigned(self, limit: int = 100) -> List[Problem]:
        """Get open, non-template problems without an assignee, oldest first."""
        result = await self.session.execute(
            select(Problem)
            .where(
                Problem.assigned_technician_id.is_(None),
                Problem.is_template.is_(False),
                Problem.status != ProblemStatus.SOLVED.value,
            )
            .order_by(Problem.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_by_status(self) -> Dict[str, int]:
        """Get count of regular problems grouped by status."""
        result = await self.session.execute(
            select(Problem.status, func.count(Problem.id))
            .where(Problem.is_template.is_(False))
            .group_by(Problem.status)
        )
        counts = {status.value: 0 for status in ProblemStatus}
        for row in result.all():
            counts[row[0]] = row[1]
        return counts
