"""
Problems router: reporting, assignment, listing and lifecycle endpoints.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from problem_api.config.settings import ServiceSettings, get_settings
from problem_api.database.connection import get_db
from problem_api.database.repositories.problem import ProblemRepository
from problem_api.models.problem_models import (
    CreatePredefinedProblemRequest,
    CreatePredefinedProblemResponse,
    CreateProblemRequest,
    CreateProblemResponse,
    MessageResponse,
    ProblemResponse,
    UpdateStatusRequest,
    UpdateStatusResponse,
)
from problem_api.services.assignment_service import NO_TECHNICIAN_SENTINEL, AssignmentService
from problem_api.services.errors import NotFoundError
from problem_api.services.lifecycle_service import LifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/problems", tags=["Problems"])


def _parse_problem_id(problem_id: str) -> UUID:
    """A malformed id cannot match any problem."""
    try:
        return UUID(problem_id)
    except ValueError:
        raise NotFoundError("Problem not found", details={"problem_id": problem_id})


@router.post("", response_model=CreateProblemResponse, status_code=status.HTTP_201_CREATED)
async def create_problem(
    request: CreateProblemRequest,
    db: AsyncSession = Depends(get_db),
    settings: ServiceSettings = Depends(get_settings),
) -> CreateProblemResponse:
    """
    Report a problem and assign it to the least-loaded technician.

    When no technician of the category is available the problem is still
    created, unassigned.
    """
    service = AssignmentService(db, settings)
    result = await service.assign(
        category=request.category,
        description=request.description,
        reporter_id=request.reporter_id,
        title=request.title,
    )

    return CreateProblemResponse(
        id=str(result.problem_id),
        assigned_to=str(result.technician_id) if result.assigned else NO_TECHNICIAN_SENTINEL,
        current_workload=result.workload if result.assigned else "N/A",
        message=result.message,
    )


@router.post(
    "/predefined",
    response_model=CreatePredefinedProblemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_predefined_problem(
    request: CreatePredefinedProblemRequest,
    db: AsyncSession = Depends(get_db),
    settings: ServiceSettings = Depends(get_settings),
) -> CreatePredefinedProblemResponse:
    """Add a predefined problem to the catalog. Predefined problems are never assigned."""
    service = AssignmentService(db, settings)
    problem = await service.create_template(
        title=request.title,
        category=request.category,
        description=request.description,
    )

    return CreatePredefinedProblemResponse(
        id=str(problem.id),
        message="Predefined problem created successfully",
        assigned_technician=None,
        status=problem.status,
    )


@router.get("/predefined", response_model=List[ProblemResponse])
async def list_predefined_problems(
    db: AsyncSession = Depends(get_db),
) -> List[ProblemResponse]:
    """List the predefined problem catalog."""
    problems = await ProblemRepository(db).list_problems(is_template=True)
    return [ProblemResponse.from_problem(p) for p in problems]


@router.get("/regular", response_model=List[ProblemResponse])
async def list_regular_problems(
    db: AsyncSession = Depends(get_db),
) -> List[ProblemResponse]:
    """List reported (non-predefined) problems."""
    problems = await ProblemRepository(db).list_problems(is_template=False)
    return [ProblemResponse.from_problem(p) for p in problems]


@router.get("", response_model=List[ProblemResponse])
async def list_problems(
    reporter_id: Optional[str] = Query(None, alias="reporterId"),
    chef_id: Optional[str] = Query(None, alias="chefId"),
    assigned_technician: Optional[str] = Query(None, alias="assignedTechnician"),
    skip: int = Query(0, ge=0),
    limit: int = Query(500, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> List[ProblemResponse]:
    """
    List problems filtered by reporter and/or assigned technician.

    Args:
        reporter_id: Reporter to match (`chefId` is accepted as an alias)
        assigned_technician: Technician UUID to match
    """
    technician_uuid = None
    if assigned_technician:
        try:
            technician_uuid = UUID(assigned_technician)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid technician id",
            )

    problems = await ProblemRepository(db).list_problems(
        reporter_id=reporter_id or chef_id,
        assigned_technician_id=technician_uuid,
        skip=skip,
        limit=limit,
    )
    return [ProblemResponse.from_problem(p) for p in problems]


@router.get("/{problem_id}", response_model=ProblemResponse)
async def get_problem(
    problem_id: str,
    db: AsyncSession = Depends(get_db),
) -> ProblemResponse:
    """Get a problem by id."""
    problem = await ProblemRepository(db).get_by_id(_parse_problem_id(problem_id))
    if problem is None:
        raise NotFoundError("Problem not found", details={"problem_id": problem_id})
    return ProblemResponse.from_problem(problem)


@router.put("/{problem_id}", response_model=UpdateStatusResponse)
async def update_problem_status(
    problem_id: str,
    request: UpdateStatusRequest,
    db: AsyncSession = Depends(get_db),
    settings: ServiceSettings = Depends(get_settings),
) -> UpdateStatusResponse:
    """
    Change the status of a problem.

    Solving a problem releases its technician. Solved problems can only
    leave the solved status through the reopen endpoint.
    """
    service = LifecycleService(db, settings)
    result = await service.transition(_parse_problem_id(problem_id), request.status)

    return UpdateStatusResponse(
        message=result.message,
        status=result.problem.status,
        technician_updated=result.technician_updated,
    )


@router.post("/{problem_id}/reopen", response_model=UpdateStatusResponse)
async def reopen_problem(
    problem_id: str,
    db: AsyncSession = Depends(get_db),
    settings: ServiceSettings = Depends(get_settings),
) -> UpdateStatusResponse:
    """Move a solved problem back to waiting, returning it to its technician."""
    service = LifecycleService(db, settings)
    result = await service.reopen(_parse_problem_id(problem_id))

    return UpdateStatusResponse(
        message="Problem reopened",
        status=result.problem.status,
        technician_updated=result.technician_updated,
    )


@router.delete("/{problem_id}", response_model=MessageResponse)
async def delete_problem(
    problem_id: str,
    db: AsyncSession = Depends(get_db),
    settings: ServiceSettings = Depends(get_settings),
) -> MessageResponse:
    """Delete a problem."""
    service = LifecycleService(db, settings)
    await service.delete(_parse_problem_id(problem_id))
    return MessageResponse(message="Problem deleted successfully")
