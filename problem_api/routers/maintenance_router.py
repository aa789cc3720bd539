"""
Maintenance router: on-demand backfill, technician reconciliation and
outbox inspection.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from problem_api.config.settings import ServiceSettings, get_settings
from problem_api.database.connection import get_db
from problem_api.database.models.outbox_message import OutboxStatus
from problem_api.database.repositories.outbox import OutboxRepository
from problem_api.models.problem_models import (
    BackfillResponse,
    OutboxListResponse,
    OutboxMessageResponse,
    ReconcileResponse,
)
from problem_api.services.assignment_service import AssignmentService
from problem_api.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/maintenance", tags=["Maintenance"])


@router.post("/backfill", response_model=BackfillResponse)
async def run_backfill(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    settings: ServiceSettings = Depends(get_settings),
) -> BackfillResponse:
    """Assign open problems that have no technician yet."""
    report = await AssignmentService(db, settings).backfill(limit=limit)
    return BackfillResponse(
        examined=report.examined,
        assigned=[str(problem_id) for problem_id in report.assigned],
        still_unassigned=report.still_unassigned,
    )


@router.post("/reconcile", response_model=ReconcileResponse)
async def run_reconcile(
    db: AsyncSession = Depends(get_db),
    settings: ServiceSettings = Depends(get_settings),
) -> ReconcileResponse:
    """Recompute technician availability from their active assignments."""
    report = await ReconciliationService(db, settings).reconcile_technicians()
    return ReconcileResponse(
        technicians=report.technicians,
        released_assignments=report.released_assignments,
        availability_changed=report.availability_changed,
    )


@router.get("/outbox", response_model=OutboxListResponse)
async def list_outbox(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> OutboxListResponse:
    """List outbound messages with their delivery state."""
    if status_filter and status_filter not in [s.value for s in OutboxStatus]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid outbox status",
        )

    repo = OutboxRepository(db)
    messages = await repo.list_messages(status=status_filter, limit=limit)
    counts = await repo.count_by_status()

    return OutboxListResponse(
        messages=[
            OutboxMessageResponse(
                id=str(m.id),
                kind=m.kind,
                idempotency_key=m.idempotency_key,
                status=m.status,
                attempts=m.attempts,
                last_error=m.last_error,
                next_attempt_at=m.next_attempt_at,
                created_at=m.created_at,
                sent_at=m.sent_at,
            )
            for m in messages
        ],
        counts_by_status=counts,
    )
