"""
Technician reconciliation.

Repairs technician rows that drifted from the assignment set, e.g. after
a problem was solved or deleted outside this service.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from problem_api.config.settings import ServiceSettings, get_settings
from problem_api.database.repositories.technician import TechnicianRepository
from problem_api.services.errors import store_operation
from problem_api.services.outbox_service import enqueue_technician_release

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """Outcome of a reconciliation run."""

    technicians: int = 0
    released_assignments: int = 0
    availability_changed: int = 0


class ReconciliationService:
    """Recomputes technician availability from their active assignments."""

    def __init__(self, session: AsyncSession, settings: Optional[ServiceSettings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.technicians = TechnicianRepository(session)

    async def reconcile_technicians(self) -> ReconcileReport:
        """
        Release stale assignments and refresh every technician's counters.

        Raises:
            StoreFailureError: when the store could not be read or written
        """
        report = ReconcileReport()

        with store_operation("reconcile technicians"):
            released = await self.technicians.release_stale_assignments()
            report.released_assignments = len(released)
            for technician_id, problem_id, released_at in released:
                await enqueue_technician_release(
                    self.session,
                    str(problem_id),
                    str(technician_id),
                    episode=f"stale-{released_at:%Y%m%dT%H%M%S%f}",
                )

            rows = await self.technicians.list_technicians_with_workload()
            for technician, _ in rows:
                report.technicians += 1
                before = technician.is_available
                after = await self.technicians.refresh_counters(
                    technician.id, self.settings.capacity_for(technician.specialty)
                )
                if after is not None and after != before:
                    report.availability_changed += 1
                    logger.info(
                        f"Technician {technician.id} availability corrected: {before} -> {after}"
                    )

        logger.info(
            f"Reconciliation: {report.technicians} technicians checked, "
            f"{report.released_assignments} stale assignments released, "
            f"{report.availability_changed} availability flags corrected"
        )
        return report
