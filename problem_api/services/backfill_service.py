"""
Periodic backfill of unassigned problems.

Problems created while no technician was available (or inserted without
going through the API) are picked up here and assigned with the same
selection policy as new problems.
"""

import asyncio
import logging
from typing import Optional

from problem_api.config.settings import get_settings
from problem_api.database.connection import get_session
from problem_api.middleware.request_id import clear_request_id, set_request_id
from problem_api.services.assignment_service import AssignmentService, BackfillReport

logger = logging.getLogger(__name__)


class BackfillService:
    """
    Background task that periodically assigns unassigned problems.

    Disabled when BACKFILL_INTERVAL_SECONDS is 0.
    """

    _instance: Optional["BackfillService"] = None

    def __init__(self):
        self.settings = get_settings()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @classmethod
    def get_instance(cls) -> "BackfillService":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @property
    def enabled(self) -> bool:
        return self.settings.backfill_interval_seconds > 0

    async def start(self) -> None:
        """Start the periodic backfill task."""
        if not self.enabled:
            logger.info("Backfill loop disabled")
            return
        if self._running:
            logger.warning("Backfill service is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._backfill_loop())
        logger.info(f"Backfill service started (every {self.settings.backfill_interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the periodic backfill task."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Backfill service stopped")

    async def run_once(self) -> BackfillReport:
        """Run a single backfill in its own transaction."""
        set_request_id()
        try:
            async with get_session() as session:
                return await AssignmentService(session, self.settings).backfill()
        finally:
            clear_request_id()

    async def _backfill_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error during backfill: {e}", exc_info=True)

            try:
                await asyncio.sleep(self.settings.backfill_interval_seconds)
            except asyncio.CancelledError:
                break
