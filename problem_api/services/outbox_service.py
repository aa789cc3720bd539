"""
Outbox for side effects of problem writes.

Notifications and peer-service updates are recorded in the
`outbox_messages` table inside the request transaction and delivered
afterwards by `OutboxWorker`, so a slow or failing collaborator never
blocks or rolls back the primary write.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from problem_api.config.settings import ServiceSettings, get_settings
from problem_api.database.connection import get_session
from problem_api.database.models.outbox_message import OutboxKind, OutboxMessage
from problem_api.database.repositories.outbox import OutboxRepository
from problem_api.middleware.request_id import clear_request_id, set_request_id
from problem_api.services.errors import CollaboratorError
from problem_api.services.notification_client import NotificationClient, create_notification_client
from problem_api.services.user_service_client import UserServiceClient, create_user_service_client

logger = logging.getLogger(__name__)

ASSIGNMENT_EMAIL_SUBJECT = "New Problem Assigned"


async def enqueue_assignment_email(
    session: AsyncSession, problem_id: str, email: str, description: str
) -> bool:
    """Queue the "new assignment" email for a technician."""
    return await OutboxRepository(session).enqueue(
        OutboxKind.EMAIL_NOTIFICATION.value,
        problem_id,
        {
            "to": email,
            "subject": ASSIGNMENT_EMAIL_SUBJECT,
            "body": f"You have been assigned a new problem: {description}",
        },
    )


def release_key(problem_id: str, episode: Optional[str] = None) -> str:
    """
    Idempotency key of a technician release.

    A problem can be solved, reopened and solved again; each of those
    releases needs its own message, so anything after the first episode
    is keyed by `episode` as well.
    """
    return f"{problem_id}:{episode}" if episode else problem_id


async def enqueue_technician_release(
    session: AsyncSession,
    problem_id: str,
    technician_id: str,
    episode: Optional[str] = None,
) -> bool:
    """
    Queue the availability update sent to the user-management service.

    Returns:
        True if a new message was stored, False if this release was
        already queued
    """
    return await OutboxRepository(session).enqueue(
        OutboxKind.TECHNICIAN_RELEASE.value,
        release_key(problem_id, episode),
        {
            "technician_id": technician_id,
            "isAvailable": True,
            "currentProblem": None,
        },
    )


def retry_delay(attempts: int, base_delay: float, max_delay: float) -> float:
    """Exponential delay before the next delivery of a message."""
    return min(base_delay * (2 ** max(attempts - 1, 0)), max_delay)


@dataclass
class DeliveryReport:
    """Outcome of one outbox drain."""

    sent: int = 0
    retried: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.sent + self.retried + self.failed


class OutboxDispatcher:
    """Delivers outbox messages to the matching collaborator."""

    def __init__(
        self,
        notification_client: NotificationClient,
        user_service_client: UserServiceClient,
        settings: Optional[ServiceSettings] = None,
    ):
        self.notification_client = notification_client
        self.user_service_client = user_service_client
        self.settings = settings or get_settings()

    async def deliver(self, message: OutboxMessage) -> None:
        """
        Deliver a single message.

        Raises:
            CollaboratorError: when the collaborator call failed
        """
        payload = message.payload
        if message.kind == OutboxKind.EMAIL_NOTIFICATION.value:
            await self.notification_client.send_email(
                to=payload["to"], subject=payload["subject"], body=payload["body"]
            )
        elif message.kind == OutboxKind.TECHNICIAN_RELEASE.value:
            await self.user_service_client.update_availability(
                payload["technician_id"],
                is_available=payload["isAvailable"],
                current_problem=payload.get("currentProblem"),
            )
        else:
            raise CollaboratorError("outbox", f"unknown message kind '{message.kind}'", retryable=False)

    async def drain(self, session: AsyncSession) -> DeliveryReport:
        """Deliver every due message, recording failures on the messages."""
        repo = OutboxRepository(session)
        report = DeliveryReport()

        messages = await repo.claim_due(limit=self.settings.outbox_batch_size)
        for message in messages:
            try:
                await self.deliver(message)
            except CollaboratorError as e:
                exhausted = not e.retryable or message.attempts + 1 >= self.settings.outbox_max_attempts
                if exhausted:
                    logger.error(
                        f"Outbox message {message.id} ({message.kind}) failed permanently "
                        f"after {message.attempts + 1} deliveries: {e}"
                    )
                    await repo.mark_failed_attempt(message, str(e), retry_in_seconds=None)
                    report.failed += 1
                else:
                    delay = retry_delay(
                        message.attempts + 1,
                        self.settings.outbox_base_delay_seconds,
                        self.settings.outbox_max_delay_seconds,
                    )
                    logger.warning(
                        f"Outbox message {message.id} ({message.kind}) failed, "
                        f"retrying in {delay:.0f}s: {e}"
                    )
                    await repo.mark_failed_attempt(message, str(e), retry_in_seconds=delay)
                    report.retried += 1
            else:
                await repo.mark_sent(message)
                report.sent += 1

        if report.processed:
            logger.info(
                f"Outbox drained: {report.sent} sent, {report.retried} rescheduled, "
                f"{report.failed} failed"
            )
        return report


class OutboxWorker:
    """
    Background task that periodically drains the outbox.

    Each cycle runs in its own session and transaction.
    """

    _instance: Optional["OutboxWorker"] = None

    def __init__(self, dispatcher: Optional[OutboxDispatcher] = None):
        self.settings = get_settings()
        self.dispatcher = dispatcher or OutboxDispatcher(
            create_notification_client(self.settings),
            create_user_service_client(self.settings),
            self.settings,
        )
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @classmethod
    def get_instance(cls) -> "OutboxWorker":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    async def start(self) -> None:
        """Start the periodic delivery task."""
        if self._running:
            logger.warning("Outbox worker is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Outbox worker started")

    async def stop(self) -> None:
        """Stop the delivery task and close the collaborator clients."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        await self.dispatcher.notification_client.close()
        await self.dispatcher.user_service_client.close()
        logger.info("Outbox worker stopped")

    async def run_once(self) -> DeliveryReport:
        """Drain the outbox once."""
        set_request_id()
        try:
            async with get_session() as session:
                return await self.dispatcher.drain(session)
        finally:
            clear_request_id()

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error draining outbox: {e}", exc_info=True)

            try:
                await asyncio.sleep(self.settings.outbox_poll_interval_seconds)
            except asyncio.CancelledError:
                break
