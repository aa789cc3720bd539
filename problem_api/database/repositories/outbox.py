"""Repository for outbox message operations."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from problem_api.database.models.outbox_message import OutboxMessage, OutboxStatus
from problem_api.database.repositories.base import BaseRepository


class OutboxRepository(BaseRepository[OutboxMessage]):
    """Repository for the outbound message queue."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, OutboxMessage)

    async def enqueue(self, kind: str, idempotency_key: str, payload: Dict[str, Any]) -> bool:
        """
        Record a message to deliver after commit.

        A message with the same kind and key is stored only once.

        Returns:
            True if a new message was stored
        """
        result = await self.session.execute(
            insert(OutboxMessage)
            .values(
                kind=kind,
                idempotency_key=idempotency_key,
                payload=payload,
                status=OutboxStatus.PENDING.value,
                attempts=0,
            )
            .on_conflict_do_nothing(constraint="uq_outbox_kind_key")
            .returning(OutboxMessage.id)
        )
        return result.scalar_one_or_none() is not None

    async def claim_due(self, limit: int = 50) -> List[OutboxMessage]:
        """
        Lock pending messages whose next attempt is due.

        Rows locked by another worker are skipped.
        """
        result = await self.session.execute(
            select(OutboxMessage)
            .where(
                OutboxMessage.status == OutboxStatus.PENDING.value,
                OutboxMessage.next_attempt_at <= func.now(),
            )
            .order_by(OutboxMessage.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())

    async def mark_sent(self, message: OutboxMessage) -> None:
        """Mark a message as delivered."""
        message.status = OutboxStatus.SENT.value
        message.attempts += 1
        message.last_error = None
        message.sent_at = datetime.utcnow()
        await self.session.flush()

    async def mark_failed_attempt(
        self,
        message: OutboxMessage,
        error: str,
        retry_in_seconds: Optional[float],
    ) -> None:
        """
        Record a failed delivery.

        Args:
            message: The message that failed
            error: Error description
            retry_in_seconds: Delay before the next attempt, or None to give up
        """
        message.attempts += 1
        message.last_error = error[:1000]
        if retry_in_seconds is None:
            message.status = OutboxStatus.FAILED.value
        else:
            message.next_attempt_at = datetime.utcnow() + timedelta(seconds=retry_in_seconds)
        await self.session.flush()

    async def list_messages(
        self, status: Optional[str] = None, limit: int = 100
    ) -> List[OutboxMessage]:
        """List messages, newest first, optionally filtered by status."""
        query = select(OutboxMessage)
        if status:
            query = query.where(OutboxMessage.status == status)
        query = query.order_by(OutboxMessage.created_at.desc()).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_by_status(self) -> Dict[str, int]:
        """Get count of messages grouped by status."""
        result = await self.session.execute(
            select(OutboxMessage.status, func.count(OutboxMessage.id))
            .group_by(OutboxMessage.status)
        )
        counts = {status.value: 0 for status in OutboxStatus}
        for row in result.all():
            counts[row[0]] = row[1]
        return counts
