"""
Outbox message model for side effects delivered after commit.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID as PyUUID
from uuid import uuid4

from sqlalchemy import Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from problem_api.database.connection import Base


class OutboxKind(str, Enum):
    """Kinds of outbound messages."""

    EMAIL_NOTIFICATION = "email_notification"
    TECHNICIAN_RELEASE = "technician_release"


class OutboxStatus(str, Enum):
    """Delivery status of an outbound message."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class OutboxMessage(Base):
    """
    A side effect recorded in the same transaction as the primary write.

    The idempotency key is the problem id, so enqueueing the same effect
    twice for a problem stores a single message.
    """

    __tablename__ = "outbox_messages"

    id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    kind: Mapped[str] = mapped_column(String(40))
    idempotency_key: Mapped[str] = mapped_column(String(128))
    payload: Mapped[Dict[str, Any]] = mapped_column(JSONB)

    status: Mapped[str] = mapped_column(
        String(20), default=OutboxStatus.PENDING.value, index=True
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    next_attempt_at: Mapped[datetime] = mapped_column(server_default=func.now())

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    sent_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("kind", "idempotency_key", name="uq_outbox_kind_key"),
    )

    def __repr__(self) -> str:
        return (
            f"<OutboxMessage(id={self.id}, kind='{self.kind}', status='{self.status}', "
            f"attempts={self.attempts})>"
        )
