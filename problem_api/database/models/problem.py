"""
Problem model for reported service tickets.
"""
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import UUID as PyUUID
from uuid import uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from problem_api.database.connection import Base

if TYPE_CHECKING:
    from problem_api.database.models.user import User


class ProblemStatus(str, Enum):
    """Lifecycle status of a problem."""

    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    SOLVED = "solved"


TEMPLATE_REPORTER_ID = "system"


class Problem(Base):
    """
    A reported problem.

    Template (predefined) problems are catalog entries: they are never
    assigned to a technician.
    """

    __tablename__ = "problems"

    id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    reporter_id: Mapped[str] = mapped_column(String(128), index=True)
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(50), index=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ProblemStatus.WAITING.value, index=True
    )
    is_template: Mapped[bool] = mapped_column(Boolean, default=False)
    # Bumped by every reopen; keys the technician release of each solve
    reopen_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    # Kept after the problem is solved, as history
    assigned_technician_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    solved_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    # Relationships
    assigned_technician: Mapped[Optional["User"]] = relationship("User")

    __table_args__ = (
        Index("idx_problems_template_status", "is_template", "status"),
        Index("idx_problems_assigned_technician", "assigned_technician_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Problem(id={self.id}, category='{self.category}', status='{self.status}', "
            f"assigned_technician_id={self.assigned_technician_id})>"
        )
