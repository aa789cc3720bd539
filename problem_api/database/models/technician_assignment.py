"""
Technician assignment model: the set of problems assigned to a technician.
"""
from datetime import datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID as PyUUID
from uuid import uuid4

from sqlalchemy import ForeignKey, Index, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from problem_api.database.connection import Base

if TYPE_CHECKING:
    from problem_api.database.models.user import User


class TechnicianAssignment(Base):
    """
    Membership of a problem in a technician's assignment set.

    One row per (technician, problem) pair. The row is active while
    `released_at` is null; active rows make up the technician's workload.
    Released rows stay as the technician's assignment history.
    """

    __tablename__ = "technician_assignments"

    id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    technician_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE")
    )
    # Kept after the problem is deleted so history survives
    problem_id: Mapped[PyUUID] = mapped_column(UUID(as_uuid=True))

    assigned_at: Mapped[datetime] = mapped_column(server_default=func.now())
    released_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    technician: Mapped["User"] = relationship("User", back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("technician_id", "problem_id", name="uq_technician_problem"),
        Index("idx_assignments_technician_active", "technician_id", "released_at"),
        Index("idx_assignments_problem", "problem_id"),
    )

    @property
    def is_active(self) -> bool:
        return self.released_at is None

    def __repr__(self) -> str:
        return (
            f"<TechnicianAssignment(technician_id={self.technician_id}, "
            f"problem_id={self.problem_id}, active={self.is_active})>"
        )
