"""
User SQLAlchemy model.

Users are owned by the user-management service; this service reads them
and maintains the assignment fields of users with the technician role.
"""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID as PyUUID
from uuid import uuid4

from sqlalchemy import Boolean, Index, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from problem_api.database.connection import Base

if TYPE_CHECKING:
    from problem_api.database.models.technician_assignment import TechnicianAssignment


TECHNICIAN_ROLE = "technician"


class User(Base):
    """
    User model.

    For technicians, `is_available` mirrors "active workload below
    capacity" and `current_problem_id` points at the most recently
    assigned problem that is still active.
    """

    __tablename__ = "users"

    id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(30), index=True)
    specialty: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)

    # No foreign key: problems already reference users
    current_problem_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    last_assigned_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    assignments: Mapped[List["TechnicianAssignment"]] = relationship(
        "TechnicianAssignment",
        back_populates="technician",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_users_role_specialty_available", "role", "specialty", "is_available"),
    )

    def __repr__(self) -> str:
        return (
            f"<User(id={self.id}, role='{self.role}', specialty='{self.specialty}', "
            f"is_available={self.is_available})>"
        )
