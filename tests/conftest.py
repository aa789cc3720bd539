"""
Pytest configuration and shared fixtures.

The store is never touched: sessions are mocks and repositories are
replaced with AsyncMock objects where a service needs them.
"""

import pytest
from datetime import datetime
from typing import Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

from problem_api.config.settings import ServiceSettings, reset_settings
from problem_api.database.models.problem import Problem, ProblemStatus
from problem_api.database.models.user import TECHNICIAN_ROLE, User


@pytest.fixture(autouse=True)
def fresh_settings():
    """Reset the global settings so environment changes are picked up."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings():
    """Settings with the default capacity and workers disabled."""
    return ServiceSettings(
        technician_capacity=3,
        background_workers_enabled=False,
        outbox_base_delay_seconds=30.0,
        outbox_max_delay_seconds=3600.0,
        outbox_max_attempts=8,
        backfill_batch_size=100,
    )


@pytest.fixture
def mock_session():
    """Create a mock async session."""
    session = MagicMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.delete = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


def make_technician(
    specialty: str = "plumbing",
    email: Optional[str] = "tech@example.com",
    last_assigned_at: Optional[datetime] = None,
    is_available: bool = True,
    technician_id: Optional[UUID] = None,
) -> User:
    """Build a technician row without a session."""
    return User(
        id=technician_id or uuid4(),
        email=email,
        name="Technician",
        role=TECHNICIAN_ROLE,
        specialty=specialty,
        is_available=is_available,
        last_assigned_at=last_assigned_at,
    )


def make_problem(
    category: str = "plumbing",
    status: ProblemStatus = ProblemStatus.WAITING,
    assigned_technician_id: Optional[UUID] = None,
    is_template: bool = False,
    solved_at: Optional[datetime] = None,
) -> Problem:
    """Build a problem row without a session."""
    return Problem(
        id=uuid4(),
        reporter_id="chef-1",
        title=None,
        description="Leaky faucet in kitchen 2",
        category=category,
        status=status.value,
        is_template=is_template,
        assigned_technician_id=assigned_technician_id,
        created_at=datetime(2026, 3, 1, 12, 0, 0),
        solved_at=solved_at,
    )


@pytest.fixture
def technician_factory():
    """Factory for technician rows."""
    return make_technician


@pytest.fixture
def problem_factory():
    """Factory for problem rows."""
    return make_problem
