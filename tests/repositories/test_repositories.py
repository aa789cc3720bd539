"""
Tests for the repositories against a mock session.
"""
import re

import pytest
from datetime import datetime
from unittest.mock import MagicMock
from uuid import uuid4

from sqlalchemy.dialects import postgresql

from problem_api.database.models.outbox_message import OutboxMessage
from problem_api.database.repositories.outbox import OutboxRepository
from problem_api.database.repositories.problem import ProblemRepository
from problem_api.database.repositories.technician import TechnicianRepository


def _scalar_result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = value
    return result


def _compiled(statement):
    """Render a statement as Postgres SQL with whitespace collapsed."""
    compiled = statement.compile(dialect=postgresql.dialect())
    return " ".join(str(compiled).split()), compiled.params


def _capacity_param(sql, params):
    """Value compared against the active assignment count."""
    match = re.search(r"released_at IS NULL\) < %\((\w+)\)s", sql)
    assert match, sql
    return params[match.group(1)]


class TestProblemRepository:
    """Tests for ProblemRepository."""

    @pytest.fixture
    def repo(self, mock_session):
        return ProblemRepository(mock_session)

    @pytest.mark.asyncio
    async def test_create_problem_starts_waiting(self, repo, mock_session):
        problem = await repo.create_problem(
            reporter_id="chef-1", description="Leak", category="plumbing"
        )

        assert problem.status == "waiting"
        assert problem.is_template is False
        assert problem.assigned_technician_id is None
        mock_session.add.assert_called_once_with(problem)
        mock_session.flush.assert_awaited_once()
        mock_session.refresh.assert_awaited_once_with(problem)

    @pytest.mark.asyncio
    async def test_get_by_id_for_update_locks_row(self, repo, mock_session, problem_factory):
        problem = problem_factory()
        mock_session.execute.return_value = _scalar_result(problem)

        found = await repo.get_by_id(problem.id, for_update=True)

        assert found is problem
        statement = mock_session.execute.call_args.args[0]
        assert statement._for_update_arg is not None

    @pytest.mark.asyncio
    async def test_set_assignee_if_absent_claimed(self, repo, mock_session):
        mock_session.execute.return_value = _scalar_result(uuid4())

        assert await repo.set_assignee_if_absent(uuid4(), uuid4()) is True

    @pytest.mark.asyncio
    async def test_set_assignee_if_absent_lost(self, repo, mock_session):
        mock_session.execute.return_value = _scalar_result(None)

        assert await repo.set_assignee_if_absent(uuid4(), uuid4()) is False

    @pytest.mark.asyncio
    async def test_count_by_status_fills_missing(self, repo, mock_session):
        result = MagicMock()
        result.all.return_value = [("waiting", 4), ("solved", 1)]
        mock_session.execute.return_value = result

        counts = await repo.count_by_status()

        assert counts == {"waiting": 4, "in_progress": 0, "solved": 1}


class TestTechnicianRepository:
    """Tests for TechnicianRepository."""

    @pytest.fixture
    def repo(self, mock_session):
        return TechnicianRepository(mock_session)

    @pytest.mark.asyncio
    async def test_find_available_returns_workloads(self, repo, mock_session, technician_factory):
        t, u = technician_factory(), technician_factory()
        result = MagicMock()
        result.all.return_value = [(t, 2), (u, 0)]
        mock_session.execute.return_value = result

        rows = await repo.find_available_by_specialty("plumbing")

        assert rows == [(t, 2), (u, 0)]

    @pytest.mark.asyncio
    async def test_add_assignment_upserts_then_updates_technician(self, repo, mock_session):
        mock_session.execute.side_effect = [MagicMock(), _scalar_result(False)]

        is_available = await repo.add_assignment(uuid4(), uuid4(), capacity=3)

        assert is_available is False
        assert mock_session.execute.await_count == 2
        mock_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_add_assignment_reactivates_existing_pair(self, repo, mock_session):
        mock_session.execute.side_effect = [MagicMock(), _scalar_result(True)]

        await repo.add_assignment(uuid4(), uuid4(), capacity=3)

        sql, _ = _compiled(mock_session.execute.await_args_list[0].args[0])
        assert sql.startswith("INSERT INTO technician_assignments")
        assert "ON CONFLICT ON CONSTRAINT uq_technician_problem DO UPDATE" in sql

    @pytest.mark.asyncio
    @pytest.mark.parametrize("capacity", [3, 2])
    async def test_add_assignment_availability_counts_active_rows(self, repo, mock_session, capacity):
        # Available while the new active count is below capacity: 2 -> 3 flips at capacity 3
        mock_session.execute.side_effect = [MagicMock(), _scalar_result(True)]

        await repo.add_assignment(uuid4(), uuid4(), capacity=capacity)

        sql, params = _compiled(mock_session.execute.await_args_list[1].args[0])
        assert sql.startswith("UPDATE users SET")
        assert "is_available=" in sql
        assert "(SELECT count(technician_assignments.id)" in sql
        assert "FROM technician_assignments WHERE technician_assignments.technician_id = users.id" in sql
        assert "AND technician_assignments.released_at IS NULL) <" in sql
        assert _capacity_param(sql, params) == capacity
        assert "last_assigned_at=now()" in sql
        assert sql.endswith("RETURNING users.is_available")

    @pytest.mark.asyncio
    async def test_refresh_counters_uses_latest_active_problem(self, repo, mock_session):
        mock_session.execute.return_value = _scalar_result(True)

        assert await repo.refresh_counters(uuid4(), capacity=3) is True

        sql, params = _compiled(mock_session.execute.await_args.args[0])
        assert "current_problem_id=(SELECT technician_assignments.problem_id" in sql
        assert (
            "ORDER BY technician_assignments.assigned_at DESC, technician_assignments.id DESC LIMIT" in sql
        )
        assert sql.count("technician_assignments.released_at IS NULL") == 2
        assert _capacity_param(sql, params) == 3

    @pytest.mark.asyncio
    async def test_add_assignment_unknown_technician(self, repo, mock_session):
        mock_session.execute.side_effect = [MagicMock(), _scalar_result(None)]

        assert await repo.add_assignment(uuid4(), uuid4(), capacity=3) is None

    @pytest.mark.asyncio
    async def test_release_recomputes_counters(self, repo, mock_session):
        mock_session.execute.side_effect = [_scalar_result(uuid4()), _scalar_result(True)]

        assert await repo.release_assignment(uuid4(), uuid4(), capacity=3) is True
        assert mock_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_release_of_inactive_assignment(self, repo, mock_session):
        mock_session.execute.return_value = _scalar_result(None)

        assert await repo.release_assignment(uuid4(), uuid4(), capacity=3) is False
        assert mock_session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_release_stale_assignments(self, repo, mock_session):
        row = (uuid4(), uuid4(), datetime(2026, 3, 2, 8, 0, 0))
        result = MagicMock()
        result.all.return_value = [row]
        mock_session.execute.return_value = result

        assert await repo.release_stale_assignments() == [row]


class TestOutboxRepository:
    """Tests for OutboxRepository."""

    @pytest.fixture
    def repo(self, mock_session):
        return OutboxRepository(mock_session)

    def _message(self) -> OutboxMessage:
        return OutboxMessage(
            id=uuid4(), kind="email_notification", idempotency_key="p-1",
            payload={}, status="pending", attempts=0,
        )

    @pytest.mark.asyncio
    async def test_enqueue_new_message(self, repo, mock_session):
        mock_session.execute.return_value = _scalar_result(uuid4())

        assert await repo.enqueue("email_notification", "p-1", {"to": "x"}) is True

    @pytest.mark.asyncio
    async def test_enqueue_duplicate_key(self, repo, mock_session):
        mock_session.execute.return_value = _scalar_result(None)

        assert await repo.enqueue("email_notification", "p-1", {"to": "x"}) is False

    @pytest.mark.asyncio
    async def test_mark_sent(self, repo):
        message = self._message()

        await repo.mark_sent(message)

        assert message.status == "sent"
        assert message.attempts == 1
        assert message.sent_at is not None

    @pytest.mark.asyncio
    async def test_mark_failed_attempt_reschedules(self, repo):
        message = self._message()
        before = datetime.utcnow()

        await repo.mark_failed_attempt(message, "boom", retry_in_seconds=60)

        assert message.status == "pending"
        assert message.attempts == 1
        assert message.last_error == "boom"
        assert message.next_attempt_at > before

    @pytest.mark.asyncio
    async def test_mark_failed_attempt_gives_up(self, repo):
        message = self._message()

        await repo.mark_failed_attempt(message, "boom", retry_in_seconds=None)

        assert message.status == "failed"
