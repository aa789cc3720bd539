"""
Tests for problem creation and technician assignment.
"""
import pytest
from unittest.mock import AsyncMock, patch
from uuid import UUID, uuid4

from sqlalchemy.exc import OperationalError

from problem_api.config.settings import ServiceSettings
from problem_api.database.models.problem import Problem
from problem_api.services.assignment_service import (
    NO_TECHNICIAN_SENTINEL,
    AssignmentResult,
    AssignmentService,
)
from problem_api.services.errors import StoreFailureError
from problem_api.services.selection_policy import SelectionPolicy


def _created_problem(**kwargs) -> Problem:
    return Problem(id=uuid4(), status="waiting", **kwargs)


@pytest.fixture
def service(mock_session, settings):
    """AssignmentService with mocked repositories."""
    service = AssignmentService(mock_session, settings)
    service.problems = AsyncMock()
    service.problems.create_problem.side_effect = _created_problem
    service.technicians = AsyncMock()
    service.technicians.add_assignment.return_value = True
    return service


@pytest.fixture
def enqueue_email():
    with patch(
        "problem_api.services.assignment_service.enqueue_assignment_email",
        new_callable=AsyncMock,
    ) as mock_enqueue:
        yield mock_enqueue


class TestAssignmentResult:
    """Tests for the assignment result messages."""

    def test_assigned_message(self):
        result = AssignmentResult(problem_id=uuid4(), technician_id=uuid4(), workload=2)

        assert result.assigned is True
        assert result.message == "Assigned to technician with 2 existing problems"

    def test_unassigned_message(self):
        result = AssignmentResult(problem_id=uuid4())

        assert result.assigned is False
        assert result.message == "No available technicians found"

    def test_sentinel_value(self):
        assert NO_TECHNICIAN_SENTINEL == "no available technician"


class TestAssign:
    """Tests for AssignmentService.assign."""

    @pytest.mark.asyncio
    async def test_assigns_least_loaded_technician(self, service, enqueue_email, technician_factory):
        """T has 2 open problems and U has none: U gets the problem."""
        t = technician_factory(email="t@example.com")
        u = technician_factory(email="u@example.com")
        service.technicians.find_available_by_specialty.return_value = [(t, 2), (u, 0)]

        result = await service.assign("plumbing", "Leaky faucet", "chef-1")

        assert result.technician_id == u.id
        assert result.workload == 0
        assert result.message == "Assigned to technician with 0 existing problems"
        service.technicians.find_available_by_specialty.assert_awaited_once_with("plumbing")

        create_kwargs = service.problems.create_problem.call_args.kwargs
        assert create_kwargs["assigned_technician_id"] == u.id
        assert create_kwargs["is_template"] is False
        assert create_kwargs["reporter_id"] == "chef-1"

    @pytest.mark.asyncio
    async def test_records_assignment_with_capacity(self, service, enqueue_email, technician_factory):
        u = technician_factory()
        service.technicians.find_available_by_specialty.return_value = [(u, 0)]

        result = await service.assign("plumbing", "Leaky faucet", "chef-1")

        service.technicians.add_assignment.assert_awaited_once_with(u.id, result.problem_id, 3)

    @pytest.mark.asyncio
    async def test_uses_specialty_capacity_override(self, mock_session, enqueue_email, technician_factory):
        settings = ServiceSettings(technician_capacity=3, technician_capacity_overrides={"electrical": 1})
        service = AssignmentService(mock_session, settings)
        service.problems = AsyncMock()
        service.problems.create_problem.side_effect = _created_problem
        service.technicians = AsyncMock()
        e = technician_factory(specialty="electrical")
        service.technicians.find_available_by_specialty.return_value = [(e, 0)]

        result = await service.assign("electrical", "Sparking socket", "chef-1")

        service.technicians.add_assignment.assert_awaited_once_with(e.id, result.problem_id, 1)

    @pytest.mark.asyncio
    async def test_configured_first_match_policy(self, mock_session, enqueue_email, technician_factory):
        settings = ServiceSettings(assignment_policy="first_match")
        service = AssignmentService(mock_session, settings)
        service.problems = AsyncMock()
        service.problems.create_problem.side_effect = _created_problem
        service.technicians = AsyncMock()
        busy = technician_factory(technician_id=UUID("00000000-0000-0000-0000-00000000000a"))
        idle = technician_factory(technician_id=UUID("00000000-0000-0000-0000-00000000000b"))
        service.technicians.find_available_by_specialty.return_value = [(idle, 0), (busy, 2)]

        result = await service.assign("plumbing", "Leaky faucet", "chef-1")

        assert service.policy == SelectionPolicy.FIRST_MATCH
        assert result.technician_id == busy.id

    def test_default_policy_is_least_workload(self, service):
        assert service.policy == SelectionPolicy.LEAST_WORKLOAD

    @pytest.mark.asyncio
    async def test_enqueues_notification_email(self, service, mock_session, enqueue_email, technician_factory):
        u = technician_factory(email="u@example.com")
        service.technicians.find_available_by_specialty.return_value = [(u, 1)]

        result = await service.assign("plumbing", "Leaky faucet", "chef-1")

        enqueue_email.assert_awaited_once_with(
            mock_session, str(result.problem_id), "u@example.com", "Leaky faucet"
        )

    @pytest.mark.asyncio
    async def test_technician_without_email_skips_notification(self, service, enqueue_email, technician_factory):
        u = technician_factory(email=None)
        service.technicians.find_available_by_specialty.return_value = [(u, 0)]

        result = await service.assign("plumbing", "Leaky faucet", "chef-1")

        assert result.assigned is True
        enqueue_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_technician_creates_unassigned_problem(self, service, enqueue_email):
        """No electrical technician: the problem is created without assignee."""
        service.technicians.find_available_by_specialty.return_value = []

        result = await service.assign("electrical", "Sparking socket", "chef-1")

        assert result.assigned is False
        assert result.technician_id is None
        assert result.message == "No available technicians found"
        assert service.problems.create_problem.call_args.kwargs["assigned_technician_id"] is None
        service.technicians.add_assignment.assert_not_awaited()
        enqueue_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_title_used_when_description_missing(self, service, enqueue_email):
        service.technicians.find_available_by_specialty.return_value = []

        await service.assign("plumbing", None, "chef-1", title="Leak")

        assert service.problems.create_problem.call_args.kwargs["description"] == "Leak"

    @pytest.mark.asyncio
    async def test_store_error_becomes_store_failure(self, service, enqueue_email):
        service.technicians.find_available_by_specialty.return_value = []
        service.problems.create_problem.side_effect = OperationalError("INSERT", {}, Exception("down"))

        with pytest.raises(StoreFailureError) as exc_info:
            await service.assign("plumbing", "Leaky faucet", "chef-1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Failed to create problem"


class TestCreateTemplate:
    """Tests for predefined problems."""

    @pytest.mark.asyncio
    async def test_template_is_never_assigned(self, service, enqueue_email):
        problem = await service.create_template("Broken oven", "electrical", None)

        assert problem.is_template is True
        assert problem.assigned_technician_id is None
        assert problem.reporter_id == "system"
        assert problem.description == "Broken oven"
        service.technicians.find_available_by_specialty.assert_not_awaited()
        service.technicians.add_assignment.assert_not_awaited()
        enqueue_email.assert_not_awaited()


class TestBackfill:
    """Tests for the backfill of unassigned problems."""

    @pytest.mark.asyncio
    async def test_assigns_what_it_can(self, service, enqueue_email, technician_factory, problem_factory):
        first = problem_factory(category="plumbing")
        second = problem_factory(category="electrical")
        u = technician_factory()
        service.problems.find_unassigned.return_value = [first, second]
        service.problems.set_assignee_if_absent.return_value = True
        service.technicians.find_available_by_specialty.side_effect = [[(u, 0)], []]

        report = await service.backfill()

        assert report.examined == 2
        assert report.assigned == [first.id]
        assert report.still_unassigned == 1
        service.problems.find_unassigned.assert_awaited_once_with(limit=100)
        service.problems.set_assignee_if_absent.assert_awaited_once_with(first.id, u.id)
        service.technicians.add_assignment.assert_awaited_once_with(u.id, first.id, 3)

    @pytest.mark.asyncio
    async def test_concurrent_assignment_is_not_overwritten(
        self, service, enqueue_email, technician_factory, problem_factory
    ):
        problem = problem_factory()
        service.technicians.find_available_by_specialty.return_value = [(technician_factory(), 0)]
        service.problems.set_assignee_if_absent.return_value = False

        assert await service.assign_unassigned(problem) is None
        service.technicians.add_assignment.assert_not_awaited()
        enqueue_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_templates_are_skipped(self, service, problem_factory):
        template = problem_factory(is_template=True)

        assert await service.assign_unassigned(template) is None
        service.technicians.find_available_by_specialty.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_explicit_limit(self, service):
        service.problems.find_unassigned.return_value = []

        report = await service.backfill(limit=5)

        assert report.examined == 0
        service.problems.find_unassigned.assert_awaited_once_with(limit=5)
