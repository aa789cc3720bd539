"""
Tests for technician reconciliation.
"""
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from problem_api.services.errors import StoreFailureError
from problem_api.services.reconciliation_service import ReconciliationService


@pytest.fixture
def service(mock_session, settings):
    service = ReconciliationService(mock_session, settings)
    service.technicians = AsyncMock()
    service.technicians.release_stale_assignments.return_value = []
    service.technicians.list_technicians_with_workload.return_value = []
    return service


@pytest.mark.asyncio
async def test_releases_stale_assignments(service, mock_session):
    technician_id, problem_id = uuid4(), uuid4()
    released_at = datetime(2026, 3, 2, 8, 15, 0, 120000)
    service.technicians.release_stale_assignments.return_value = [(technician_id, problem_id, released_at)]

    with patch(
        "problem_api.services.reconciliation_service.enqueue_technician_release",
        new_callable=AsyncMock,
    ) as enqueue:
        report = await service.reconcile_technicians()

    assert report.released_assignments == 1
    enqueue.assert_awaited_once_with(
        mock_session, str(problem_id), str(technician_id), episode="stale-20260302T081500120000"
    )


@pytest.mark.asyncio
async def test_refreshes_every_technician(service, technician_factory):
    full = technician_factory(is_available=False)
    free = technician_factory(is_available=True)
    service.technicians.list_technicians_with_workload.return_value = [(full, 1), (free, 0)]
    service.technicians.refresh_counters.side_effect = [True, True]

    report = await service.reconcile_technicians()

    assert report.technicians == 2
    assert report.availability_changed == 1
    service.technicians.refresh_counters.assert_any_await(full.id, 3)
    service.technicians.refresh_counters.assert_any_await(free.id, 3)


@pytest.mark.asyncio
async def test_uses_specialty_capacity(mock_session, technician_factory):
    from problem_api.config.settings import ServiceSettings

    settings = ServiceSettings(technician_capacity_overrides={"electrical": 2})
    service = ReconciliationService(mock_session, settings)
    service.technicians = AsyncMock()
    service.technicians.release_stale_assignments.return_value = []
    electrician = technician_factory(specialty="electrical")
    service.technicians.list_technicians_with_workload.return_value = [(electrician, 2)]
    service.technicians.refresh_counters.return_value = False

    await service.reconcile_technicians()

    service.technicians.refresh_counters.assert_awaited_once_with(electrician.id, 2)


@pytest.mark.asyncio
async def test_store_error(service):
    service.technicians.release_stale_assignments.side_effect = OperationalError(
        "UPDATE", {}, Exception("down")
    )

    with pytest.raises(StoreFailureError):
        await service.reconcile_technicians()
