"""
Tests for the outbox: enqueueing side effects and delivering them.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from problem_api.database.models.outbox_message import OutboxKind, OutboxMessage
from problem_api.services.errors import CollaboratorError
from problem_api.services.outbox_service import (
    ASSIGNMENT_EMAIL_SUBJECT,
    DeliveryReport,
    OutboxDispatcher,
    enqueue_assignment_email,
    enqueue_technician_release,
    release_key,
    retry_delay,
)


def _email_message(attempts: int = 0) -> OutboxMessage:
    return OutboxMessage(
        id=uuid4(),
        kind=OutboxKind.EMAIL_NOTIFICATION.value,
        idempotency_key=str(uuid4()),
        payload={"to": "u@example.com", "subject": ASSIGNMENT_EMAIL_SUBJECT, "body": "hello"},
        status="pending",
        attempts=attempts,
    )


def _release_message(technician_id: str) -> OutboxMessage:
    return OutboxMessage(
        id=uuid4(),
        kind=OutboxKind.TECHNICIAN_RELEASE.value,
        idempotency_key=str(uuid4()),
        payload={"technician_id": technician_id, "isAvailable": True, "currentProblem": None},
        status="pending",
        attempts=0,
    )


class TestRetryDelay:
    """Tests for the exponential delay between deliveries."""

    def test_first_retry_uses_base_delay(self):
        assert retry_delay(1, 30.0, 3600.0) == 30.0

    def test_delay_doubles(self):
        assert retry_delay(2, 30.0, 3600.0) == 60.0
        assert retry_delay(3, 30.0, 3600.0) == 120.0

    def test_delay_is_capped(self):
        assert retry_delay(20, 30.0, 3600.0) == 3600.0


class TestEnqueue:
    """Tests for recording side effects in the outbox."""

    @pytest.mark.asyncio
    async def test_assignment_email_payload(self, mock_session):
        with patch("problem_api.services.outbox_service.OutboxRepository") as repo_cls:
            repo_cls.return_value.enqueue = AsyncMock(return_value=True)

            stored = await enqueue_assignment_email(mock_session, "p-1", "u@example.com", "Leaky faucet")

        assert stored is True
        repo_cls.assert_called_once_with(mock_session)
        repo_cls.return_value.enqueue.assert_awaited_once_with(
            "email_notification",
            "p-1",
            {
                "to": "u@example.com",
                "subject": "New Problem Assigned",
                "body": "You have been assigned a new problem: Leaky faucet",
            },
        )

    @pytest.mark.asyncio
    async def test_technician_release_payload(self, mock_session):
        with patch("problem_api.services.outbox_service.OutboxRepository") as repo_cls:
            repo_cls.return_value.enqueue = AsyncMock(return_value=False)

            stored = await enqueue_technician_release(mock_session, "p-1", "t-1")

        assert stored is False
        repo_cls.return_value.enqueue.assert_awaited_once_with(
            "technician_release",
            "p-1",
            {"technician_id": "t-1", "isAvailable": True, "currentProblem": None},
        )

    @pytest.mark.asyncio
    async def test_technician_release_after_reopen_has_own_key(self, mock_session):
        with patch("problem_api.services.outbox_service.OutboxRepository") as repo_cls:
            repo_cls.return_value.enqueue = AsyncMock(return_value=True)

            await enqueue_technician_release(mock_session, "p-1", "t-1", episode="reopen-2")

        assert repo_cls.return_value.enqueue.await_args.args[1] == "p-1:reopen-2"

    def test_release_key(self):
        assert release_key("p-1") == "p-1"
        assert release_key("p-1", "reopen-1") == "p-1:reopen-1"


class TestOutboxDispatcher:
    """Tests for draining the outbox."""

    @pytest.fixture
    def notification_client(self):
        return MagicMock(send_email=AsyncMock())

    @pytest.fixture
    def user_service_client(self):
        return MagicMock(update_availability=AsyncMock())

    @pytest.fixture
    def dispatcher(self, notification_client, user_service_client, settings):
        return OutboxDispatcher(notification_client, user_service_client, settings)

    @pytest.fixture
    def repo(self):
        with patch("problem_api.services.outbox_service.OutboxRepository") as repo_cls:
            repo = repo_cls.return_value
            repo.claim_due = AsyncMock(return_value=[])
            repo.mark_sent = AsyncMock()
            repo.mark_failed_attempt = AsyncMock()
            yield repo

    @pytest.mark.asyncio
    async def test_empty_outbox(self, dispatcher, repo, mock_session):
        report = await dispatcher.drain(mock_session)

        assert report == DeliveryReport()
        assert report.processed == 0
        repo.claim_due.assert_awaited_once_with(limit=50)

    @pytest.mark.asyncio
    async def test_email_delivered(self, dispatcher, repo, mock_session, notification_client):
        message = _email_message()
        repo.claim_due.return_value = [message]

        report = await dispatcher.drain(mock_session)

        assert report.sent == 1
        notification_client.send_email.assert_awaited_once_with(
            to="u@example.com", subject="New Problem Assigned", body="hello"
        )
        repo.mark_sent.assert_awaited_once_with(message)
        repo.mark_failed_attempt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_release_delivered(self, dispatcher, repo, mock_session, user_service_client):
        message = _release_message("t-1")
        repo.claim_due.return_value = [message]

        report = await dispatcher.drain(mock_session)

        assert report.sent == 1
        user_service_client.update_availability.assert_awaited_once_with(
            "t-1", is_available=True, current_problem=None
        )

    @pytest.mark.asyncio
    async def test_transient_failure_is_rescheduled(self, dispatcher, repo, mock_session, notification_client):
        message = _email_message(attempts=1)
        repo.claim_due.return_value = [message]
        notification_client.send_email.side_effect = CollaboratorError("notification-service", "timeout")

        report = await dispatcher.drain(mock_session)

        assert report.retried == 1
        repo.mark_failed_attempt.assert_awaited_once_with(
            message, "notification-service: timeout", retry_in_seconds=60.0
        )
        repo.mark_sent.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_last_attempt_marks_failed(self, dispatcher, repo, mock_session, notification_client):
        message = _email_message(attempts=7)
        repo.claim_due.return_value = [message]
        notification_client.send_email.side_effect = CollaboratorError("notification-service", "down")

        report = await dispatcher.drain(mock_session)

        assert report.failed == 1
        repo.mark_failed_attempt.assert_awaited_once_with(
            message, "notification-service: down", retry_in_seconds=None
        )

    @pytest.mark.asyncio
    async def test_rejected_request_is_not_retried(self, dispatcher, repo, mock_session, notification_client):
        message = _email_message()
        repo.claim_due.return_value = [message]
        notification_client.send_email.side_effect = CollaboratorError(
            "notification-service", "rejected with 400", retryable=False
        )

        report = await dispatcher.drain(mock_session)

        assert report.failed == 1
        assert repo.mark_failed_attempt.call_args.kwargs["retry_in_seconds"] is None

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_the_batch(self, dispatcher, repo, mock_session, notification_client):
        failing = _email_message()
        ok = _email_message()
        repo.claim_due.return_value = [failing, ok]
        notification_client.send_email.side_effect = [CollaboratorError("notification-service", "down"), None]

        report = await dispatcher.drain(mock_session)

        assert report.retried == 1
        assert report.sent == 1
        repo.mark_sent.assert_awaited_once_with(ok)

    @pytest.mark.asyncio
    async def test_unknown_kind_fails_permanently(self, dispatcher, repo, mock_session):
        message = _email_message()
        message.kind = "sms"
        repo.claim_due.return_value = [message]

        report = await dispatcher.drain(mock_session)

        assert report.failed == 1
