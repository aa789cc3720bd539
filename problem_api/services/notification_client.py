"""
Client for the email notification service.
"""

import logging
from typing import Optional

from problem_api.config.settings import ServiceSettings, get_settings
from problem_api.services.collaborator_client import CollaboratorClient

logger = logging.getLogger(__name__)


class NotificationClient(CollaboratorClient):
    """Sends emails through `POST /notify/email`."""

    name = "notification-service"

    async def send_email(self, to: str, subject: str, body: str) -> None:
        """
        Ask the notification service to send an email.

        Raises:
            CollaboratorError: when the email could not be handed over
        """
        await self.request("POST", "/notify/email", {"to": to, "subject": subject, "body": body})
        logger.info(f"Email '{subject}' handed to notification service for {to}")


def create_notification_client(settings: Optional[ServiceSettings] = None) -> NotificationClient:
    """Build a NotificationClient from settings."""
    settings = settings or get_settings()
    return NotificationClient(
        base_url=settings.notification_service_url,
        timeout=settings.collaborator_timeout_seconds,
        max_attempts=settings.collaborator_max_attempts,
    )
