"""
Client for the peer user-management service.
"""

import logging
from typing import Optional

from problem_api.config.settings import ServiceSettings, get_settings
from problem_api.services.collaborator_client import CollaboratorClient

logger = logging.getLogger(__name__)


class UserServiceClient(CollaboratorClient):
    """Updates technician fields through `PUT /users/{id}/availability`."""

    name = "user-service"

    async def update_availability(
        self,
        technician_id: str,
        is_available: bool,
        current_problem: Optional[str] = None,
    ) -> None:
        """
        Push a technician's availability to the user-management service.

        Raises:
            CollaboratorError: when the update could not be delivered
        """
        await self.request(
            "PUT",
            f"/users/{technician_id}/availability",
            {"isAvailable": is_available, "currentProblem": current_problem},
        )
        logger.info(
            f"Technician {technician_id} availability synced "
            f"(available={is_available}, current={current_problem})"
        )


def create_user_service_client(settings: Optional[ServiceSettings] = None) -> UserServiceClient:
    """Build a UserServiceClient from settings."""
    settings = settings or get_settings()
    return UserServiceClient(
        base_url=settings.user_service_url,
        timeout=settings.collaborator_timeout_seconds,
        max_attempts=settings.collaborator_max_attempts,
    )
