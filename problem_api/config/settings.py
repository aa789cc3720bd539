"""
Configuration settings for the problem service using Pydantic Settings.

This module centralizes all configuration for the store, the assignment
rules, the outbound collaborators and the background workers, loading
values from environment variables (or a .env file) with type checking
and defaults.
"""

from typing import Any, Dict, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class ServiceSettings(BaseSettings):
    """
    Settings for the problem service.

    Uses Pydantic Settings to load and validate configuration from
    environment variables with proper type checking and defaults.
    """

    # PostgreSQL store
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_user: str = Field(default="problems", alias="POSTGRES_USER")
    postgres_password: str = Field(default="problems", alias="POSTGRES_PASSWORD")
    postgres_database: str = Field(default="problems", alias="POSTGRES_DATABASE")
    postgres_pool_max_size: int = Field(
        default=10,
        alias="POSTGRES_POOL_MAX_SIZE",
        description="Connection pool size for the API engine"
    )

    # Assignment rules
    technician_capacity: int = Field(
        default=3,
        ge=1,
        alias="TECHNICIAN_CAPACITY",
        description="Active problems a technician can hold before becoming unavailable"
    )
    technician_capacity_overrides: Dict[str, int] = Field(
        default_factory=dict,
        alias="TECHNICIAN_CAPACITY_OVERRIDES",
        description="Per-specialty capacity, as JSON (e.g. {\"electrical\": 2})"
    )
    assignment_policy: Literal["least_workload", "first_match"] = Field(
        default="least_workload",
        alias="ASSIGNMENT_POLICY",
        description="How technicians are chosen: least_workload or first_match"
    )

    # Outbound collaborators
    notification_service_url: str = Field(
        default="http://localhost:8000",
        alias="NOTIFICATION_SERVICE_URL",
        description="Base URL of the email notification service"
    )
    user_service_url: str = Field(
        default="http://localhost:3000",
        alias="USER_SERVICE_URL",
        description="Base URL of the user-management service"
    )
    collaborator_timeout_seconds: float = Field(
        default=10.0,
        alias="COLLABORATOR_TIMEOUT_SECONDS",
        description="Timeout for a single call to a collaborator"
    )
    collaborator_max_attempts: int = Field(
        default=3,
        ge=1,
        alias="COLLABORATOR_MAX_ATTEMPTS",
        description="Attempts per delivery before the outbox reschedules the message"
    )

    # Outbox worker
    outbox_poll_interval_seconds: float = Field(default=5.0, alias="OUTBOX_POLL_INTERVAL_SECONDS")
    outbox_batch_size: int = Field(default=50, alias="OUTBOX_BATCH_SIZE")
    outbox_max_attempts: int = Field(
        default=8,
        alias="OUTBOX_MAX_ATTEMPTS",
        description="Deliveries tried before a message is marked as failed"
    )
    outbox_base_delay_seconds: float = Field(default=30.0, alias="OUTBOX_BASE_DELAY_SECONDS")
    outbox_max_delay_seconds: float = Field(default=3600.0, alias="OUTBOX_MAX_DELAY_SECONDS")

    # Backfill of unassigned problems
    backfill_interval_seconds: int = Field(
        default=300,
        alias="BACKFILL_INTERVAL_SECONDS",
        description="Seconds between backfill runs (0 disables the loop)"
    )
    backfill_batch_size: int = Field(default=100, alias="BACKFILL_BATCH_SIZE")

    background_workers_enabled: bool = Field(
        default=True,
        alias="BACKGROUND_WORKERS_ENABLED",
        description="Start the outbox worker and backfill loop with the app"
    )

    # API server
    problem_service_host: str = Field(default="0.0.0.0", alias="PROBLEM_SERVICE_HOST")
    problem_service_port: int = Field(default=3001, alias="PROBLEM_SERVICE_PORT")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_prefix": "",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def capacity_for(self, specialty: Optional[str]) -> int:
        """Get the capacity threshold for a specialty."""
        if specialty and specialty in self.technician_capacity_overrides:
            return self.technician_capacity_overrides[specialty]
        return self.technician_capacity

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary, hiding the database password."""
        data = self.model_dump()
        data["postgres_password"] = "[REDACTED]"
        return data


# Global settings instance
_settings: Optional[ServiceSettings] = None


def get_settings() -> ServiceSettings:
    """
    Get global settings instance (singleton pattern).

    Returns:
        Validated ServiceSettings instance
    """
    global _settings
    if _settings is None:
        _settings = ServiceSettings()
    return _settings


def reset_settings() -> None:
    """Reset global settings (useful for testing)."""
    global _settings
    _settings = None
