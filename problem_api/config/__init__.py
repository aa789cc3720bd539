"""Configuration for the problem service."""
from problem_api.config.settings import ServiceSettings, get_settings, reset_settings

__all__ = [
    "ServiceSettings",
    "get_settings",
    "reset_settings",
]
