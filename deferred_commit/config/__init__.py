"""Configuration package."""

from deferred_commit.config.settings import (
    AuditSettings,
    CoordinatorSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AuditSettings",
    "CoordinatorSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
