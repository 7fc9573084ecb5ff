"""
Configuration Management for Deferred Commit

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Coordinators are still built per session with explicit arguments;
these settings only supply the defaults the factory passes in.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoordinatorSettings(BaseSettings):
    """Undo grace period configuration."""

    model_config = SettingsConfigDict(
        env_prefix="UNDO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    timeout_ms: int = Field(
        default=5000,
        gt=0,
        description="How long a deletion stays undoable, in milliseconds"
    )

    @property
    def timeout_seconds(self) -> float:
        """Get the grace period in seconds."""
        return self.timeout_ms / 1000


class AuditSettings(BaseSettings):
    """Audit trail configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUDIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Record audit events for delete/undo actions"
    )
    log_path: Optional[str] = Field(
        default=None,
        description="JSON-lines file for persisted audit events (local logging only if unset)"
    )
    write_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times an audit write is attempted before giving up"
    )

    @field_validator('log_path')
    @classmethod
    def validate_log_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if the audit directory doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).parent.exists():
            import warnings
            warnings.warn(
                f"Audit log directory not found for {v}. "
                "Make sure it exists before the first deletion."
            )
        return v


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def coordinator(self) -> CoordinatorSettings:
        return CoordinatorSettings()

    @property
    def audit(self) -> AuditSettings:
        return AuditSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.coordinator
        results["coordinator"] = True
    except Exception as e:
        results["coordinator"] = False
        results["coordinator_error"] = str(e)

    try:
        _ = settings.audit
        results["audit"] = True
    except Exception as e:
        results["audit"] = False
        results["audit_error"] = str(e)

    return results
