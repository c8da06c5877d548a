"""Timing settings for PVC Migrator operations.

Provides centralized poll interval and timeout configuration using Pydantic
BaseSettings with environment variable support for operational tuning.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MigrationTimingSettings(BaseSettings):
    """Poll intervals and timeouts used by the migration engine."""

    snapshot_poll_interval: float = Field(
        5.0, alias="SNAPSHOT_POLL_INTERVAL", description="Seconds between snapshot progress polls"
    )

    volume_poll_interval: float = Field(
        3.0, alias="VOLUME_POLL_INTERVAL", description="Seconds between volume state polls"
    )

    scale_down_timeout: float = Field(
        300.0, alias="SCALE_DOWN_TIMEOUT", description="Seconds to wait for pods to terminate"
    )

    pod_poll_interval: float = Field(
        2.0, alias="POD_POLL_INTERVAL", description="Seconds between running-pod checks"
    )

    cleanup_settle_seconds: float = Field(
        2.0,
        alias="CLEANUP_SETTLE_SECONDS",
        description="Pause after deleting the old claim and volume",
    )

    run_timeout: float | None = Field(
        None, alias="RUN_TIMEOUT", description="Optional overall run timeout in seconds"
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


# Global settings instance
timing_settings = MigrationTimingSettings()
