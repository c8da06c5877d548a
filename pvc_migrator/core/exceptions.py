"""Core exceptions for PVC Migrator operations."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..models.cluster import CompensationReport, WorkloadInfo


class PVCMigratorError(Exception):
    """Base exception for PVC Migrator operations."""


class ConfigurationError(PVCMigratorError):
    """Configuration validation or loading failed."""


class GatewayError(PVCMigratorError):
    """A cluster or cloud API call failed."""


class ClaimNotBoundError(GatewayError):
    """The claim exists but is not bound to any volume."""


class ScaleDownError(GatewayError):
    """Scaling workloads to zero stopped partway; ``scaled`` lists those already at zero."""

    def __init__(self, message: str, scaled: "list[WorkloadInfo] | None" = None):
        super().__init__(message)
        self.scaled = list(scaled or [])


class DiscoveryError(PVCMigratorError):
    """Claims, workloads or sync automation could not be enumerated."""


class PreflightError(PVCMigratorError):
    """Pausing workloads or sync automation failed; a rollback was attempted."""

    def __init__(self, message: str, report: "CompensationReport | None" = None):
        super().__init__(message)
        self.report = report


class MigrationCancelledError(PVCMigratorError):
    """The run's cancel token fired while a task was waiting."""
