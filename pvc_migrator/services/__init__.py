"""
PVC Migrator Services

Migration engine: per-claim task runner, bounded orchestrator and the
coordinator that pauses and restores workloads around a run.
"""

from .cancellation import CancelToken  # noqa: F401
from .coordinator import MigrationCoordinator, discover_claims  # noqa: F401
from .orchestrator import MigrationOrchestrator  # noqa: F401
from .status_store import StatusStore  # noqa: F401

__all__ = [
    "CancelToken",
    "MigrationCoordinator",
    "MigrationOrchestrator",
    "StatusStore",
    "discover_claims",
]
