"""Data models for PVC Migrator."""

from .cluster import (  # noqa: F401
    ClaimInfo,
    CompensationRecord,
    CompensationReport,
    RestorationFailure,
    SyncAutomationInfo,
    VolumeInfo,
    WorkloadInfo,
)
from .enums import (  # noqa: F401
    PlanAction,
    ScaleMode,
    Step,
    plan_action_label,
    step_label,
)
from .migration import (  # noqa: F401
    MigrationConfig,
    MigrationOutcome,
    MigrationPlan,
    PlanItem,
    TaskStatus,
    parse_pvc_name,
)

__all__ = [
    # Cluster models
    "ClaimInfo",
    "CompensationRecord",
    "CompensationReport",
    "RestorationFailure",
    "SyncAutomationInfo",
    "VolumeInfo",
    "WorkloadInfo",
    # Enums
    "PlanAction",
    "ScaleMode",
    "Step",
    "plan_action_label",
    "step_label",
    # Migration models
    "MigrationConfig",
    "MigrationOutcome",
    "MigrationPlan",
    "PlanItem",
    "TaskStatus",
    "parse_pvc_name",
]
