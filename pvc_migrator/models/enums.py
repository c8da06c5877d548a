"""Enum definitions for the migration engine."""

from enum import IntEnum
from typing import Literal

# Type aliases
ScaleMode = Literal["auto", "manual"]
WorkloadKind = Literal["Deployment", "StatefulSet"]


class Step(IntEnum):
    """Migration step of a single claim, in execution order."""

    PENDING = 0
    GET_INFO = 1
    SKIPPED = 2
    SNAPSHOT = 3
    WAIT_SNAPSHOT = 4
    CREATE_VOLUME = 5
    WAIT_VOLUME = 6
    CREATE_PV = 7
    CLEANUP = 8
    CREATE_PVC = 9
    DONE = 10
    FAILED = 11

    @property
    def label(self) -> str:
        return step_label(self)

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STEPS


class PlanAction(IntEnum):
    """What a migration run will do with a claim."""

    MIGRATE = 0
    SKIP = 1
    ERROR = 2

    @property
    def label(self) -> str:
        return plan_action_label(self)


TERMINAL_STEPS = frozenset({Step.SKIPPED, Step.DONE, Step.FAILED})

_STEP_LABELS = {
    Step.PENDING: "Pending",
    Step.GET_INFO: "Getting Info",
    Step.SKIPPED: "Skipped",
    Step.SNAPSHOT: "Creating Snapshot",
    Step.WAIT_SNAPSHOT: "Snapshot Progress",
    Step.CREATE_VOLUME: "Creating Volume",
    Step.WAIT_VOLUME: "Volume Creating",
    Step.CREATE_PV: "Creating PV",
    Step.CLEANUP: "Cleaning Up",
    Step.CREATE_PVC: "Creating PVC",
    Step.DONE: "Completed",
    Step.FAILED: "Failed",
}

_PLAN_ACTION_LABELS = {
    PlanAction.MIGRATE: "Migrate",
    PlanAction.SKIP: "Skip",
    PlanAction.ERROR: "Error",
}


def step_label(value: int) -> str:
    """Human-readable step name; out-of-range values render as "Unknown"."""
    return _STEP_LABELS.get(value, "Unknown")


def plan_action_label(value: int) -> str:
    """Human-readable plan action; out-of-range values render as "Unknown"."""
    return _PLAN_ACTION_LABELS.get(value, "Unknown")
