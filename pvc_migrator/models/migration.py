"""Migration task, status and plan models."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import DEFAULT_NAMESPACE
from .cluster import CompensationReport
from .enums import PlanAction, Step


def parse_pvc_name(full_name: str) -> tuple[str, str]:
    """Split a "namespace/pvcname" task id into its namespace and claim name.

    Only the first "/" separates; without one the namespace is "default".

    >>> parse_pvc_name("ns/pvc/extra")
    ('ns', 'pvc/extra')
    >>> parse_pvc_name("data")
    ('default', 'data')
    """
    namespace, sep, name = full_name.partition("/")
    if not sep:
        return DEFAULT_NAMESPACE, full_name
    return namespace, name


def utc_now() -> datetime:
    return datetime.now(UTC)


class MigrationConfig(BaseModel):
    """Immutable run configuration handed to the orchestrator."""

    model_config = ConfigDict(frozen=True)

    namespaces: tuple[str, ...] = ()
    target_zone: str
    storage_class: str
    max_concurrency: int = Field(default=5, ge=1)
    pvc_list: tuple[str, ...] = ()  # "namespace/pvcname"
    dry_run: bool = False

    @field_validator("pvc_list")
    @classmethod
    def _unique_pvcs(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        seen: set[str] = set()
        duplicates: set[str] = set()
        for name in value:
            if name in seen:
                duplicates.add(name)
            seen.add(name)
        if duplicates:
            raise ValueError(f"duplicate PVC entries: {', '.join(sorted(duplicates))}")
        return value


class TaskStatus(BaseModel):
    """Current state of one claim's migration."""

    name: str  # "namespace/pvcname"
    namespace: str
    pvc_name: str
    step: Step = Step.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    error: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    snapshot_id: str | None = None
    new_volume_id: str | None = None
    old_volume_id: str | None = None
    pv_name: str | None = None
    capacity: str | None = None
    current_zone: str | None = None

    @classmethod
    def pending(cls, full_name: str) -> "TaskStatus":
        namespace, pvc_name = parse_pvc_name(full_name)
        return cls(name=full_name, namespace=namespace, pvc_name=pvc_name)

    @property
    def is_terminal(self) -> bool:
        return self.step.is_terminal

    @property
    def duration(self) -> float | None:
        """Elapsed seconds between start and end, if both are known."""
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()


class PlanItem(BaseModel):
    """A single claim in the migration plan."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    pvc_name: str
    pv_name: str = ""
    volume_id: str = ""
    capacity: str = ""
    current_zone: str = ""
    target_zone: str
    action: PlanAction
    reason: str = ""


class MigrationPlan(BaseModel):
    """Read-only projection of what a run would do."""

    model_config = ConfigDict(frozen=True)

    items: tuple[PlanItem, ...] = ()
    target_zone: str
    storage_class: str
    dry_run: bool
    namespaces: tuple[str, ...] = ()
    concurrency: int

    def count(self, action: PlanAction) -> int:
        return sum(1 for item in self.items if item.action == action)


class MigrationOutcome(BaseModel):
    """Final statuses of a run plus the result of restoring paused resources."""

    statuses: dict[str, TaskStatus] = Field(default_factory=dict)
    compensation: CompensationReport = Field(default_factory=CompensationReport)

    def _count(self, step: Step) -> int:
        return sum(1 for status in self.statuses.values() if status.step == step)

    @property
    def succeeded(self) -> int:
        return self._count(Step.DONE)

    @property
    def skipped(self) -> int:
        return self._count(Step.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(Step.FAILED)

    @property
    def has_errors(self) -> bool:
        return self.failed > 0 or not self.compensation.ok
