"""Cluster and cloud resource models exchanged with the gateways."""

from pydantic import BaseModel, ConfigDict, Field

from .enums import WorkloadKind


class ClaimInfo(BaseModel):
    """A claim's backing volume as seen by the cluster."""

    model_config = ConfigDict(frozen=True)

    pv_name: str
    volume_id: str
    capacity: str  # Kubernetes quantity, e.g. "50Gi"


class VolumeInfo(BaseModel):
    """A cloud block volume's placement and state."""

    model_config = ConfigDict(frozen=True)

    volume_id: str
    availability_zone: str
    state: str = ""


class WorkloadInfo(BaseModel):
    """A Deployment or StatefulSet and the replica count to restore."""

    model_config = ConfigDict(frozen=True)

    kind: WorkloadKind
    name: str
    replicas: int = Field(ge=0)

    def __str__(self) -> str:
        return f"{self.kind}/{self.name} (replicas: {self.replicas})"


class SyncAutomationInfo(BaseModel):
    """An ArgoCD application with auto-sync, and its original automated policy."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    auto_sync_policy: str = "{}"  # JSON blob replayed verbatim on restore

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}/{self.name}"


class CompensationRecord(BaseModel):
    """What was paused in one namespace, captured before mutation."""

    namespace: str
    workloads: list[WorkloadInfo] = Field(default_factory=list)
    sync_automation: list[SyncAutomationInfo] = Field(default_factory=list)


class RestorationFailure(BaseModel):
    """A single workload or sync-automation entry that could not be restored."""

    kind: str  # "workload" | "sync-automation"
    namespace: str
    name: str
    error: str
    remedy: str = ""


class CompensationReport(BaseModel):
    """Outcome of replaying compensation records."""

    restored: list[str] = Field(default_factory=list)
    failures: list[RestorationFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
