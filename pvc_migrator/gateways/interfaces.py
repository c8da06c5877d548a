"""Abstract gateways the migration engine consumes.

The engine only talks to the cluster and the cloud through these two
interfaces. Implementations must be safe for concurrent use by several
migration tasks.
"""

from abc import ABC, abstractmethod

from ..models.cluster import ClaimInfo, SyncAutomationInfo, VolumeInfo, WorkloadInfo


class ClusterGateway(ABC):
    """Claim, volume, workload and sync-automation operations against the cluster."""

    @abstractmethod
    async def list_claims(self, namespace: str) -> list[str]:
        """Return the names of all claims in a namespace."""

    @abstractmethod
    async def get_claim_info(self, namespace: str, name: str) -> ClaimInfo:
        """Return the claim's backing volume.

        Raises:
            ClaimNotBoundError: If the claim is not bound to a volume
            GatewayError: If the claim is absent or has no cloud volume id
        """

    @abstractmethod
    async def delete_claim_and_volume(
        self, namespace: str, claim_name: str, volume_name: str
    ) -> None:
        """Strip finalizers and delete the claim and its volume; absent objects are ignored."""

    @abstractmethod
    async def create_static_volume(
        self, name: str, cloud_volume_id: str, capacity: str, storage_class: str, zone: str
    ) -> None:
        """Create a statically provisioned volume pointing at a cloud volume."""

    @abstractmethod
    async def create_bound_claim(
        self, namespace: str, name: str, volume_name: str, capacity: str, storage_class: str
    ) -> None:
        """Create a claim pre-bound to a specific volume."""

    @abstractmethod
    async def scale_workloads_to_zero(self, namespace: str) -> list[WorkloadInfo]:
        """Scale every running workload to zero and return the original replica counts.

        Raises:
            ScaleDownError: If a workload cannot be scaled; ``scaled`` holds the
                workloads already at zero so they can still be restored
        """

    @abstractmethod
    async def wait_until_no_pods_running(self, namespace: str, timeout: float) -> None:
        """Block until no pods are running or pending in the namespace.

        Raises:
            GatewayError: If pods are still running when the timeout elapses
        """

    @abstractmethod
    async def restore_workload_replicas(
        self, namespace: str, workloads: list[WorkloadInfo]
    ) -> None:
        """Scale the given workloads back to their recorded replica counts."""

    @abstractmethod
    async def get_running_workloads(self, namespace: str) -> list[WorkloadInfo]:
        """Return workloads in the namespace with replicas > 0."""

    @abstractmethod
    async def find_sync_automation_targeting(
        self, namespace: str, search_namespaces: list[str]
    ) -> list[SyncAutomationInfo]:
        """Return auto-syncing applications whose destination is the namespace."""

    @abstractmethod
    async def disable_sync_automation(self, apps: list[SyncAutomationInfo]) -> None:
        """Turn off auto-sync for the given applications."""

    @abstractmethod
    async def enable_sync_automation(self, apps: list[SyncAutomationInfo]) -> None:
        """Restore auto-sync for the given applications from their captured policy."""


class VolumeGateway(ABC):
    """Snapshot and volume lifecycle operations against the cloud provider."""

    @abstractmethod
    async def create_snapshot(self, volume_id: str, label: str, target_zone: str) -> str:
        """Snapshot a volume and return the snapshot id."""

    @abstractmethod
    async def get_snapshot_progress(self, snapshot_id: str) -> tuple[int, str]:
        """Return (percent complete, state) for a snapshot."""

    @abstractmethod
    async def create_volume(
        self, snapshot_id: str, zone: str, label: str, namespace: str, size_gib: int
    ) -> str:
        """Create a volume from a snapshot in a zone and return its id."""

    @abstractmethod
    async def get_volume_state(self, volume_id: str) -> str:
        """Return the volume state, e.g. "creating", "available" or "error"."""

    @abstractmethod
    async def get_volume_info(self, volume_id: str) -> VolumeInfo:
        """Return the volume's zone and state."""
