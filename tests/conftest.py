"""Shared pytest fixtures and in-memory gateways for PVC Migrator tests."""

import asyncio
from collections.abc import Iterable

import pytest

from pvc_migrator.core.exceptions import GatewayError
from pvc_migrator.core.settings import MigrationTimingSettings
from pvc_migrator.gateways.interfaces import ClusterGateway, VolumeGateway
from pvc_migrator.models.cluster import ClaimInfo, SyncAutomationInfo, VolumeInfo, WorkloadInfo
from pvc_migrator.models.enums import Step
from pvc_migrator.models.migration import MigrationConfig
from pvc_migrator.services.status_store import StatusStore


class _Recorder:
    """Call log plus failure injection keyed by (method, key)."""

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self.fail: dict[tuple[str, str | None], Exception] = {}

    def _hit(self, method: str, *args, key: str | None = None) -> None:
        self.calls.append((method, args))
        error = self.fail.get((method, key)) or self.fail.get((method, None))
        if error is not None:
            raise error

    def called(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    def methods(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeClusterGateway(_Recorder, ClusterGateway):
    """In-memory cluster."""

    def __init__(self):
        super().__init__()
        self.claims: dict[tuple[str, str], ClaimInfo] = {}
        self.listings: dict[str, list[str]] = {}
        self.workloads: dict[str, list[WorkloadInfo]] = {}
        self.apps: dict[str, list[SyncAutomationInfo]] = {}
        self.scale_down_errors: dict[str, Exception] = {}
        self.delay = 0.0
        self.active = 0
        self.max_active = 0

    def add_claim(self, namespace: str, name: str, volume_id: str, capacity: str = "10Gi") -> None:
        self.claims[(namespace, name)] = ClaimInfo(
            pv_name=f"pv-{name}", volume_id=volume_id, capacity=capacity
        )

    async def list_claims(self, namespace):
        self._hit("list_claims", namespace, key=namespace)
        return list(self.listings.get(namespace, []))

    async def get_claim_info(self, namespace, name):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            self._hit("get_claim_info", namespace, name, key=f"{namespace}/{name}")
        finally:
            self.active -= 1
        if (namespace, name) not in self.claims:
            raise GatewayError(f"failed to get PVC {name}: 404 Not Found")
        return self.claims[(namespace, name)]

    async def delete_claim_and_volume(self, namespace, claim_name, volume_name):
        self._hit(
            "delete_claim_and_volume", namespace, claim_name, volume_name,
            key=f"{namespace}/{claim_name}",
        )

    async def create_static_volume(self, name, cloud_volume_id, capacity, storage_class, zone):
        self._hit(
            "create_static_volume", name, cloud_volume_id, capacity, storage_class, zone, key=name
        )

    async def create_bound_claim(self, namespace, name, volume_name, capacity, storage_class):
        self._hit(
            "create_bound_claim", namespace, name, volume_name, capacity, storage_class,
            key=f"{namespace}/{name}",
        )

    async def scale_workloads_to_zero(self, namespace):
        self.calls.append(("scale_workloads_to_zero", (namespace,)))
        if namespace in self.scale_down_errors:
            raise self.scale_down_errors[namespace]
        return list(self.workloads.get(namespace, []))

    async def wait_until_no_pods_running(self, namespace, timeout):
        self._hit("wait_until_no_pods_running", namespace, timeout, key=namespace)

    async def restore_workload_replicas(self, namespace, workloads):
        for workload in workloads:
            self._hit(
                "restore_workload_replicas", namespace, workload, key=f"{namespace}/{workload.name}"
            )

    async def get_running_workloads(self, namespace):
        self._hit("get_running_workloads", namespace, key=namespace)
        return list(self.workloads.get(namespace, []))

    async def find_sync_automation_targeting(self, namespace, search_namespaces):
        self._hit("find_sync_automation_targeting", namespace, tuple(search_namespaces), key=namespace)
        return list(self.apps.get(namespace, []))

    async def disable_sync_automation(self, apps):
        for app in apps:
            self._hit("disable_sync_automation", app, key=app.qualified_name)

    async def enable_sync_automation(self, apps):
        for app in apps:
            self._hit("enable_sync_automation", app, key=app.qualified_name)


class RecordingStatusStore(StatusStore):
    """StatusStore that keeps every requested (name, step, progress) transition."""

    def __init__(self, names: Iterable[str]):
        super().__init__(names)
        self.trace: list[tuple[str, Step, int]] = []

    def transition(self, name, step, progress=0, error=None):
        self.trace.append((name, step, progress))
        super().transition(name, step, progress, error)

    def steps(self, name: str) -> list[Step]:
        """Distinct steps in the order they were entered."""
        steps: list[Step] = []
        for entry, step, _ in self.trace:
            if entry == name and (not steps or steps[-1] != step):
                steps.append(step)
        return steps

    def progress(self, name: str, step: Step) -> list[int]:
        return [p for entry, s, p in self.trace if entry == name and s == step]


class FakeVolumeGateway(_Recorder, VolumeGateway):
    """In-memory EBS with scripted snapshot and volume progress."""

    def __init__(
        self,
        snapshot_states: Iterable[tuple[int, str]] = ((40, "pending"), (100, "completed")),
        volume_states: Iterable[str] = ("creating", "available"),
    ):
        super().__init__()
        self.volumes: dict[str, VolumeInfo] = {}
        self.snapshot_states = list(snapshot_states)
        self.volume_states = list(volume_states)
        self._snapshot_polls: dict[str, int] = {}
        self._volume_polls: dict[str, int] = {}
        self._created = 0

    def add_volume(self, volume_id: str, zone: str) -> None:
        self.volumes[volume_id] = VolumeInfo(
            volume_id=volume_id, availability_zone=zone, state="in-use"
        )

    async def create_snapshot(self, volume_id, label, target_zone):
        self._hit("create_snapshot", volume_id, label, target_zone, key=label)
        self._created += 1
        return f"snap-{self._created}"

    async def get_snapshot_progress(self, snapshot_id):
        self._hit("get_snapshot_progress", snapshot_id, key=snapshot_id)
        poll = self._snapshot_polls.get(snapshot_id, 0)
        self._snapshot_polls[snapshot_id] = poll + 1
        return self.snapshot_states[min(poll, len(self.snapshot_states) - 1)]

    async def create_volume(self, snapshot_id, zone, label, namespace, size_gib):
        self._hit("create_volume", snapshot_id, zone, label, namespace, size_gib, key=label)
        self._created += 1
        return f"vol-new-{self._created}"

    async def get_volume_state(self, volume_id):
        self._hit("get_volume_state", volume_id, key=volume_id)
        poll = self._volume_polls.get(volume_id, 0)
        self._volume_polls[volume_id] = poll + 1
        return self.volume_states[min(poll, len(self.volume_states) - 1)]

    async def get_volume_info(self, volume_id):
        self._hit("get_volume_info", volume_id, key=volume_id)
        if volume_id not in self.volumes:
            raise GatewayError(f"volume not found: {volume_id}")
        return self.volumes[volume_id]


@pytest.fixture
def timing() -> MigrationTimingSettings:
    """Timing settings with no waiting."""
    return MigrationTimingSettings(
        snapshot_poll_interval=0,
        volume_poll_interval=0,
        scale_down_timeout=1,
        pod_poll_interval=0,
        cleanup_settle_seconds=0,
        run_timeout=None,
    )


@pytest.fixture
def cluster() -> FakeClusterGateway:
    return FakeClusterGateway()


@pytest.fixture
def volumes() -> FakeVolumeGateway:
    return FakeVolumeGateway()


@pytest.fixture
def make_config():
    """Build a MigrationConfig for a list of "ns/pvc" ids."""

    def _make(pvc_list, target_zone="us-east-1a", max_concurrency=5, dry_run=False):
        namespaces = tuple(dict.fromkeys(name.partition("/")[0] for name in pvc_list))
        return MigrationConfig(
            namespaces=namespaces,
            target_zone=target_zone,
            storage_class="gp3",
            max_concurrency=max_concurrency,
            pvc_list=tuple(pvc_list),
            dry_run=dry_run,
        )

    return _make
