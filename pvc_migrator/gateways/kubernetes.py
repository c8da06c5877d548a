"""Kubernetes cluster gateway.

Wraps the official kubernetes client. Every API call is blocking, so each
public coroutine runs its work in a thread with asyncio.to_thread.
"""

import asyncio
import json
from collections.abc import Callable
from typing import Any

import structlog
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from ..constants import (
    ARGOCD_APPLICATIONS,
    ARGOCD_GROUP,
    ARGOCD_VERSION,
    DEFAULT_FS_TYPE,
    EBS_CSI_DRIVER,
    KIND_DEPLOYMENT,
    KIND_STATEFULSET,
    MERGE_PATCH_CONTENT_TYPE,
    MIGRATED_LABEL,
    STORAGE_RESOURCE,
    ZONE_TOPOLOGY_KEY,
)
from ..core.exceptions import ClaimNotBoundError, GatewayError, ScaleDownError
from ..core.settings import MigrationTimingSettings, timing_settings
from ..models.cluster import ClaimInfo, SyncAutomationInfo, WorkloadInfo
from .interfaces import ClusterGateway

logger = structlog.get_logger()

_ACTIVE_POD_PHASES = ("Running", "Pending")


def _is_not_found(error: ApiException) -> bool:
    return error.status == 404


def _api_error(action: str, error: ApiException) -> GatewayError:
    return GatewayError(f"{action}: {error.status} {error.reason}")


class KubernetesGateway(ClusterGateway):
    """ClusterGateway backed by the Kubernetes API."""

    def __init__(
        self,
        core_api: client.CoreV1Api,
        apps_api: client.AppsV1Api,
        custom_api: client.CustomObjectsApi,
        timing: MigrationTimingSettings | None = None,
    ):
        self.core = core_api
        self.apps = apps_api
        self.custom = custom_api
        self.timing = timing or timing_settings
        self.logger = logger.bind(component="kubernetes_gateway")

    @classmethod
    def from_kubeconfig(
        cls, kube_context: str = "", timing: MigrationTimingSettings | None = None
    ) -> "KubernetesGateway":
        """Build a gateway from the local kubeconfig, optionally forcing a context.

        Raises:
            GatewayError: If the kubeconfig cannot be loaded
        """
        try:
            api_client = config.new_client_from_config(context=kube_context or None)
        except (config.ConfigException, OSError) as e:
            raise GatewayError(f"failed to build kubeconfig: {e}") from e

        return cls(
            client.CoreV1Api(api_client),
            client.AppsV1Api(api_client),
            client.CustomObjectsApi(api_client),
            timing=timing,
        )

    async def _call(self, action: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except ApiException as e:
            raise _api_error(action, e) from e

    # Claims and volumes

    async def list_claims(self, namespace: str) -> list[str]:
        claims = await self._call(
            f"failed to list PVCs in namespace {namespace}",
            self.core.list_namespaced_persistent_volume_claim,
            namespace,
        )
        return [item.metadata.name for item in claims.items]

    async def get_claim_info(self, namespace: str, name: str) -> ClaimInfo:
        claim = await self._call(
            f"failed to get PVC {name}",
            self.core.read_namespaced_persistent_volume_claim,
            name,
            namespace,
        )

        pv_name = claim.spec.volume_name
        if not pv_name:
            raise ClaimNotBoundError(f"PVC {name} is not bound to any PV")

        volume = await self._call(
            f"failed to get PV {pv_name}", self.core.read_persistent_volume, pv_name
        )

        volume_id = ""
        csi = volume.spec.csi
        legacy = volume.spec.aws_elastic_block_store
        if csi is not None and csi.volume_handle:
            volume_id = csi.volume_handle
        elif legacy is not None and legacy.volume_id:
            # Legacy in-tree ids look like aws://eu-west-1a/vol-123
            volume_id = legacy.volume_id.rsplit("/", 1)[-1]

        if not volume_id:
            raise GatewayError(f"could not find AWS Volume ID for PV {pv_name}")

        requests = claim.spec.resources.requests or {}
        return ClaimInfo(
            pv_name=pv_name,
            volume_id=volume_id,
            capacity=str(requests.get(STORAGE_RESOURCE, "")),
        )

    async def delete_claim_and_volume(
        self, namespace: str, claim_name: str, volume_name: str
    ) -> None:
        await asyncio.to_thread(self._delete_claim, namespace, claim_name)
        await asyncio.to_thread(self._delete_volume, volume_name)
        self.logger.info(
            "Deleted old PVC and PV", namespace=namespace, pvc=claim_name, pv=volume_name
        )
        # Let the controllers observe the deletion before the replacement appears
        await asyncio.sleep(self.timing.cleanup_settle_seconds)

    def _delete_claim(self, namespace: str, name: str) -> None:
        try:
            claim = self.core.read_namespaced_persistent_volume_claim(name, namespace)
            if claim.metadata.finalizers:
                self.core.patch_namespaced_persistent_volume_claim(
                    name,
                    namespace,
                    {"metadata": {"finalizers": None}},
                    _content_type=MERGE_PATCH_CONTENT_TYPE,
                )
            self.core.delete_namespaced_persistent_volume_claim(
                name,
                namespace,
                body=client.V1DeleteOptions(
                    grace_period_seconds=0, propagation_policy="Foreground"
                ),
            )
        except ApiException as e:
            if _is_not_found(e):
                return
            raise _api_error(f"failed to delete PVC {name}", e) from e

    def _delete_volume(self, name: str) -> None:
        try:
            volume = self.core.read_persistent_volume(name)
            if volume.metadata.finalizers:
                self.core.patch_persistent_volume(
                    name,
                    {"metadata": {"finalizers": None}},
                    _content_type=MERGE_PATCH_CONTENT_TYPE,
                )
            self.core.delete_persistent_volume(
                name, body=client.V1DeleteOptions(grace_period_seconds=0)
            )
        except ApiException as e:
            if _is_not_found(e):
                return
            raise _api_error(f"failed to delete PV {name}", e) from e

    async def create_static_volume(
        self, name: str, cloud_volume_id: str, capacity: str, storage_class: str, zone: str
    ) -> None:
        volume = client.V1PersistentVolume(
            metadata=client.V1ObjectMeta(name=name, labels={MIGRATED_LABEL: "true"}),
            spec=client.V1PersistentVolumeSpec(
                capacity={STORAGE_RESOURCE: capacity},
                volume_mode="Filesystem",
                access_modes=["ReadWriteOnce"],
                persistent_volume_reclaim_policy="Retain",
                storage_class_name=storage_class,
                csi=client.V1CSIPersistentVolumeSource(
                    driver=EBS_CSI_DRIVER, fs_type=DEFAULT_FS_TYPE, volume_handle=cloud_volume_id
                ),
                node_affinity=client.V1VolumeNodeAffinity(
                    required=client.V1NodeSelector(
                        node_selector_terms=[
                            client.V1NodeSelectorTerm(
                                match_expressions=[
                                    client.V1NodeSelectorRequirement(
                                        key=ZONE_TOPOLOGY_KEY, operator="In", values=[zone]
                                    )
                                ]
                            )
                        ]
                    )
                ),
            ),
        )
        await self._call(f"failed to create PV {name}", self.core.create_persistent_volume, volume)

    async def create_bound_claim(
        self, namespace: str, name: str, volume_name: str, capacity: str, storage_class: str
    ) -> None:
        claim = client.V1PersistentVolumeClaim(
            metadata=client.V1ObjectMeta(
                name=name, namespace=namespace, labels={MIGRATED_LABEL: "true"}
            ),
            spec=client.V1PersistentVolumeClaimSpec(
                access_modes=["ReadWriteOnce"],
                storage_class_name=storage_class,
                resources=client.V1VolumeResourceRequirements(
                    requests={STORAGE_RESOURCE: capacity}
                ),
                volume_name=volume_name,
            ),
        )
        await self._call(
            f"failed to create PVC {name}",
            self.core.create_namespaced_persistent_volume_claim,
            namespace,
            claim,
        )

    # Workloads

    def _list_running_workloads(self, namespace: str) -> list[WorkloadInfo]:
        workloads: list[WorkloadInfo] = []
        try:
            deployments = self.apps.list_namespaced_deployment(namespace).items
        except ApiException as e:
            raise _api_error("failed to list deployments", e) from e
        for item in deployments:
            if item.spec.replicas:
                workloads.append(
                    WorkloadInfo(
                        kind=KIND_DEPLOYMENT, name=item.metadata.name, replicas=item.spec.replicas
                    )
                )

        try:
            statefulsets = self.apps.list_namespaced_stateful_set(namespace).items
        except ApiException as e:
            raise _api_error("failed to list statefulsets", e) from e
        for item in statefulsets:
            if item.spec.replicas:
                workloads.append(
                    WorkloadInfo(
                        kind=KIND_STATEFULSET, name=item.metadata.name, replicas=item.spec.replicas
                    )
                )
        return workloads

    def _scale(self, namespace: str, kind: str, name: str, replicas: int) -> None:
        # Without an explicit type the client sends dict bodies as JSON Patch
        body = {"spec": {"replicas": replicas}}
        if kind == KIND_DEPLOYMENT:
            patch = self.apps.patch_namespaced_deployment_scale
        else:
            patch = self.apps.patch_namespaced_stateful_set_scale
        patch(name, namespace, body, _content_type=MERGE_PATCH_CONTENT_TYPE)

    async def get_running_workloads(self, namespace: str) -> list[WorkloadInfo]:
        return await asyncio.to_thread(self._list_running_workloads, namespace)

    async def scale_workloads_to_zero(self, namespace: str) -> list[WorkloadInfo]:
        return await asyncio.to_thread(self._scale_all_to_zero, namespace)

    def _scale_all_to_zero(self, namespace: str) -> list[WorkloadInfo]:
        try:
            running = self._list_running_workloads(namespace)
        except GatewayError as e:
            raise ScaleDownError(str(e)) from e

        scaled: list[WorkloadInfo] = []
        for workload in running:
            try:
                self._scale(namespace, workload.kind, workload.name, 0)
            except ApiException as e:
                raise ScaleDownError(
                    f"failed to scale {workload.kind.lower()} {workload.name} to 0: "
                    f"{e.status} {e.reason}",
                    scaled=scaled,
                ) from e
            scaled.append(workload)
            self.logger.debug("Scaled workload to zero", namespace=namespace, workload=str(workload))
        return scaled

    async def restore_workload_replicas(
        self, namespace: str, workloads: list[WorkloadInfo]
    ) -> None:
        for workload in workloads:
            await self._call(
                f"failed to scale {workload.kind.lower()} {workload.name} to {workload.replicas}",
                self._scale,
                namespace,
                workload.kind,
                workload.name,
                workload.replicas,
            )

    async def wait_until_no_pods_running(self, namespace: str, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            pods = await self._call(
                "failed to list pods", self.core.list_namespaced_pod, namespace
            )
            active = [pod for pod in pods.items if pod.status.phase in _ACTIVE_POD_PHASES]
            if not active:
                return
            if loop.time() >= deadline:
                raise GatewayError(
                    f"timeout waiting for pods to terminate ({len(active)} still running)"
                )
            self.logger.debug("Waiting for pods to terminate", namespace=namespace, active=len(active))
            await asyncio.sleep(self.timing.pod_poll_interval)

    # ArgoCD sync automation

    async def find_sync_automation_targeting(
        self, namespace: str, search_namespaces: list[str]
    ) -> list[SyncAutomationInfo]:
        return await asyncio.to_thread(self._find_apps, namespace, search_namespaces)

    def _find_apps(self, namespace: str, search_namespaces: list[str]) -> list[SyncAutomationInfo]:
        apps: list[SyncAutomationInfo] = []
        for search_ns in search_namespaces:
            try:
                listing = self.custom.list_namespaced_custom_object(
                    ARGOCD_GROUP, ARGOCD_VERSION, search_ns, ARGOCD_APPLICATIONS
                )
            except ApiException as e:
                # Namespace or CRD may simply not exist in this cluster
                self.logger.debug(
                    "Skipping ArgoCD namespace", search_namespace=search_ns, status=e.status
                )
                continue

            for app in listing.get("items", []):
                spec = app.get("spec") or {}
                if (spec.get("destination") or {}).get("namespace") != namespace:
                    continue
                automated = (spec.get("syncPolicy") or {}).get("automated")
                if automated is None:
                    continue
                apps.append(
                    SyncAutomationInfo(
                        name=app["metadata"]["name"],
                        namespace=search_ns,
                        auto_sync_policy=json.dumps(automated),
                    )
                )
        return apps

    async def disable_sync_automation(self, apps: list[SyncAutomationInfo]) -> None:
        for app in apps:
            # A null value removes the key under a JSON merge patch
            await self._patch_sync_policy(app, None, "disable")

    async def enable_sync_automation(self, apps: list[SyncAutomationInfo]) -> None:
        for app in apps:
            try:
                policy = json.loads(app.auto_sync_policy)
            except json.JSONDecodeError as e:
                raise GatewayError(
                    f"failed to unmarshal auto-sync policy for {app.name}: {e}"
                ) from e
            await self._patch_sync_policy(app, policy, "enable")

    async def _patch_sync_policy(
        self, app: SyncAutomationInfo, automated: dict[str, Any] | None, verb: str
    ) -> None:
        await self._call(
            f"failed to {verb} auto-sync for ArgoCD app {app.qualified_name}",
            self.custom.patch_namespaced_custom_object,
            ARGOCD_GROUP,
            ARGOCD_VERSION,
            app.namespace,
            ARGOCD_APPLICATIONS,
            app.name,
            {"spec": {"syncPolicy": {"automated": automated}}},
            _content_type=MERGE_PATCH_CONTENT_TYPE,
        )
