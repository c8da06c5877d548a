"""Pre-flight and post-flight coordination around a migration run.

Before any claim is touched, auto-syncing ArgoCD applications that target the
namespaces are paused and running workloads are scaled to zero. Whatever was
paused is recorded first, so it can be replayed verbatim afterwards, whether
the run succeeded, failed or never started.
"""

import asyncio
import json
from collections.abc import Callable

import structlog
from pydantic import BaseModel, Field
from structlog.stdlib import BoundLogger

from ..constants import (
    KIND_DEPLOYMENT,
    KIND_STATEFULSET,
    RESTORE_KIND_SYNC_AUTOMATION,
    RESTORE_KIND_WORKLOAD,
)
from ..core.config_loader import NamespaceConfig
from ..core.exceptions import (
    DiscoveryError,
    MigrationCancelledError,
    PreflightError,
    ScaleDownError,
)
from ..core.settings import MigrationTimingSettings, timing_settings
from ..gateways.interfaces import ClusterGateway
from ..models.cluster import (
    CompensationRecord,
    CompensationReport,
    RestorationFailure,
    SyncAutomationInfo,
    WorkloadInfo,
)
from ..models.enums import ScaleMode
from ..models.migration import MigrationOutcome
from .cancellation import CancelToken
from .orchestrator import MigrationOrchestrator

logger = structlog.get_logger()

# Receives the kubectl commands to run by hand; returns False to abort
ConfirmCallback = Callable[[list[str]], bool]


class DiscoveryResult(BaseModel):
    """Sync automation and running workloads found in the namespaces in scope."""

    sync_automation: list[SyncAutomationInfo] = Field(default_factory=list)
    workloads: dict[str, list[WorkloadInfo]] = Field(default_factory=dict)

    @property
    def total_workloads(self) -> int:
        return sum(len(items) for items in self.workloads.values())


async def discover_claims(
    cluster: ClusterGateway, namespaces: list[NamespaceConfig]
) -> dict[str, list[str]]:
    """Resolve the claims in scope per namespace.

    Namespaces with an explicit PVC list use it as-is; the rest are listed.

    Raises:
        DiscoveryError: If a namespace cannot be listed or nothing was found
    """
    claims: dict[str, list[str]] = {}
    for ns in namespaces:
        if ns.pvcs:
            claims[ns.name] = list(ns.pvcs)
            continue
        try:
            claims[ns.name] = await cluster.list_claims(ns.name)
        except Exception as e:
            raise DiscoveryError(f"failed to list PVCs in namespace '{ns.name}': {e}") from e

    if not any(claims.values()):
        raise DiscoveryError("no PVCs found in any of the specified namespaces")
    return claims


def pvc_ids(claims: dict[str, list[str]]) -> list[str]:
    """Flatten discovered claims into "namespace/pvcname" ids, dropping duplicates."""
    ids: list[str] = []
    for namespace, names in claims.items():
        for name in names:
            full_name = f"{namespace}/{name}"
            if full_name not in ids:
                ids.append(full_name)
    return ids


def scale_command(namespace: str, workload: WorkloadInfo, replicas: int, kube_context: str) -> str:
    resource = {KIND_DEPLOYMENT: "deployment", KIND_STATEFULSET: "statefulset"}[workload.kind]
    command = f"kubectl scale {resource} {workload.name} --replicas={replicas} -n {namespace}"
    if kube_context:
        command += f" --context={kube_context}"
    return command


def enable_sync_command(app: SyncAutomationInfo, kube_context: str) -> str:
    patch = json.dumps({"spec": {"syncPolicy": {"automated": json.loads(app.auto_sync_policy)}}})
    command = f"kubectl patch application {app.name} -n {app.namespace} --type merge -p '{patch}'"
    if kube_context:
        command += f" --context={kube_context}"
    return command


class MigrationCoordinator:
    """Pauses workloads and sync automation around a run and always restores them."""

    def __init__(
        self,
        cluster: ClusterGateway,
        namespaces: list[str],
        *,
        dry_run: bool = False,
        skip_argocd: bool = False,
        argocd_namespaces: list[str] | None = None,
        scale_mode: ScaleMode = "auto",
        kube_context: str = "",
        confirm: ConfirmCallback | None = None,
        timing: MigrationTimingSettings | None = None,
    ):
        self.cluster = cluster
        self.namespaces = list(namespaces)
        self.dry_run = dry_run
        self.skip_argocd = skip_argocd
        self.argocd_namespaces = list(argocd_namespaces or [])
        self.scale_mode = scale_mode
        self.kube_context = kube_context
        self.confirm = confirm
        self.timing = timing or timing_settings
        self.records: dict[str, CompensationRecord] = {}
        self.logger: BoundLogger = logger.bind(component="migration_coordinator")

    async def discover(self) -> DiscoveryResult:
        """Find auto-syncing applications and running workloads; changes nothing.

        Raises:
            DiscoveryError: If running workloads cannot be listed
        """
        result = DiscoveryResult()

        if not self.skip_argocd:
            seen: set[str] = set()
            for namespace in self.namespaces:
                try:
                    apps = await self.cluster.find_sync_automation_targeting(
                        namespace, self.argocd_namespaces
                    )
                except Exception as e:
                    self.logger.warning(
                        "ArgoCD lookup failed, skipping namespace",
                        namespace=namespace,
                        error=str(e),
                    )
                    continue
                for app in apps:
                    if app.qualified_name not in seen:
                        seen.add(app.qualified_name)
                        result.sync_automation.append(app)

        for namespace in self.namespaces:
            try:
                result.workloads[namespace] = await self.cluster.get_running_workloads(namespace)
            except Exception as e:
                raise DiscoveryError(
                    f"failed to check workload status in namespace '{namespace}': {e}"
                ) from e

        self.logger.info(
            "Discovery completed",
            sync_automation=[app.qualified_name for app in result.sync_automation],
            running_workloads=result.total_workloads,
            dry_run=self.dry_run,
        )
        return result

    async def pause(self, discovery: DiscoveryResult, cancel_token: CancelToken | None = None) -> None:
        """Disable sync automation and scale workloads down, then wait for pods to stop.

        On any failure everything paused so far is restored before raising.

        Raises:
            PreflightError: If pausing failed; ``report`` holds the rollback result
        """
        token = cancel_token or CancelToken()
        try:
            await self._pause(discovery, token)
        except Exception as e:
            self.logger.error("Pre-flight failed, restoring paused resources", error=str(e))
            report = await self.resume()
            raise PreflightError(str(e), report) from e
        except asyncio.CancelledError:
            await self.resume()
            raise

    async def _pause(self, discovery: DiscoveryResult, token: CancelToken) -> None:
        for app in discovery.sync_automation:
            self._record_for_app(app).sync_automation.append(app)
            try:
                await self.cluster.disable_sync_automation([app])
            except Exception as e:
                raise PreflightError(
                    f"failed to disable ArgoCD auto-sync for {app.qualified_name}: {e}"
                ) from e
            self.logger.info("Disabled ArgoCD auto-sync", app=app.qualified_name)

        paused_namespaces = [ns for ns in self.namespaces if discovery.workloads.get(ns)]
        if not paused_namespaces:
            return

        if self.scale_mode == "manual":
            await self._confirm_manual_scale_down(discovery, paused_namespaces)
        else:
            for namespace in paused_namespaces:
                await self._scale_down(namespace, discovery.workloads[namespace])

        for namespace in paused_namespaces:
            try:
                await token.run(
                    self.cluster.wait_until_no_pods_running(
                        namespace, self.timing.scale_down_timeout
                    )
                )
            except MigrationCancelledError:
                raise
            except Exception as e:
                raise PreflightError(
                    f"failed waiting for pods to terminate in namespace '{namespace}': {e}"
                ) from e
        self.logger.info("All workloads scaled down", namespaces=paused_namespaces)

    async def _scale_down(self, namespace: str, discovered: list[WorkloadInfo]) -> None:
        record = self._record(namespace)
        # Record before mutating so a partial scale-down is still restored
        record.workloads = list(discovered)
        try:
            scaled = await self.cluster.scale_workloads_to_zero(namespace)
        except ScaleDownError as e:
            known = {(w.kind, w.name) for w in record.workloads}
            record.workloads.extend(w for w in e.scaled if (w.kind, w.name) not in known)
            raise PreflightError(
                f"failed to scale down workloads in namespace '{namespace}': {e}"
            ) from e
        except Exception as e:
            raise PreflightError(
                f"failed to scale down workloads in namespace '{namespace}': {e}"
            ) from e

        if scaled:
            record.workloads = list(scaled)
        self.logger.info(
            "Scaled down workloads",
            namespace=namespace,
            workloads=[str(w) for w in record.workloads],
        )

    async def _confirm_manual_scale_down(
        self, discovery: DiscoveryResult, namespaces: list[str]
    ) -> None:
        commands = [
            scale_command(ns, workload, 0, self.kube_context)
            for ns in namespaces
            for workload in discovery.workloads[ns]
        ]
        if self.confirm is None:
            raise PreflightError("manual scale mode requires a confirmation callback")

        proceed = await asyncio.to_thread(self.confirm, commands)
        if not proceed:
            raise PreflightError("migration cancelled by user")

        for ns in namespaces:
            self._record(ns).workloads = list(discovery.workloads[ns])

    async def resume(self) -> CompensationReport:
        """Restore every recorded workload and sync-automation entry.

        Each item is attempted on its own; a failure is reported and does not
        stop the others. Safe to call more than once.
        """
        report = CompensationReport()

        for namespace, record in self.records.items():
            for workload in record.workloads:
                label = f"{namespace}/{workload.kind}/{workload.name}"
                try:
                    await self.cluster.restore_workload_replicas(namespace, [workload])
                except Exception as e:
                    self.logger.error(
                        "Failed to restore workload",
                        namespace=namespace,
                        workload=str(workload),
                        error=str(e),
                    )
                    report.failures.append(
                        RestorationFailure(
                            kind=RESTORE_KIND_WORKLOAD,
                            namespace=namespace,
                            name=f"{workload.kind}/{workload.name}",
                            error=str(e),
                            remedy=scale_command(
                                namespace, workload, workload.replicas, self.kube_context
                            ),
                        )
                    )
                    continue
                report.restored.append(label)
                self.logger.info(
                    "Restored workload", namespace=namespace, workload=str(workload)
                )

        for record in self.records.values():
            for app in record.sync_automation:
                try:
                    await self.cluster.enable_sync_automation([app])
                except Exception as e:
                    self.logger.error(
                        "Failed to re-enable ArgoCD auto-sync",
                        app=app.qualified_name,
                        error=str(e),
                    )
                    report.failures.append(
                        RestorationFailure(
                            kind=RESTORE_KIND_SYNC_AUTOMATION,
                            namespace=app.namespace,
                            name=app.name,
                            error=str(e),
                            remedy=enable_sync_command(app, self.kube_context),
                        )
                    )
                    continue
                report.restored.append(app.qualified_name)
                self.logger.info("Re-enabled ArgoCD auto-sync", app=app.qualified_name)

        return report

    async def execute(
        self, orchestrator: MigrationOrchestrator, cancel_token: CancelToken | None = None
    ) -> MigrationOutcome:
        """Discover, pause, run and always resume.

        Dry runs still discover, but nothing is paused or resumed.

        Raises:
            DiscoveryError: If discovery failed (nothing was paused)
            PreflightError: If pausing failed (paused resources were restored)
        """
        discovery = await self.discover()

        if self.dry_run:
            self.logger.info(
                "Dry run: would pause resources",
                sync_automation=len(discovery.sync_automation),
                workloads=discovery.total_workloads,
            )
            statuses = await orchestrator.run(cancel_token)
            return MigrationOutcome(statuses=statuses)

        await self.pause(discovery, cancel_token)

        report = CompensationReport()
        try:
            statuses = await orchestrator.run(cancel_token)
        finally:
            # Resume is not covered by the run's cancel token
            report = await self.resume()

        return MigrationOutcome(statuses=statuses, compensation=report)

    def _record(self, namespace: str) -> CompensationRecord:
        if namespace not in self.records:
            self.records[namespace] = CompensationRecord(namespace=namespace)
        return self.records[namespace]

    def _record_for_app(self, app: SyncAutomationInfo) -> CompensationRecord:
        return self._record(app.namespace)
