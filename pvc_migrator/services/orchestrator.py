"""Bounded-concurrency migration orchestrator."""

import asyncio

import structlog
from structlog.stdlib import BoundLogger

from ..core.settings import MigrationTimingSettings, timing_settings
from ..gateways.interfaces import ClusterGateway, VolumeGateway
from ..models.enums import PlanAction
from ..models.migration import MigrationConfig, MigrationPlan, PlanItem, TaskStatus, parse_pvc_name
from .cancellation import CancelToken
from .status_store import StatusStore
from .task_runner import MigrationTaskRunner


class MigrationOrchestrator:
    """Runs one migration task per configured claim, at most max_concurrency at a time.

    Owns the status store; get_statuses() and is_done() are safe to call from
    any thread while run() is in flight.
    """

    def __init__(
        self,
        config: MigrationConfig,
        cluster: ClusterGateway,
        volumes: VolumeGateway,
        timing: MigrationTimingSettings | None = None,
    ):
        self.config = config
        self.cluster = cluster
        self.volumes = volumes
        self.timing = timing or timing_settings
        self.store = StatusStore(config.pvc_list)
        self.logger: BoundLogger = structlog.get_logger().bind(component="migration_orchestrator")

    def get_config(self) -> MigrationConfig:
        return self.config

    def get_statuses(self) -> dict[str, TaskStatus]:
        """Independent copies of every task's status."""
        return self.store.snapshot()

    def is_done(self) -> bool:
        return self.store.is_done()

    async def run(self, cancel_token: CancelToken | None = None) -> dict[str, TaskStatus]:
        """Migrate every configured claim and block until all reach a terminal step.

        Args:
            cancel_token: Shared cancellation signal; a fresh token (armed with
                RUN_TIMEOUT when set) is used when omitted

        Returns:
            Final status of every task
        """
        token = cancel_token or CancelToken()
        if cancel_token is None and self.timing.run_timeout:
            token.cancel_after(self.timing.run_timeout)

        runner = MigrationTaskRunner(
            self.config, self.cluster, self.volumes, self.store, self.timing, token
        )
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def admit(name: str) -> None:
            async with semaphore:
                await runner.run(name)

        self.logger.info(
            "Starting migration run",
            pvcs=len(self.config.pvc_list),
            target_zone=self.config.target_zone,
            max_concurrency=self.config.max_concurrency,
            dry_run=self.config.dry_run,
        )

        try:
            await asyncio.gather(*(admit(name) for name in self.config.pvc_list))
        finally:
            if cancel_token is None:
                token.close()
            self.store.mark_done()

        statuses = self.get_statuses()
        self.logger.info("Migration run finished", **_count_by_step(statuses))
        return statuses

    async def generate_plan(self) -> MigrationPlan:
        """Classify every claim as Migrate, Skip or Error without changing anything."""
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def classify(name: str) -> PlanItem:
            async with semaphore:
                return await self._plan_item(name)

        items = await asyncio.gather(*(classify(name) for name in self.config.pvc_list))

        plan = MigrationPlan(
            items=tuple(items),
            target_zone=self.config.target_zone,
            storage_class=self.config.storage_class,
            dry_run=self.config.dry_run,
            namespaces=self.config.namespaces,
            concurrency=self.config.max_concurrency,
        )
        self.logger.info(
            "Generated migration plan",
            migrate=plan.count(PlanAction.MIGRATE),
            skip=plan.count(PlanAction.SKIP),
            error=plan.count(PlanAction.ERROR),
        )
        return plan

    async def _plan_item(self, name: str) -> PlanItem:
        namespace, pvc_name = parse_pvc_name(name)
        item = {
            "name": name,
            "namespace": namespace,
            "pvc_name": pvc_name,
            "target_zone": self.config.target_zone,
        }

        try:
            info = await self.cluster.get_claim_info(namespace, pvc_name)
        except Exception as e:
            return PlanItem(
                **item, action=PlanAction.ERROR, reason=f"Failed to get PVC info: {e}"
            )

        item.update(pv_name=info.pv_name, volume_id=info.volume_id, capacity=info.capacity)

        try:
            volume = await self.volumes.get_volume_info(info.volume_id)
        except Exception as e:
            return PlanItem(
                **item, action=PlanAction.ERROR, reason=f"Failed to get volume info: {e}"
            )

        if volume.availability_zone == self.config.target_zone:
            return PlanItem(
                **item,
                current_zone=volume.availability_zone,
                action=PlanAction.SKIP,
                reason="Already in target zone",
            )
        return PlanItem(**item, current_zone=volume.availability_zone, action=PlanAction.MIGRATE)


def _count_by_step(statuses: dict[str, TaskStatus]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for status in statuses.values():
        key = status.step.name.lower()
        counts[key] = counts.get(key, 0) + 1
    return counts
