"""Per-claim migration state machine."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog
from structlog.stdlib import BoundLogger

from ..constants import (
    PROGRESS_COMPLETE,
    SNAPSHOT_STATE_COMPLETED,
    SNAPSHOT_STATE_ERROR,
    STATIC_PV_SUFFIX,
    VOLUME_PROGRESS_CREATING,
    VOLUME_PROGRESS_OTHER,
    VOLUME_STATE_AVAILABLE,
    VOLUME_STATE_CREATING,
    VOLUME_STATE_ERROR,
)
from ..core.exceptions import MigrationCancelledError
from ..core.settings import MigrationTimingSettings
from ..gateways.interfaces import ClusterGateway, VolumeGateway
from ..models.enums import Step
from ..models.migration import MigrationConfig
from ..utils import capacity_to_gib
from .cancellation import CancelToken
from .status_store import StatusStore

T = TypeVar("T")


class StepFailedError(Exception):
    """A migration step failed; the message is what the task's status reports."""


class MigrationTaskRunner:
    """Drives one claim through snapshot, new volume and rebind.

    Steps run strictly in order and none is retried here; gateways own their
    own request-level retries. The new static PV is always created before the
    old claim and volume are deleted, so a crash at any point leaves either
    the untouched original or an addressable new volume.
    """

    def __init__(
        self,
        config: MigrationConfig,
        cluster: ClusterGateway,
        volumes: VolumeGateway,
        store: StatusStore,
        timing: MigrationTimingSettings,
        cancel_token: CancelToken,
    ):
        self.config = config
        self.cluster = cluster
        self.volumes = volumes
        self.store = store
        self.timing = timing
        self.cancel_token = cancel_token
        self.logger: BoundLogger = structlog.get_logger().bind(component="task_runner")

    async def run(self, name: str) -> None:
        """Migrate one claim; never raises except for hard task cancellation."""
        log = self.logger.bind(pvc=name)
        if not self.store.start(name):
            log.debug("Task already finished, not re-entering")
            return

        try:
            await self._migrate(name, log)
        except (StepFailedError, MigrationCancelledError) as e:
            self.store.transition(name, Step.FAILED, error=str(e))
            log.error("PVC migration failed", error=str(e))
        except asyncio.CancelledError:
            self.store.transition(name, Step.FAILED, error="cancelled")
            log.warning("PVC migration cancelled")
            raise

    async def _migrate(self, name: str, log: BoundLogger) -> None:
        status = self.store.get(name)
        namespace, pvc_name = status.namespace, status.pvc_name
        target_zone = self.config.target_zone

        self._enter(name, Step.GET_INFO, log)
        info = await self._step("get info", self.cluster.get_claim_info(namespace, pvc_name))
        self.store.record(
            name, old_volume_id=info.volume_id, pv_name=info.pv_name, capacity=info.capacity
        )

        volume = await self._step("get volume info", self.volumes.get_volume_info(info.volume_id))
        self.store.record(name, current_zone=volume.availability_zone)

        if volume.availability_zone == target_zone:
            self.store.transition(name, Step.SKIPPED, PROGRESS_COMPLETE)
            log.info("PVC already in target zone", zone=target_zone)
            return

        if self.config.dry_run:
            self.store.transition(name, Step.DONE, PROGRESS_COMPLETE)
            log.info(
                "Dry run: would migrate PVC",
                volume_id=info.volume_id,
                from_zone=volume.availability_zone,
                to_zone=target_zone,
            )
            return

        self._enter(name, Step.SNAPSHOT, log)
        snapshot_id = await self._step(
            "create snapshot",
            self.volumes.create_snapshot(info.volume_id, pvc_name, target_zone),
        )
        self.store.record(name, snapshot_id=snapshot_id)

        await self._wait_for_snapshot(name, snapshot_id)

        self._enter(name, Step.CREATE_VOLUME, log)
        try:
            size_gib = capacity_to_gib(info.capacity)
        except ValueError as e:
            raise StepFailedError(f"create volume: {e}") from e
        new_volume_id = await self._step(
            "create volume",
            self.volumes.create_volume(snapshot_id, target_zone, pvc_name, namespace, size_gib),
        )
        self.store.record(name, new_volume_id=new_volume_id)

        await self._wait_for_volume(name, new_volume_id)

        # The new PV must exist before anything old is deleted
        self._enter(name, Step.CREATE_PV, log)
        new_pv_name = pvc_name + STATIC_PV_SUFFIX
        await self._step(
            "create PV",
            self.cluster.create_static_volume(
                new_pv_name, new_volume_id, info.capacity, self.config.storage_class, target_zone
            ),
        )

        # A failed cleanup leaves a dangling old volume; the new PV is kept
        self._enter(name, Step.CLEANUP, log)
        await self._step(
            "cleanup", self.cluster.delete_claim_and_volume(namespace, pvc_name, info.pv_name)
        )

        self._enter(name, Step.CREATE_PVC, log)
        await self._step(
            "create PVC",
            self.cluster.create_bound_claim(
                namespace, pvc_name, new_pv_name, info.capacity, self.config.storage_class
            ),
        )

        self.store.transition(name, Step.DONE, PROGRESS_COMPLETE)
        log.info(
            "PVC migration completed",
            old_volume_id=info.volume_id,
            new_volume_id=new_volume_id,
            zone=target_zone,
        )

    async def _wait_for_snapshot(self, name: str, snapshot_id: str) -> None:
        self.store.transition(name, Step.WAIT_SNAPSHOT, 0)
        while True:
            progress, state = await self._step(
                "get snapshot progress", self.volumes.get_snapshot_progress(snapshot_id)
            )
            if state == SNAPSHOT_STATE_COMPLETED:
                self.store.transition(name, Step.WAIT_SNAPSHOT, PROGRESS_COMPLETE)
                return
            if state == SNAPSHOT_STATE_ERROR:
                raise StepFailedError("snapshot failed")

            self.store.transition(name, Step.WAIT_SNAPSHOT, progress)
            await self.cancel_token.sleep(self.timing.snapshot_poll_interval)

    async def _wait_for_volume(self, name: str, volume_id: str) -> None:
        self.store.transition(name, Step.WAIT_VOLUME, 0)
        while True:
            state = await self._step("get volume state", self.volumes.get_volume_state(volume_id))
            if state == VOLUME_STATE_AVAILABLE:
                self.store.transition(name, Step.WAIT_VOLUME, PROGRESS_COMPLETE)
                return
            if state == VOLUME_STATE_ERROR:
                raise StepFailedError("volume creation failed")

            progress = (
                VOLUME_PROGRESS_CREATING if state == VOLUME_STATE_CREATING else VOLUME_PROGRESS_OTHER
            )
            self.store.transition(name, Step.WAIT_VOLUME, progress)
            await self.cancel_token.sleep(self.timing.volume_poll_interval)

    def _enter(self, name: str, step: Step, log: BoundLogger) -> None:
        self.cancel_token.raise_if_cancelled()
        self.store.transition(name, step, 0)
        log.info("PVC migration step", step=step.label)

    async def _step(self, context: str, call: Awaitable[T]) -> T:
        """Await a gateway call, turning any failure into a StepFailedError."""
        try:
            return await call
        except (MigrationCancelledError, asyncio.CancelledError):
            raise
        except Exception as e:
            raise StepFailedError(f"{context}: {e}") from e
