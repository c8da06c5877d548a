"""Thread-safe table of per-claim migration status."""

import threading
from collections.abc import Iterable
from typing import Any

import structlog

from ..models.enums import Step
from ..models.migration import TaskStatus, utc_now

logger = structlog.get_logger()

# Facts a task may record about itself while it runs
_RECORDABLE_FIELDS = frozenset(
    {
        "snapshot_id",
        "new_volume_id",
        "old_volume_id",
        "pv_name",
        "capacity",
        "current_zone",
    }
)


class StatusStore:
    """Owns every TaskStatus of a run.

    All reads return deep copies and all writes happen under one lock, which is
    never held across an await. An entry that reached Skipped, Done or Failed is
    frozen: later writes to it are ignored.
    """

    def __init__(self, names: Iterable[str]):
        self._lock = threading.RLock()
        self._statuses: dict[str, TaskStatus] = {name: TaskStatus.pending(name) for name in names}
        self._done = False
        self.logger = logger.bind(component="status_store")

    def get(self, name: str) -> TaskStatus:
        """Return a copy of one entry."""
        with self._lock:
            return self._statuses[name].model_copy(deep=True)

    def snapshot(self) -> dict[str, TaskStatus]:
        """Return copies of all entries."""
        with self._lock:
            return {name: status.model_copy(deep=True) for name, status in self._statuses.items()}

    def start(self, name: str) -> bool:
        """Stamp the start time; returns False if the entry is already terminal."""
        with self._lock:
            status = self._statuses[name]
            if status.is_terminal:
                return False
            status.start_time = utc_now()
            return True

    def transition(
        self, name: str, step: Step, progress: int = 0, error: str | None = None
    ) -> None:
        """Move an entry to a step.

        An error always moves the entry to Failed. Terminal steps stamp the end time.
        """
        with self._lock:
            status = self._statuses[name]
            if status.is_terminal:
                self.logger.warning(
                    "Ignoring transition of finished task",
                    pvc=name,
                    current=status.step.label,
                    requested=step.label,
                )
                return

            status.step = step
            status.progress = max(0, min(100, progress))
            if error is not None or step == Step.FAILED:
                status.error = error or "failed"
                status.step = Step.FAILED
            if status.step.is_terminal:
                status.end_time = utc_now()

    def record(self, name: str, **facts: Any) -> None:
        """Store discovered facts (volume ids, zone, capacity) on an entry."""
        unknown = set(facts) - _RECORDABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot record fields: {', '.join(sorted(unknown))}")
        with self._lock:
            status = self._statuses[name]
            if status.is_terminal:
                return
            for field, value in facts.items():
                setattr(status, field, value)

    def mark_done(self) -> None:
        with self._lock:
            self._done = True

    def is_done(self) -> bool:
        with self._lock:
            return self._done
