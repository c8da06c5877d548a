"""Run-wide cancellation signal shared by all in-flight migration tasks."""

import asyncio
import contextlib
from collections.abc import Awaitable
from typing import TypeVar

from ..core.exceptions import MigrationCancelledError

T = TypeVar("T")


class CancelToken:
    """A one-shot cancellation signal with a reason.

    Wait loops sleep through :meth:`sleep` and long gateway waits go through
    :meth:`run`; both raise :class:`MigrationCancelledError` once the token fires.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._timer: asyncio.TimerHandle | None = None
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "migration cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def cancel_after(self, seconds: float, reason: str = "migration timed out") -> None:
        """Fire the token after a delay; must be called from a running event loop."""
        self.close()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(seconds, self.cancel, reason)

    def close(self) -> None:
        """Drop a pending cancel_after timer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise MigrationCancelledError(self.reason or "migration cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep between polls, waking early if the token fires."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(seconds, 0))
        except TimeoutError:
            return
        self.raise_if_cancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await something, abandoning it if the token fires first."""
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            watcher.cancel()
        if work.done():
            return work.result()
        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        raise MigrationCancelledError(self.reason or "migration cancelled")
