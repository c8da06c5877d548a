"""Tests for the thread-safe status store and the cancel token."""

import asyncio
import threading

import pytest

from pvc_migrator.core.exceptions import MigrationCancelledError
from pvc_migrator.models.enums import Step
from pvc_migrator.services.cancellation import CancelToken
from pvc_migrator.services.status_store import StatusStore


class TestStatusStore:
    """Test suite for StatusStore."""

    def test_reads_are_copies(self):
        """Test callers cannot mutate stored entries."""
        store = StatusStore(["ns/a"])

        copy = store.get("ns/a")
        copy.step = Step.DONE

        assert store.get("ns/a").step == Step.PENDING

    def test_error_forces_failed(self):
        """Test any error moves the entry to Failed with an end time."""
        store = StatusStore(["ns/a"])
        store.start("ns/a")

        store.transition("ns/a", Step.SNAPSHOT, error="boom")

        status = store.get("ns/a")
        assert status.step == Step.FAILED
        assert status.error == "boom"
        assert status.end_time is not None

    def test_terminal_entries_are_frozen(self):
        """Test writes after a terminal step are ignored."""
        store = StatusStore(["ns/a"])
        store.transition("ns/a", Step.DONE, 100)

        store.transition("ns/a", Step.SNAPSHOT, 10)
        store.record("ns/a", snapshot_id="snap-late")

        status = store.get("ns/a")
        assert status.step == Step.DONE
        assert status.snapshot_id is None
        assert store.start("ns/a") is False

    def test_progress_is_clamped(self):
        """Test progress stays within 0..100."""
        store = StatusStore(["ns/a"])

        store.transition("ns/a", Step.WAIT_SNAPSHOT, 140)
        assert store.get("ns/a").progress == 100

        store.transition("ns/a", Step.WAIT_SNAPSHOT, -5)
        assert store.get("ns/a").progress == 0

    def test_record_rejects_unknown_fields(self):
        """Test only known facts can be recorded."""
        store = StatusStore(["ns/a"])
        with pytest.raises(ValueError, match="step"):
            store.record("ns/a", step=Step.DONE)

    def test_concurrent_readers_and_writers(self):
        """Test snapshots taken from other threads never see torn entries."""
        names = [f"ns/pvc-{i}" for i in range(20)]
        store = StatusStore(names)
        seen: list[int] = []

        def writer():
            for progress in range(101):
                for name in names:
                    store.transition(name, Step.WAIT_SNAPSHOT, progress)

        def reader():
            for _ in range(200):
                seen.extend(s.progress for s in store.snapshot().values())

        threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert all(0 <= progress <= 100 for progress in seen)
        assert all(s.progress == 100 for s in store.snapshot().values())


class TestCancelToken:
    """Test suite for CancelToken."""

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        """Test a long sleep ends as soon as the token fires."""
        token = CancelToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")

        with pytest.raises(MigrationCancelledError, match="stop"):
            await asyncio.wait_for(token.sleep(30), timeout=5)

    @pytest.mark.asyncio
    async def test_sleep_returns_normally(self):
        """Test an uncancelled sleep just returns."""
        token = CancelToken()
        await token.sleep(0)
        assert token.cancelled is False

    @pytest.mark.asyncio
    async def test_run_abandons_work(self):
        """Test run() cancels the awaited work when the token fires."""
        token = CancelToken()
        started = asyncio.Event()
        finished = False

        async def work():
            nonlocal finished
            started.set()
            await asyncio.sleep(30)
            finished = True

        token.cancel_after(0.01)
        with pytest.raises(MigrationCancelledError, match="migration timed out"):
            await token.run(work())

        assert started.is_set()
        assert finished is False

    @pytest.mark.asyncio
    async def test_run_returns_result(self):
        """Test run() passes through the work's result."""
        token = CancelToken()

        async def work():
            return 42

        assert await token.run(work()) == 42

    @pytest.mark.asyncio
    async def test_first_reason_wins(self):
        """Test cancelling twice keeps the first reason."""
        token = CancelToken()
        token.cancel("first")
        token.cancel("second")

        assert token.reason == "first"
        with pytest.raises(MigrationCancelledError, match="first"):
            token.raise_if_cancelled()
