"""Tests for plan, progress and summary rendering."""

from datetime import timedelta

from pvc_migrator.models.cluster import CompensationReport, RestorationFailure
from pvc_migrator.models.enums import PlanAction, Step
from pvc_migrator.models.migration import MigrationPlan, PlanItem, TaskStatus, utc_now
from pvc_migrator.reporting import (
    format_plan,
    format_progress,
    format_restoration_warnings,
    format_summary,
    has_errors,
)


def _item(name, action, **kwargs):
    namespace, _, pvc = name.partition("/")
    return PlanItem(
        name=name, namespace=namespace, pvc_name=pvc, target_zone="us-east-1a", action=action, **kwargs
    )


def _status(name, step, **kwargs):
    return TaskStatus.pending(name).model_copy(update={"step": step, **kwargs})


class TestFormatPlan:
    """Test suite for format_plan."""

    def test_plan_rows_and_actions(self):
        """Test each action renders its row and the action list appears."""
        plan = MigrationPlan(
            items=(
                _item("ns/move", PlanAction.MIGRATE, current_zone="us-east-1b",
                      capacity="50Gi", volume_id="vol-123"),
                _item("ns/stay", PlanAction.SKIP, current_zone="us-east-1a"),
                _item("ns/broken", PlanAction.ERROR, reason="Failed to get PVC info: 404"),
            ),
            target_zone="us-east-1a",
            storage_class="gp3",
            dry_run=True,
            namespaces=("ns",),
            concurrency=5,
        )

        text = format_plan(plan)

        assert "MIGRATION PLAN" in text
        assert "Target Zone: us-east-1a" in text
        assert "DRY RUN MODE" in text
        assert "PVCs to Process (3):" in text
        assert "Migrate: 1  Skip: 1  Error: 1" in text
        assert "Will migrate -> us-east-1a" in text
        assert "50Gi, Volume: vol-123" in text
        assert "Skip (same AZ)" in text
        assert "N/A" in text
        assert "Create EBS snapshots for 1 volume(s)" in text

    def test_no_actions_when_nothing_to_migrate(self):
        """Test the action list is omitted when every claim is skipped."""
        plan = MigrationPlan(
            items=(_item("ns/stay", PlanAction.SKIP, current_zone="us-east-1a"),),
            target_zone="us-east-1a",
            storage_class="gp3",
            dry_run=False,
            concurrency=1,
        )

        text = format_plan(plan)

        assert "Actions to be performed" not in text
        assert "DRY RUN" not in text


class TestFormatSummary:
    """Test suite for format_summary and format_progress."""

    def test_summary_totals(self):
        """Test per-claim lines are sorted and totals are counted."""
        start = utc_now()
        statuses = {
            "ns/b": _status("ns/b", Step.FAILED, error="snapshot failed"),
            "ns/a": _status(
                "ns/a", Step.DONE, new_volume_id="vol-new",
                start_time=start, end_time=start + timedelta(seconds=75),
            ),
            "ns/c": _status("ns/c", Step.SKIPPED),
            "ns/d": _status("ns/d", Step.CREATE_PV),
        }

        text = format_summary(statuses, "us-east-1a")

        assert text.index("ns/a") < text.index("ns/b") < text.index("ns/c")
        assert "ns/a (1m15s)" in text
        assert "New Volume: vol-new" in text
        assert "Error: snapshot failed" in text
        assert "ns/d (Incomplete)" in text
        assert "Total: 4 | Success: 1 | Skipped: 1 | Failed: 1" in text
        assert "Some migrations failed" in text
        assert has_errors(statuses) is True

    def test_all_succeeded(self):
        """Test the success footer names the target zone."""
        statuses = {"ns/a": _status("ns/a", Step.DONE)}

        text = format_summary(statuses, "us-east-1a")

        assert "All migrations completed successfully!" in text
        assert "schedule pods in us-east-1a" in text
        assert has_errors(statuses) is False

    def test_progress_lines(self):
        """Test waiting steps show their percentage."""
        waiting = _status("ns/a", Step.WAIT_SNAPSHOT, progress=40)
        failed = _status("ns/b", Step.FAILED, error="cleanup: forbidden")

        assert format_progress(waiting).endswith("Snapshot Progress 40%")
        assert "Failed - cleanup: forbidden" in format_progress(failed)
        assert format_progress(_status("ns/c", Step.SKIPPED)).endswith("already in target zone)")


class TestRestorationWarnings:
    """Test suite for format_restoration_warnings."""

    def test_empty_when_everything_restored(self):
        """Test no warning is produced for a clean report."""
        assert format_restoration_warnings(CompensationReport(restored=["ns/x"])) == ""

    def test_remedy_is_listed(self):
        """Test each failure carries its manual command."""
        report = CompensationReport(
            failures=[
                RestorationFailure(
                    kind="workload",
                    namespace="ns",
                    name="Deployment/api",
                    error="conflict",
                    remedy="kubectl scale deployment api --replicas=2 -n ns",
                )
            ]
        )

        text = format_restoration_warnings(report)

        assert "workload ns/Deployment/api: conflict" in text
        assert "kubectl scale deployment api --replicas=2 -n ns" in text
