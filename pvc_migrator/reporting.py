"""Plain-text rendering of plans, progress and run summaries."""

from .models.cluster import CompensationReport
from .models.enums import PlanAction, Step
from .models.migration import MigrationPlan, TaskStatus
from .utils import format_duration, truncate

RULE = "=" * 75
PVC_COL_WIDTH = 40
ZONE_COL_WIDTH = 14
ACTION_COL_WIDTH = 25


def _pad(value: str, width: int) -> str:
    return value[:width].ljust(width)


def format_plan(plan: MigrationPlan) -> str:
    """Render the migration plan: configuration, counts, per-claim table and actions."""
    migrate = plan.count(PlanAction.MIGRATE)
    lines = [
        RULE,
        "MIGRATION PLAN".center(75).rstrip(),
        RULE,
        "",
        "Configuration:",
        f"  Target Zone: {plan.target_zone}",
        f"  Storage Class: {plan.storage_class}",
        f"  Namespaces: {', '.join(plan.namespaces)}",
        f"  Concurrency: {plan.concurrency}",
    ]
    if plan.dry_run:
        lines.append("  DRY RUN MODE - No changes will be made")

    lines += [
        "",
        f"PVCs to Process ({len(plan.items)}):",
        f"  Migrate: {migrate}  Skip: {plan.count(PlanAction.SKIP)}  "
        f"Error: {plan.count(PlanAction.ERROR)}",
        "",
        _pad("PVC", PVC_COL_WIDTH) + _pad("Current Zone", ZONE_COL_WIDTH) + "Action",
        "-" * (PVC_COL_WIDTH + ZONE_COL_WIDTH + ACTION_COL_WIDTH),
    ]

    for item in plan.items:
        row = _pad(truncate(item.name, PVC_COL_WIDTH - 2), PVC_COL_WIDTH)
        row += _pad(item.current_zone or "N/A", ZONE_COL_WIDTH)
        if item.action == PlanAction.MIGRATE:
            row += f"Will migrate -> {item.target_zone}"
        elif item.action == PlanAction.SKIP:
            row += "Skip (same AZ)"
        else:
            row += f"Error: {truncate(item.reason, ACTION_COL_WIDTH - 4)}"
        lines.append(row)

        if item.action == PlanAction.MIGRATE and item.volume_id:
            lines.append(f"  `- {item.capacity}, Volume: {truncate(item.volume_id, 25)}")

    if migrate:
        lines += [
            "",
            "Actions to be performed:",
            f"  1. Create EBS snapshots for {migrate} volume(s)",
            f"  2. Create new volumes in {plan.target_zone}",
            "  3. Delete old PVCs and PVs",
            "  4. Create new static PVs and bound PVCs",
        ]
    return "\n".join(lines) + "\n"


def format_progress(status: TaskStatus) -> str:
    """One status line for a task, with progress while waiting on the cloud."""
    name = _pad(truncate(status.name, 43), 45)
    if status.step == Step.DONE:
        duration = format_duration(status.duration)
        return f"{name} Completed" + (f" ({duration})" if duration else "")
    if status.step == Step.SKIPPED:
        return f"{name} Skipped (already in target zone)"
    if status.step == Step.FAILED:
        return f"{name} Failed - {truncate(status.error or '', 40)}"

    line = f"{name} {status.step.label}"
    if status.step in (Step.WAIT_SNAPSHOT, Step.WAIT_VOLUME) and status.progress > 0:
        line += f" {status.progress}%"
    return line


def has_errors(statuses: dict[str, TaskStatus]) -> bool:
    return any(status.step == Step.FAILED for status in statuses.values())


def format_summary(statuses: dict[str, TaskStatus], target_zone: str) -> str:
    """Render the final per-claim outcome and totals, sorted by claim id."""
    lines = [RULE, "MIGRATION SUMMARY".center(75).rstrip(), RULE, ""]
    succeeded = skipped = failed = 0

    for name in sorted(statuses):
        status = statuses[name]
        if status.step == Step.DONE:
            succeeded += 1
            duration = format_duration(status.duration)
            lines.append(f"  OK   {name}" + (f" ({duration})" if duration else ""))
            if status.new_volume_id:
                lines.append(f"       New Volume: {status.new_volume_id}")
        elif status.step == Step.SKIPPED:
            skipped += 1
            lines.append(f"  SKIP {name} (already in target zone)")
        elif status.step == Step.FAILED:
            failed += 1
            lines.append(f"  FAIL {name}")
            if status.error:
                lines.append(f"       Error: {status.error}")
        else:
            lines.append(f"  ---  {name} (Incomplete)")

    lines += [
        "",
        RULE,
        f"  Total: {len(statuses)} | Success: {succeeded} | Skipped: {skipped} | Failed: {failed}",
        RULE,
    ]

    if has_errors(statuses):
        lines += ["", "  Some migrations failed. Please check the errors above."]
    elif succeeded:
        lines += [
            "",
            "  All migrations completed successfully!",
            f"  Next step: Ensure your workloads can schedule pods in {target_zone}",
        ]
    return "\n".join(lines) + "\n"


def format_restoration_warnings(report: CompensationReport) -> str:
    """One actionable block per workload or application that could not be restored."""
    if report.ok:
        return ""
    lines = ["WARNING: some paused resources could not be restored. Run these by hand:"]
    for failure in report.failures:
        lines.append(f"  - {failure.kind} {failure.namespace}/{failure.name}: {failure.error}")
        if failure.remedy:
            lines.append(f"      {failure.remedy}")
    return "\n".join(lines) + "\n"
