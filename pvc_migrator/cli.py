"""Command line entry point for PVC Migrator."""

import argparse
import asyncio
import contextlib
import os
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

from .constants import DEFAULT_CONFIG_FILENAME
from .core.config_loader import PVCMigratorConfig, load_config, write_example_config
from .core.exceptions import ConfigurationError, PreflightError, PVCMigratorError
from .core.logging_config import get_logger, setup_logging
from .core.settings import MigrationTimingSettings
from .gateways.ec2 import EC2Gateway
from .gateways.interfaces import ClusterGateway, VolumeGateway
from .gateways.kubernetes import KubernetesGateway
from .reporting import format_plan, format_progress, format_restoration_warnings, format_summary
from .services.cancellation import CancelToken
from .services.coordinator import MigrationCoordinator, discover_claims, pvc_ids
from .services.orchestrator import MigrationOrchestrator

PROGRESS_LOG_INTERVAL = 10.0


def _comma_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="pvc-migrator",
        description="Migrate EBS-backed PVCs between AWS Availability Zones",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate = subparsers.add_parser("migrate", help="Migrate PVCs to a target zone")
    migrate.add_argument("-c", "--config", help="Path to YAML configuration file")
    migrate.add_argument("--context", dest="kube_context", help="Kubernetes context to use")
    migrate.add_argument(
        "-n", "--namespace", dest="namespaces", type=_comma_list,
        help="Namespace(s) containing the PVCs, comma-separated; discovers all PVCs",
    )
    migrate.add_argument("-z", "--zone", dest="target_zone", help="Target AWS Availability Zone")
    migrate.add_argument("-s", "--storage-class", dest="storage_class", help="Storage class for the new PVs")
    migrate.add_argument("--concurrency", dest="max_concurrency", type=int, help="Maximum concurrent migrations")
    migrate.add_argument(
        "--dry-run", action="store_true", default=None,
        help="Show what would be done without making changes",
    )
    migrate.add_argument(
        "--skip-argocd", action="store_true", default=None,
        help="Skip ArgoCD auto-sync detection and handling",
    )
    migrate.add_argument(
        "--argocd-namespaces", type=_comma_list, help="Namespaces to search for ArgoCD applications"
    )
    migrate.add_argument(
        "--scale-mode", choices=["auto", "manual"], help="Scale workloads automatically or by hand"
    )
    migrate.add_argument("--plan", action="store_true", help="Show the migration plan and exit")
    migrate.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    init = subparsers.add_parser("init-config", help="Write an example configuration file")
    init.add_argument("file", nargs="?", default=DEFAULT_CONFIG_FILENAME)
    init.add_argument("--force", action="store_true", help="Overwrite an existing file")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    _setup_logging_system(args)

    if args.command == "init-config":
        sys.exit(_init_config(args))
    sys.exit(_migrate(args))


def _setup_logging_system(args: argparse.Namespace) -> None:
    try:
        max_file_size_mb = int(os.getenv("LOG_FILE_SIZE_MB", "10"))
    except ValueError:
        max_file_size_mb = 10
    setup_logging(
        log_dir=os.getenv("LOG_DIR"), log_level=args.log_level, max_file_size_mb=max_file_size_mb
    )


def _init_config(args: argparse.Namespace) -> int:
    path = Path(args.file)
    if path.exists() and not args.force:
        print(f"{path} already exists; use --force to overwrite", file=sys.stderr)
        return 1
    try:
        written = write_example_config(path)
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        return 1
    print(f"Created example configuration: {written}")
    return 0


def _build_config(args: argparse.Namespace) -> PVCMigratorConfig:
    config = load_config(args.config)
    config = config.apply_overrides(
        kube_context=args.kube_context,
        namespaces=args.namespaces,
        target_zone=args.target_zone,
        storage_class=args.storage_class,
        max_concurrency=args.max_concurrency,
        dry_run=args.dry_run,
        skip_argocd=args.skip_argocd,
        argocd_namespaces=args.argocd_namespaces,
        scale_mode=args.scale_mode,
    )
    config.validate_for_run()
    return config


def _migrate(args: argparse.Namespace) -> int:
    logger = get_logger("cli")
    try:
        config = _build_config(args)
        cluster = KubernetesGateway.from_kubeconfig(config.kube_context)
        volumes = EC2Gateway.from_environment(config.aws_region)
        return asyncio.run(run_migration(config, cluster, volumes, plan_only=args.plan, assume_yes=args.yes))
    except PreflightError as e:
        logger.error("Pre-flight failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        if e.report is not None:
            print(format_restoration_warnings(e.report), end="", file=sys.stderr)
        return 1
    except PVCMigratorError as e:
        logger.error("Migration aborted", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


async def run_migration(
    config: PVCMigratorConfig,
    cluster: ClusterGateway,
    volumes: VolumeGateway,
    *,
    plan_only: bool = False,
    assume_yes: bool = False,
    timing: MigrationTimingSettings | None = None,
) -> int:
    """Discover, plan, confirm, migrate and report. Returns the process exit code."""
    logger = get_logger("cli")

    claims = await discover_claims(cluster, config.namespaces)
    for namespace, names in claims.items():
        logger.info("Discovered PVCs", namespace=namespace, count=len(names))

    migration_config = config.to_migration_config(pvc_ids(claims))
    orchestrator = MigrationOrchestrator(migration_config, cluster, volumes, timing=timing)

    plan = await orchestrator.generate_plan()
    print(format_plan(plan))
    if plan_only:
        print("Run without --plan flag to execute the migration.")
        return 0

    if not (assume_yes or config.dry_run):
        print("WARNING: workloads in these namespaces will be scaled to 0 during the migration.")
        if not await asyncio.to_thread(_ask, "Start migration? [y/N] "):
            print("Migration cancelled.")
            return 0

    coordinator = MigrationCoordinator(
        cluster,
        config.namespace_names,
        dry_run=config.dry_run,
        skip_argocd=config.skip_argocd,
        argocd_namespaces=config.argocd_namespaces,
        scale_mode=config.scale_mode,
        kube_context=config.kube_context,
        confirm=_confirm_manual_scale_down,
        timing=timing,
    )

    token = CancelToken()
    if orchestrator.timing.run_timeout:
        token.cancel_after(orchestrator.timing.run_timeout)
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted by user")

    progress = asyncio.create_task(_log_progress(orchestrator))
    try:
        outcome = await coordinator.execute(orchestrator, token)
    finally:
        progress.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await progress
        token.close()
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)

    print(format_summary(outcome.statuses, config.target_zone))
    warnings = format_restoration_warnings(outcome.compensation)
    if warnings:
        print(warnings, file=sys.stderr)
    return 1 if outcome.has_errors else 0


async def _log_progress(orchestrator: MigrationOrchestrator) -> None:
    logger = get_logger("progress")
    while not orchestrator.is_done():
        await asyncio.sleep(PROGRESS_LOG_INTERVAL)
        for name, status in sorted(orchestrator.get_statuses().items()):
            if not status.is_terminal:
                logger.info(format_progress(status).strip(), pvc=name)


def _ask(prompt: str) -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _confirm_manual_scale_down(commands: list[str]) -> bool:
    print("\nPlease scale down the workloads manually before proceeding:\n")
    for command in commands:
        print(f"  {command}")
    print("\nPress Enter when workloads are scaled down, or 'q' to quit:")
    try:
        answer = input()
    except EOFError:
        return False
    return answer.strip().lower() != "q"


if __name__ == "__main__":
    main()
