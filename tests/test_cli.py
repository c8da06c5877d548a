"""Tests for the command line entry point."""

import pytest

from pvc_migrator import cli
from pvc_migrator.core.config_loader import PVCMigratorConfig
from pvc_migrator.core.exceptions import GatewayError
from pvc_migrator.models.cluster import SyncAutomationInfo, WorkloadInfo


@pytest.fixture
def populated(cluster, volumes):
    """One claim in ns that lives in the wrong zone, plus a workload and an app."""
    cluster.listings["ns"] = ["data"]
    cluster.add_claim("ns", "data", "vol-1", "50Gi")
    volumes.add_volume("vol-1", "us-east-1b")
    cluster.workloads["ns"] = [WorkloadInfo(kind="Deployment", name="api", replicas=2)]
    cluster.apps["ns"] = [SyncAutomationInfo(name="shop", namespace="argocd")]
    return cluster, volumes


def _config(**overrides):
    return PVCMigratorConfig(namespaces=["ns"], targetZone="us-east-1a").apply_overrides(**overrides)


class TestParseArgs:
    """Test suite for parse_args."""

    def test_migrate_flags(self):
        """Test comma lists split and unset booleans stay None."""
        args = cli.parse_args(
            ["migrate", "-n", "a, b", "--dry-run", "--concurrency", "3", "--argocd-namespaces", "gitops"]
        )

        assert args.command == "migrate"
        assert args.namespaces == ["a", "b"]
        assert args.dry_run is True
        assert args.skip_argocd is None
        assert args.max_concurrency == 3
        assert args.argocd_namespaces == ["gitops"]
        assert args.target_zone is None
        assert args.plan is False

    def test_init_config_default_file(self):
        """Test init-config writes pvc-migrator.yaml by default."""
        args = cli.parse_args(["init-config"])

        assert args.command == "init-config"
        assert args.file == "pvc-migrator.yaml"
        assert args.force is False

    def test_command_is_required(self):
        """Test running without a subcommand is a usage error."""
        with pytest.raises(SystemExit):
            cli.parse_args([])


class TestRunMigration:
    """Test suite for run_migration."""

    @pytest.mark.asyncio
    async def test_successful_run(self, populated, timing, capsys):
        """Test a confirmed run migrates, restores and reports success."""
        cluster, volumes = populated

        code = await cli.run_migration(_config(), cluster, volumes, assume_yes=True, timing=timing)

        assert code == 0
        out = capsys.readouterr().out
        assert "MIGRATION PLAN" in out
        assert "Will migrate -> us-east-1a" in out
        assert "All migrations completed successfully!" in out
        assert cluster.called("disable_sync_automation")
        assert cluster.called("restore_workload_replicas")
        assert cluster.called("enable_sync_automation")
        assert volumes.called("create_snapshot")

    @pytest.mark.asyncio
    async def test_plan_only(self, populated, timing, capsys):
        """Test --plan prints the plan and touches nothing."""
        cluster, volumes = populated

        code = await cli.run_migration(_config(), cluster, volumes, plan_only=True, timing=timing)

        assert code == 0
        assert "Run without --plan flag" in capsys.readouterr().out
        assert not cluster.called("disable_sync_automation")
        assert not cluster.called("scale_workloads_to_zero")
        assert not volumes.called("create_snapshot")

    @pytest.mark.asyncio
    async def test_declined_confirmation(self, populated, timing, capsys, monkeypatch):
        """Test answering no cancels before anything is paused."""
        cluster, volumes = populated
        monkeypatch.setattr(cli, "_ask", lambda prompt: False)

        code = await cli.run_migration(_config(), cluster, volumes, timing=timing)

        assert code == 0
        assert "Migration cancelled." in capsys.readouterr().out
        assert not cluster.called("disable_sync_automation")

    @pytest.mark.asyncio
    async def test_dry_run_skips_prompt_and_pause(self, populated, timing, monkeypatch):
        """Test dry runs neither ask nor pause."""
        cluster, volumes = populated

        def _fail(prompt):
            raise AssertionError("should not prompt")

        monkeypatch.setattr(cli, "_ask", _fail)

        code = await cli.run_migration(_config(dry_run=True), cluster, volumes, timing=timing)

        assert code == 0
        assert not cluster.called("disable_sync_automation")
        assert "scale_workloads_to_zero" not in cluster.methods()
        assert not volumes.called("create_snapshot")

    @pytest.mark.asyncio
    async def test_failed_migration_exit_code(self, populated, timing, capsys):
        """Test a failed claim makes the run exit non-zero after restoring."""
        cluster, volumes = populated
        volumes.fail[("create_snapshot", None)] = GatewayError("snapshot quota exceeded")

        code = await cli.run_migration(_config(), cluster, volumes, assume_yes=True, timing=timing)

        assert code == 1
        out = capsys.readouterr().out
        assert "Some migrations failed" in out
        assert cluster.called("enable_sync_automation")


class TestInitConfig:
    """Test suite for the init-config command."""

    def test_creates_file(self, tmp_path, capsys):
        """Test the example file is written and the process exits 0."""
        path = tmp_path / "pvc-migrator.yaml"

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["init-config", str(path)])

        assert exc_info.value.code == 0
        assert path.exists()
        assert "Created example configuration" in capsys.readouterr().out

    def test_refuses_to_overwrite(self, tmp_path):
        """Test an existing file is kept unless --force is given."""
        path = tmp_path / "pvc-migrator.yaml"
        path.write_text("keep: me\n")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["init-config", str(path)])

        assert exc_info.value.code == 1
        assert path.read_text() == "keep: me\n"

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["init-config", str(path), "--force"])

        assert exc_info.value.code == 0
        assert path.read_text() != "keep: me\n"
