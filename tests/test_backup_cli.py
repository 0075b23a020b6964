"""Tests for scripts/backup_manager.py, run as a subprocess."""

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

import pytest

from conftest import seed_database

SCRIPT_PATH = Path(__file__).parent.parent / "scripts" / "backup_manager.py"
SRC_PATH = Path(__file__).parent.parent / "src"


def run_cli(
    args: List[str],
    workspace: Optional[Path] = None,
    env: Optional[dict] = None,
) -> subprocess.CompletedProcess:
    """Run the backup CLI against a workspace.

    Args:
        args: Command line arguments to pass
        workspace: Directory holding data/ and backups/
        env: Extra environment variables

    Returns:
        CompletedProcess with stdout, stderr, returncode
    """
    cmd = [sys.executable, str(SCRIPT_PATH)]
    if workspace:
        cmd.extend(
            [
                "--backup-dir", str(workspace / "backups"),
                "--data-dir", str(workspace / "data"),
                "--database", str(workspace / "data" / "newsdesk.db"),
            ]
        )
    cmd.extend(args)

    run_env = {k: v for k, v in os.environ.items() if not k.startswith("NEWSDESK_BACKUP_")}
    run_env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_PATH), run_env.get("PYTHONPATH")]))
    if env:
        run_env.update(env)

    return subprocess.run(cmd, capture_output=True, text=True, env=run_env)


def list_json(workspace: Path) -> list:
    result = run_cli(["list", "--json"], workspace)
    assert result.returncode == 0, result.stderr
    return json.loads(result.stdout)


@pytest.fixture
def cli_workspace(tmp_path):
    (tmp_path / "data").mkdir()
    seed_database(tmp_path / "data" / "newsdesk.db")
    return tmp_path


class TestBackupManagerCLI:
    def test_no_command_prints_help(self):
        result = run_cli([])
        assert result.returncode == 1
        assert "usage:" in result.stdout

    def test_config_json_reflects_flags(self, cli_workspace):
        result = run_cli(["config", "--json"], cli_workspace, env={"NEWSDESK_BACKUP_RETENTION_DAYS": "7"})

        assert result.returncode == 0, result.stderr
        config = json.loads(result.stdout)
        assert config["backup_dir"] == str(cli_workspace / "backups")
        assert config["retention_days"] == 7

    def test_invalid_configuration(self, cli_workspace):
        result = run_cli(["config"], cli_workspace, env={"NEWSDESK_BACKUP_COMPRESSION_LEVEL": "12"})
        assert result.returncode == 1
        assert "Invalid configuration" in result.stderr

    def test_list_empty(self, cli_workspace):
        result = run_cli(["list"], cli_workspace)
        assert result.returncode == 0
        assert "No backups found" in result.stdout

    def test_create_list_verify_delete(self, cli_workspace):
        created = run_cli(["create", "--description", "before migration"], cli_workspace)
        assert created.returncode == 0, created.stderr
        assert "Backup created: full_" in created.stdout

        [record] = list_json(cli_workspace)
        assert record["status"] == "verified"
        assert record["metadata"]["description"] == "before migration"
        assert (cli_workspace / "backups" / f"{record['id']}.json").exists()

        verified = run_cli(["verify", record["id"]], cli_workspace)
        assert verified.returncode == 0
        assert f"Backup {record['id']} verified" in verified.stdout

        deleted = run_cli(["delete", record["id"]], cli_workspace)
        assert deleted.returncode == 0
        assert list_json(cli_workspace) == []
        assert not (cli_workspace / "backups" / record["filename"]).exists()

    def test_restore_latest_into_target(self, cli_workspace):
        assert run_cli(["create"], cli_workspace).returncode == 0
        target = cli_workspace / "restored"

        result = run_cli(["restore", "--target", str(target)], cli_workspace)

        assert result.returncode == 0, result.stderr
        assert "Restored full_" in result.stdout
        assert "Database restored" in result.stdout
        assert (target / "database.sql").exists()

    def test_restore_files_only(self, cli_workspace):
        assert run_cli(["create"], cli_workspace).returncode == 0

        target = cli_workspace / "restored"
        result = run_cli(["restore", "--target", str(target), "--no-replay"], cli_workspace)

        assert result.returncode == 0, result.stderr
        assert "Database restored" not in result.stdout

    def test_damaged_archive_restore_fails_cleanly(self, cli_workspace):
        assert run_cli(["create"], cli_workspace).returncode == 0
        [record] = list_json(cli_workspace)
        archive = cli_workspace / "backups" / record["filename"]
        data = archive.read_bytes()
        archive.write_bytes(data[: len(data) // 2])

        result = run_cli(
            ["restore", record["id"], "--no-verify", "--target", str(cli_workspace / "restored")],
            cli_workspace,
        )

        assert result.returncode == 1
        assert "ERROR:" in result.stderr
        assert "Traceback" not in result.stderr

    def test_export_csv(self, cli_workspace):
        result = run_cli(["export", "--format", "csv"], cli_workspace)

        assert result.returncode == 0, result.stderr
        exports = sorted(p.name for p in (cli_workspace / "backups" / "exports").iterdir())
        assert len(exports) == 2
        assert exports[0].startswith("news_items_") and exports[0].endswith(".csv")
        assert "Total: 2 files" in result.stdout

    def test_export_unknown_table(self, cli_workspace):
        result = run_cli(["export", "--table", "missing"], cli_workspace)
        assert result.returncode == 1
        assert "missing" in result.stderr

    def test_self_test_leaves_no_backups(self, cli_workspace):
        result = run_cli(["test"], cli_workspace)

        assert result.returncode == 0, result.stderr
        assert "Self-test passed" in result.stdout
        assert list_json(cli_workspace) == []


    def test_stats_and_cleanup(self, cli_workspace):
        assert run_cli(["create"], cli_workspace).returncode == 0

        stats = run_cli(["stats", "--json"], cli_workspace)
        assert json.loads(stats.stdout)["total_backups"] == 1

        cleanup = run_cli(["cleanup"], cli_workspace)
        assert cleanup.returncode == 0
        assert "Removed 0 backups" in cleanup.stdout

    def test_unknown_backup_is_an_error(self, cli_workspace):
        result = run_cli(["verify", "full_missing"], cli_workspace)
        assert result.returncode == 1
        assert "ERROR" in result.stderr
        assert "full_missing" in result.stderr

    def test_missing_database_fails(self, cli_workspace):
        (cli_workspace / "data" / "newsdesk.db").unlink()

        result = run_cli(["create"], cli_workspace)

        assert result.returncode == 1
        assert "Database file not found" in result.stderr
        [record] = list_json(cli_workspace)
        assert record["status"] == "failed"

    def test_daemon_requires_interval(self, cli_workspace):
        result = run_cli(["daemon"], cli_workspace)
        assert result.returncode == 1
        assert "AUTO_BACKUP_INTERVAL" in result.stderr
