"""Unit tests for the SKB CLI commands."""

import json
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from pyskb.cli import main
from pyskb.exceptions import (
    LocalVersionIsNewerError,
    NotTrackedRemotelyError,
    ServerNotFoundError,
    SkbConfigError,
    SkbNetworkError,
)
from pyskb.models import BackupCode, DiscoveredServer, InfoSnapshot, TrackedFile
from pyskb.sync import FileStatus, LocalFileState, SyncDecision, SyncEngine, SyncVerdict


@pytest.fixture
def runner():
    """Provide a Click CLI test runner with a wide terminal for tables."""
    return CliRunner(env={"COLUMNS": "200"})


@pytest.fixture
def engine():
    """Mock sync engine handed to the commands through the context."""
    return Mock(spec=SyncEngine)


def invoke(runner, engine, args, **kwargs):
    return runner.invoke(main, args, obj={"engine": engine}, **kwargs)


def decision(verdict, path="a.txt", remote=None):
    return SyncDecision(
        verdict=verdict,
        reason="",
        local=LocalFileState.missing(path),
        remote=remote,
    )


def snapshot():
    return InfoSnapshot.from_api_response(
        {
            "total_usage_size": 2048,
            "used_data": 1024,
            "data_unsecured": 0,
            "data_secured": 1024,
            "data_safely_secured": 0,
            "servers": [
                {
                    "hostname": "backup1.example.org",
                    "owner": "alice",
                    "block_size": 1024,
                    "free_blocks": 2,
                    "used_blocks": 1,
                    "healthcheck_percent": 100,
                    "healthcheck_interval": 60,
                    "is_verified": True,
                    "is_confirmed": False,
                    "healthy": True,
                }
            ],
            "files": [{"id": "1", "path": "a.txt", "last_modified": 1000}],
        }
    )


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "PySKB" in result.output
        assert "--allow-unsafe" in result.output
        assert "init" in result.output
        assert "file" in result.output
        assert "server" in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_file_help(self, runner):
        result = runner.invoke(main, ["file", "--help"])
        assert result.exit_code == 0
        for command in ("list", "add", "update", "download", "delete", "sync"):
            assert command in result.output

    @patch("pyskb.cli.load_config")
    def test_missing_config_is_reported(self, mock_load_config, runner):
        mock_load_config.side_effect = SkbConfigError("File config.json doesn't exist")

        result = runner.invoke(main, ["status"])

        assert result.exit_code == 1
        assert "config.json doesn't exist" in result.output

    @patch("pyskb.cli.SyncEngine")
    @patch("pyskb.cli.SkbClient")
    @patch("pyskb.cli.load_config")
    def test_engine_built_from_options(
        self, mock_load_config, mock_client_class, mock_engine_class, runner, tmp_path
    ):
        """Test that global options reach the configuration loader."""
        config_file = tmp_path / "config.json"
        key_file = tmp_path / "private.pem"
        mock_engine_class.return_value.list_files.return_value = []

        result = runner.invoke(
            main,
            ["-k", "--config", str(config_file), "--key", str(key_file), "file", "list"],
        )

        assert result.exit_code == 0
        mock_load_config.assert_called_once_with(
            config_path=config_file, key_path=key_file, allow_unsafe=True
        )
        mock_client_class.assert_called_once_with(mock_load_config.return_value)
        mock_client_class.return_value.close.assert_called_once()


class TestInitCommand:
    def test_init_writes_config(self, runner, tmp_path):
        target = tmp_path / "conf"

        result = runner.invoke(
            main,
            ["init", "--dir", str(target), "--key-size", "1024"],
            input="https://skb.example.org/api/client/v1/\n",
        )

        assert result.exit_code == 0
        assert json.loads((target / "config.json").read_text()) == {
            "url": "https://skb.example.org/api/client/v1/"
        }
        assert (target / "private.pem").exists()
        assert "BEGIN PUBLIC KEY" in result.output

    def test_init_refuses_to_overwrite(self, runner, tmp_path):
        (tmp_path / "config.json").write_text("{}")

        result = runner.invoke(
            main, ["init", "--dir", str(tmp_path), "--url", "https://host/api/"]
        )

        assert result.exit_code == 1
        assert "already exists" in result.output
        assert (tmp_path / "config.json").read_text() == "{}"


class TestStatusCommand:
    def test_status(self, runner, engine):
        engine.server_status.return_value = snapshot()

        result = invoke(runner, engine, ["status"])

        assert result.exit_code == 0
        assert "backup1.example.org" in result.output
        assert "awaiting_remote" in result.output
        assert "a.txt" in result.output

    def test_status_json(self, runner, engine):
        engine.server_status.return_value = snapshot()

        result = invoke(runner, engine, ["--json", "status"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["used_data"] == 1024
        assert data["files"][0]["path"] == "a.txt"

    def test_status_network_error(self, runner, engine):
        engine.server_status.side_effect = SkbNetworkError("Network error: refused")

        result = invoke(runner, engine, ["status"])

        assert result.exit_code == 1
        assert "Network error: refused" in result.output


class TestServerCommands:
    def test_list(self, runner, engine):
        engine.server_status.return_value = snapshot()

        result = invoke(runner, engine, ["--json", "server", "list"])

        assert result.exit_code == 0
        assert json.loads(result.output)[0]["state"] == "awaiting_remote"

    def test_discover(self, runner, engine):
        engine.discover_servers.return_value = [
            DiscoveredServer(
                hostname="new.example.org",
                owner="bob",
                block_size=1024,
                free_blocks=1,
                healthcheck_percent=90,
                healthcheck_interval=30,
                hash_methods=["sha256"],
            )
        ]

        result = invoke(runner, engine, ["server", "discover", "--depth", "2"])

        assert result.exit_code == 0
        assert "new.example.org" in result.output
        engine.discover_servers.assert_called_once_with(2)

    def test_verify_prints_backup_code(self, runner, engine):
        engine.verify_server.return_value = BackupCode("alpha-beta-gamma")

        result = invoke(runner, engine, ["server", "verify", "b.example.org"])

        assert result.exit_code == 0
        assert "alpha-beta-gamma" in result.output

    def test_verify_already_verified(self, runner, engine):
        engine.verify_server.return_value = None

        result = invoke(runner, engine, ["server", "verify", "b.example.org"])

        assert result.exit_code == 0
        assert "already verified" in result.output

    def test_verify_unknown(self, runner, engine):
        engine.verify_server.side_effect = ServerNotFoundError("b.example.org")

        result = invoke(runner, engine, ["server", "verify", "b.example.org"])

        assert result.exit_code == 1
        assert "b.example.org is not known" in result.output

    def test_new(self, runner, engine):
        engine.add_server.return_value = BackupCode("code")

        result = invoke(runner, engine, ["--json", "server", "new", "b.example.org"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "hostname": "b.example.org",
            "backup_code": "code",
        }

    def test_delete_cancelled(self, runner, engine):
        result = invoke(runner, engine, ["server", "delete", "b.example.org"], input="n\n")

        assert result.exit_code == 0
        engine.delete_server.assert_not_called()

    def test_delete_confirmed(self, runner, engine):
        result = invoke(runner, engine, ["server", "delete", "b.example.org", "--yes"])

        assert result.exit_code == 0
        engine.delete_server.assert_called_once_with("b.example.org")


class TestFileCommands:
    def test_list(self, runner, engine):
        engine.list_files.return_value = [
            (TrackedFile(id="1", path="a.txt", last_modified=1000), FileStatus.OUTDATED)
        ]

        result = invoke(runner, engine, ["--json", "file", "list"])

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {"id": "1", "path": "a.txt", "last_modified": 1000, "status": "OUTDATED"}
        ]

    def test_add(self, runner, engine):
        engine.add_file.return_value = decision(
            SyncVerdict.UPLOAD_NEEDED,
            remote=TrackedFile(id="5", path="a.txt", last_modified=1000),
        )

        result = invoke(runner, engine, ["file", "add", "a.txt"])

        assert result.exit_code == 0
        assert "ADDED: a.txt" in result.output
        engine.add_file.assert_called_once_with("a.txt")

    def test_add_keeps_path_as_typed(self, runner, engine):
        engine.add_file.return_value = decision(SyncVerdict.UPLOAD_NEEDED)

        invoke(runner, engine, ["file", "add", "./docs//a.txt"])

        engine.add_file.assert_called_once_with("./docs//a.txt")

    def test_update_force_flag(self, runner, engine):
        engine.update_file.return_value = decision(SyncVerdict.UPLOAD_NEEDED)

        result = invoke(runner, engine, ["file", "update", "-f", "a.txt"])

        assert result.exit_code == 0
        assert "UPDATED: a.txt" in result.output
        engine.update_file.assert_called_once_with("a.txt", force=True)

    def test_update_up_to_date(self, runner, engine):
        engine.update_file.return_value = decision(SyncVerdict.UP_TO_DATE)

        result = invoke(runner, engine, ["file", "update", "a.txt"])

        assert result.exit_code == 0
        assert "already up to date" in result.output

    def test_update_not_tracked(self, runner, engine):
        engine.update_file.side_effect = NotTrackedRemotelyError("a.txt")

        result = invoke(runner, engine, ["file", "update", "a.txt"])

        assert result.exit_code == 1
        assert "a.txt is not synced on server" in result.output

    def test_download_conflict(self, runner, engine):
        engine.download_file.side_effect = LocalVersionIsNewerError("a.txt")

        result = invoke(runner, engine, ["file", "download", "a.txt"])

        assert result.exit_code == 1
        assert "Force download with -f flag" in result.output
        engine.download_file.assert_called_once_with("a.txt", force=False)

    def test_download(self, runner, engine):
        engine.download_file.return_value = decision(SyncVerdict.DOWNLOAD_NEEDED)

        result = invoke(runner, engine, ["file", "download", "a.txt"])

        assert result.exit_code == 0
        assert "DOWNLOADED: a.txt" in result.output

    def test_delete(self, runner, engine):
        engine.delete_file.return_value = decision(SyncVerdict.DELETE_REMOTE)

        result = invoke(runner, engine, ["file", "delete", "a.txt"], input="y\n")

        assert result.exit_code == 0
        engine.delete_file.assert_called_once_with("a.txt")

    def test_sync(self, runner, engine):
        engine.sync_all.return_value = {"uploads": 1, "downloads": 2, "skips": 3}

        result = invoke(runner, engine, ["file", "sync"])

        assert result.exit_code == 0
        assert "Downloaded" in result.output
        engine.sync_all.assert_called_once_with(dry_run=False)

    def test_sync_dry_run_json(self, runner, engine):
        engine.sync_all.return_value = {"uploads": 1, "downloads": 0, "skips": 0}

        result = invoke(runner, engine, ["--json", "file", "sync", "--dry-run"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "uploads": 1,
            "downloads": 0,
            "skips": 0,
            "dry_run": True,
        }

    def test_sync_failure(self, runner, engine):
        engine.sync_all.side_effect = SkbNetworkError("Network error: timeout")

        result = invoke(runner, engine, ["file", "sync"])

        assert result.exit_code == 1
        assert "timeout" in result.output
