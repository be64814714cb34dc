"""
Unit tests for the ksbackup CLI.
"""

import logging

import json_log_formatter
import pytest

from dbops.ksbackup import main as cli
from dbops.ksbackup.config import ObservabilityConfig
from dbops.ksbackup.management.memory import InMemoryManagementClient

real_setup_logging = cli.setup_logging


@pytest.fixture
def client(tmp_path):
    client = InMemoryManagementClient([str(tmp_path / "data")])
    table_dir = client.add_table("app", "events")
    (table_dir / "events-1.db").write_bytes(b"data")
    return client


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, tmp_path, client):
    """Point the CLI at a temp backup dir and the fake node."""
    monkeypatch.setenv("BACKUP_DIR", str(tmp_path / "backup"))
    monkeypatch.delenv("NODETOOL_PASSWORD", raising=False)
    monkeypatch.delenv("LOG_FORMAT", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setattr(cli, "setup_logging", lambda config, verbose=False: None)
    monkeypatch.setattr(cli, "create_management_client", lambda config: client)


class TestMain:
    """Tests for main()."""

    def test_backup_command(self, tmp_path, capsys):
        code = cli.main(["backup", "--keyspace", "app", "--tag", "nightly"])

        assert code == 0
        assert (tmp_path / "backup" / "app" / "events" / "events-1.db").exists()
        assert "Snapshot: nightly" in capsys.readouterr().out

    def test_backup_dir_flag_overrides_env(self, tmp_path):
        code = cli.main(
            ["--backup-dir", str(tmp_path / "other"), "backup", "--keyspace", "app"]
        )

        assert code == 0
        assert (tmp_path / "other" / "app" / "events" / "events-1.db").exists()

    def test_restore_command(self, client, capsys):
        assert cli.main(["backup", "--keyspace", "app"]) == 0

        code = cli.main(["restore", "--keyspace", "app"])

        assert code == 0
        assert client.reloaded == [("app", "events")]
        assert "Tables reloaded: 1" in capsys.readouterr().out

    def test_failure_exit_code(self, capsys):
        code = cli.main(["backup", "--keyspace", "missing"])

        assert code == 1
        assert "Backup failed" in capsys.readouterr().err

    def test_config_error_exit_code(self, monkeypatch, capsys):
        monkeypatch.setenv("LOG_FORMAT", "xml")

        code = cli.main(["backup", "--keyspace", "app"])

        assert code == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_logging_is_set_up_before_config_is_loaded(self, monkeypatch):
        """Warnings from config validation go through the configured handler."""
        events = []
        original_from_env = cli.ToolConfig.from_env
        monkeypatch.setattr(
            cli, "setup_logging", lambda config, verbose=False: events.append("setup_logging")
        )
        monkeypatch.setattr(
            cli.ToolConfig, "from_env", lambda: events.append("load_config") or original_from_env()
        )

        assert cli.main(["backup", "--keyspace", "app"]) == 0

        assert events == ["setup_logging", "load_config"]

    def test_logging_is_set_up_even_on_config_error(self, monkeypatch):
        """An invalid setting is still reported after logging is configured."""
        seen = []
        monkeypatch.setenv("LOG_FORMAT", "xml")
        monkeypatch.setattr(cli, "setup_logging", lambda config, verbose=False: seen.append(config))

        assert cli.main(["backup", "--keyspace", "app"]) == 2

        assert seen == [ObservabilityConfig(log_level="INFO", log_format="xml")]

    def test_keyspace_required(self):
        with pytest.raises(SystemExit):
            cli.main(["backup"])


class TestSetupLogging:
    """Tests for setup_logging()."""

    @pytest.fixture
    def root_logger(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        yield root
        root.handlers = saved_handlers
        root.setLevel(saved_level)

    def test_json_format(self, root_logger):
        real_setup_logging(ObservabilityConfig(log_level="WARNING", log_format="json"))

        assert root_logger.level == logging.WARNING
        assert isinstance(root_logger.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_verbose_forces_debug(self, root_logger):
        real_setup_logging(ObservabilityConfig(log_format="text"), verbose=True)

        assert root_logger.level == logging.DEBUG
        assert not isinstance(root_logger.handlers[0].formatter, json_log_formatter.JSONFormatter)
