"""Tests for the command-line entry point and logging setup."""

import json
import logging

import pytest
from typer.testing import CliRunner

from lazykv import cli, config
from lazykv.config import Settings
from lazykv.logs import configure_logging

runner = CliRunner()


class RecordingApp:
    """Stands in for LazyKvApp; remembers how it was built."""

    instances: list["RecordingApp"] = []

    def __init__(self, source, settings, backend):
        self.source = source
        self.settings = settings
        self.backend = backend
        self.ran = False
        RecordingApp.instances.append(self)

    def run(self):
        self.ran = True


class FakeCli:
    installed = True
    logged_in = True

    def __init__(self, az_path):
        self.az_path = az_path

    def is_installed(self):
        return self.installed

    def is_logged_in(self):
        return self.logged_in


def _patch(monkeypatch):
    RecordingApp.instances = []
    monkeypatch.setattr(cli, "LazyKvApp", RecordingApp)
    monkeypatch.setattr(cli, "configure_logging", lambda settings, level: None)
    monkeypatch.setattr(cli, "AzureCliClient", FakeCli)
    FakeCli.installed = True
    FakeCli.logged_in = True


class TestMain:
    def test_mock_mode_uses_demo_source(self, monkeypatch):
        """
        Given --mock
        When the CLI runs
        Then the app is started on MockSource without touching az
        """
        _patch(monkeypatch)
        FakeCli.installed = False

        result = runner.invoke(cli.app, ["--mock", "--latency", "0.1"])

        assert result.exit_code == 0
        app = RecordingApp.instances[0]
        assert app.backend == "mock"
        assert app.ran
        assert type(app.source).__name__ == "MockSource"

    def test_missing_az_exits(self, monkeypatch):
        _patch(monkeypatch)
        FakeCli.installed = False

        result = runner.invoke(cli.app, [])

        assert result.exit_code == 1
        assert RecordingApp.instances == []

    def test_not_logged_in_exits(self, monkeypatch):
        _patch(monkeypatch)
        FakeCli.logged_in = False

        result = runner.invoke(cli.app, [])

        assert result.exit_code == 1
        assert RecordingApp.instances == []

    def test_azure_mode_builds_azure_source(self, monkeypatch):
        _patch(monkeypatch)
        monkeypatch.setattr(cli, "build_azure_source", lambda *args: ("azure", args))

        result = runner.invoke(cli.app, [])

        assert result.exit_code == 0
        app = RecordingApp.instances[0]
        assert app.backend == "Azure"
        assert app.source[0] == "azure"

    def test_bad_config_exits(self, monkeypatch):
        """
        Given a malformed config.json
        When the CLI runs
        Then it exits with status 1 before starting the app
        """
        _patch(monkeypatch)
        config.CONFIG_PATH.write_text(json.dumps({"max_parallelism": "many"}))

        result = runner.invoke(cli.app, ["--mock"])

        assert result.exit_code == 1
        assert RecordingApp.instances == []

    def test_unknown_log_level_exits(self, monkeypatch):
        _patch(monkeypatch)
        result = runner.invoke(cli.app, ["--mock", "--log-level", "chatty"])
        assert result.exit_code == 1


@pytest.fixture
def restore_logger():
    logger = logging.getLogger("lazykv")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    handlers, level, propagate = saved
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.mark.usefixtures("restore_logger")
class TestConfigureLogging:
    def test_file_handler_writes_records(self, tmp_path):
        """
        Given a settings log file under tmp_path
        When logging is configured and a record is emitted
        Then the record lands in the file in the expected format
        """
        log_file = tmp_path / "logs" / "lazykv.log"
        configure_logging(Settings(log_file=log_file), "info")
        logger = logging.getLogger("lazykv.test")

        logger.info("hello from the test")
        for handler in logging.getLogger("lazykv").handlers:
            handler.flush()

        text = log_file.read_text()
        assert "lazykv.test - INFO - hello from the test" in text
        assert logging.getLogger("lazykv").propagate is False

    def test_reconfigure_replaces_handlers(self, tmp_path):
        settings = Settings(log_file=tmp_path / "lazykv.log")
        configure_logging(settings)
        configure_logging(settings)
        assert len(logging.getLogger("lazykv").handlers) == 2
        assert logging.getLogger("lazykv").level == logging.WARNING
