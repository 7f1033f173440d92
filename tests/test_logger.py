"""Tests for logger.py: logging setup for the dashboard and the one-shot CLI."""

import json
import logging
import os
import sys
from unittest.mock import patch

import pytest

from mutagui.logger import JsonFormatter, resolve_log_file, setup_logging


def _handlers(mock_basic_config):
    return mock_basic_config.call_args.kwargs["handlers"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FILE", raising=False)


class TestSetupLogging:
    @patch("mutagui.logger.logging.basicConfig")
    def test_tui_mode_logs_to_file_only(self, mock_basic_config, tmp_path):
        log_file = tmp_path / "logs" / "mutagui.log"

        setup_logging(mode="tui", log_file=str(log_file))

        handlers = _handlers(mock_basic_config)
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.FileHandler)
        assert handlers[0].baseFilename == str(log_file)
        assert log_file.parent.is_dir()
        handlers[0].close()

    @patch("mutagui.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic_config):
        setup_logging(mode="cli")

        [handler] = _handlers(mock_basic_config)
        assert isinstance(handler, logging.StreamHandler)
        assert handler.stream is sys.stderr

    @patch("mutagui.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic_config, tmp_path):
        setup_logging(mode="cli", log_file=str(tmp_path / "cli.log"))

        handlers = _handlers(mock_basic_config)
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        handlers[1].close()

    @patch("mutagui.logger.logging.basicConfig")
    def test_default_level_is_warning(self, mock_basic_config):
        setup_logging(mode="cli")

        assert mock_basic_config.call_args.kwargs["level"] == logging.WARNING
        assert mock_basic_config.call_args.kwargs["force"] is True

    @patch("mutagui.logger.logging.basicConfig")
    def test_level_from_env(self, mock_basic_config, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "info")

        setup_logging(mode="cli")

        assert mock_basic_config.call_args.kwargs["level"] == logging.INFO

    @patch("mutagui.logger.logging.basicConfig")
    def test_debug_overrides_env(self, mock_basic_config, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")

        setup_logging(mode="cli", debug=True)

        assert mock_basic_config.call_args.kwargs["level"] == logging.DEBUG

    @patch("mutagui.logger.logging.basicConfig")
    def test_unknown_level_falls_back(self, mock_basic_config, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")

        setup_logging(mode="cli")

        assert mock_basic_config.call_args.kwargs["level"] == logging.WARNING

    @patch("mutagui.logger.logging.basicConfig")
    def test_json_format(self, mock_basic_config):
        setup_logging(mode="cli", debug_format="json")

        [handler] = _handlers(mock_basic_config)
        assert isinstance(handler.formatter, JsonFormatter)


class TestResolveLogFile:
    def test_argument_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_FILE", "/env.log")
        assert resolve_log_file("/arg.log") == "/arg.log"

    def test_env(self, monkeypatch):
        monkeypatch.setenv("LOG_FILE", "/env.log")
        assert resolve_log_file() == "/env.log"

    def test_default(self):
        assert resolve_log_file().endswith(os.path.join("mutagui", "mutagui.log"))


class TestJsonFormatter:
    def test_fields(self):
        record = logging.LogRecord(
            "mutagui.daemon", logging.INFO, __file__, 1, "ran %s", ("sync list",), None
        )

        entry = json.loads(JsonFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "mutagui.daemon"
        assert entry["msg"] == "ran sync list"
        assert "exc" not in entry
