"""Tests for newsdesk_db.logger module."""

import json
import logging

import pytest

from newsdesk_db.logger import Logger, StructuredLogger, create_logger, get_logger
from newsdesk_db.logger import _get_env_prefix


class TestLoggerInterface:
    """Tests for the Logger abstract interface."""

    def test_logger_is_abstract(self):
        with pytest.raises(TypeError):
            Logger()  # type: ignore

    def test_logger_has_required_methods(self):
        for method in ("debug", "info", "warning", "error", "critical", "get_session_id"):
            assert hasattr(Logger, method)


class TestStructuredLogger:
    """Tests for the StructuredLogger implementation."""

    def test_text_output_includes_extras(self, capsys):
        logger = StructuredLogger(name="newsdesk-test-text")
        logger.info("Backup created", backup_id="full_1", size=42)

        out = capsys.readouterr().out
        assert "[INFO]" in out
        assert "Backup created" in out
        assert "backup_id=full_1" in out
        assert "size=42" in out
        assert f"session:{logger.get_session_id()}" in out

    def test_json_output(self, capsys):
        logger = StructuredLogger(name="newsdesk-test-json", json_format=True)
        logger.warning("Disk nearly full", free_mb=12)

        payload = json.loads(capsys.readouterr().out.strip())
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "newsdesk-test-json"
        assert payload["message"] == "Disk nearly full"
        assert payload["free_mb"] == 12
        assert payload["session_id"] == logger.get_session_id()

    def test_reserved_keys_are_prefixed(self, capsys):
        logger = StructuredLogger(name="newsdesk-test-reserved", json_format=True)
        logger.info("Reserved", module="backup", name="x")

        payload = json.loads(capsys.readouterr().out.strip())
        assert payload["_module"] == "backup"
        assert payload["_name"] == "x"

    def test_level_filters(self, capsys):
        logger = StructuredLogger(name="newsdesk-test-level", level=logging.WARNING)
        logger.info("hidden")
        logger.error("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "shown" in out

    def test_recreating_does_not_duplicate_output(self, capsys):
        StructuredLogger(name="newsdesk-test-dup")
        logger = StructuredLogger(name="newsdesk-test-dup")
        logger.info("once")

        assert capsys.readouterr().out.count("once") == 1

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "backup.log"
        logger = StructuredLogger(name="newsdesk-test-file", log_file=str(log_file))
        logger.error("written to file", backup_id="b1")

        assert "written to file" in log_file.read_text()

    def test_distinct_session_ids(self):
        a = StructuredLogger(name="newsdesk-test-a")
        b = StructuredLogger(name="newsdesk-test-b")
        assert a.get_session_id() != b.get_session_id()
        assert a.name == "newsdesk-test-a"


class TestFactories:
    def test_env_prefix(self):
        assert _get_env_prefix("newsdesk-backup") == "NEWSDESK_BACKUP"
        assert _get_env_prefix("newsdesk-backup-store") == "NEWSDESK_BACKUP_STORE"

    def test_create_logger_reads_env(self, monkeypatch, capsys):
        monkeypatch.setenv("NEWSDESK_ENVTEST_LOG_LEVEL", "ERROR")
        monkeypatch.setenv("NEWSDESK_ENVTEST_LOG_JSON", "true")

        logger = create_logger(name="newsdesk-envtest")
        logger.warning("suppressed")
        logger.error("kept")

        lines = [line for line in capsys.readouterr().out.splitlines() if line]
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == "kept"

    def test_explicit_arguments_win(self, monkeypatch, capsys):
        monkeypatch.setenv("NEWSDESK_EXPLICIT_LOG_LEVEL", "ERROR")

        logger = create_logger(name="newsdesk-explicit", level=logging.DEBUG)
        logger.debug("visible")

        assert "visible" in capsys.readouterr().out

    def test_get_logger(self):
        logger = get_logger("newsdesk-get")
        assert isinstance(logger, StructuredLogger)
        assert logger.name == "newsdesk-get"
