"""Tests for logging configuration."""

import logging

import structlog

from shared.utils.logging import (
    add_context,
    build_processors,
    clear_context,
    configure_logging,
    get_log_level,
)


class TestLogLevel:
    def test_by_environment(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert get_log_level("production") == "INFO"
        assert get_log_level("development") == "DEBUG"
        assert get_log_level("test") == "WARNING"
        assert get_log_level("unknown") == "INFO"

    def test_override(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert get_log_level("development") == "ERROR"


class TestProcessors:
    def test_json_in_production(self):
        assert isinstance(build_processors(json_logs=True)[-1], structlog.processors.JSONRenderer)

    def test_console_elsewhere(self):
        assert isinstance(build_processors(json_logs=False)[-1], structlog.dev.ConsoleRenderer)


class TestConfigureLogging:
    def test_writes_log_files(self, tmp_path):
        root = logging.getLogger()
        previous = root.handlers[:], root.level
        try:
            configure_logging(log_dir=tmp_path / "logs")

            assert (tmp_path / "logs" / "motorhub.log").exists()
            assert (tmp_path / "logs" / "motorhub_error.log").exists()
            assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers, level = previous
            root.setLevel(level)
            structlog.reset_defaults()

    def test_context_binding(self):
        add_context(request_id="req-1")
        assert structlog.contextvars.get_contextvars() == {"request_id": "req-1"}

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
