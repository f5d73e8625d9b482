"""Tests for HookRelay structured logging."""

import json
import logging

from hookrelay.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


def _last_json_line(captured: str) -> dict:
    lines = [line for line in captured.splitlines() if line.strip()]
    return json.loads(lines[-1])


class TestConfigureLogging:
    """Tests for logging configuration."""

    def teardown_method(self):
        """Reset context after each test."""
        clear_context()

    def test_json_format_renders_structlog_events(self, capsys):
        """structlog events come out as JSON with their key-value pairs."""
        configure_logging(level="INFO", format="json")
        get_logger("hookrelay.test").info("Endpoint created", endpoint_id="whk_1")

        record = _last_json_line(capsys.readouterr().out)
        assert record["event"] == "Endpoint created"
        assert record["endpoint_id"] == "whk_1"
        assert record["level"] == "info"

    def test_stdlib_records_share_the_renderer(self, capsys):
        """Core modules log with the standard library and still get JSON."""
        configure_logging(level="INFO", format="json")
        logging.getLogger("hookrelay.webhooks.worker").warning("Webhook %s failed", "dlv_1")

        record = _last_json_line(capsys.readouterr().out)
        assert record["event"] == "Webhook dlv_1 failed"
        assert record["logger"] == "hookrelay.webhooks.worker"
        assert record["level"] == "warning"

    def test_level_filters_debug(self, capsys):
        """DEBUG records are dropped at INFO level."""
        configure_logging(level="INFO", format="json")
        logging.getLogger("hookrelay.test").debug("hidden")

        assert "hidden" not in capsys.readouterr().out

    def test_text_format(self):
        """Text format configures a console renderer without errors."""
        configure_logging(level="DEBUG", format="text")
        get_logger("hookrelay.test").debug("console message", tick="queue")

    def test_reconfigure_replaces_handler(self):
        """Calling configure twice leaves a single root handler."""
        configure_logging(level="INFO")
        configure_logging(level="DEBUG")
        assert len(logging.getLogger().handlers) == 1
        assert logging.getLogger().level == logging.DEBUG

    def test_http_client_loggers_quieted(self):
        """httpx request logs are raised to WARNING."""
        configure_logging(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING


class TestContextBinding:
    """Tests for context variable binding."""

    def setup_method(self):
        """Clear context before each test."""
        clear_context()

    def teardown_method(self):
        """Clear context after each test."""
        clear_context()

    def test_bound_context_reaches_stdlib_records(self, capsys):
        """Bound keys are merged into standard-library records."""
        configure_logging(level="INFO", format="json")
        bind_context(tick="retry")
        logging.getLogger("hookrelay.webhooks.scheduler").info("tick ran")

        record = _last_json_line(capsys.readouterr().out)
        assert record["tick"] == "retry"

    def test_unbind_removes_only_named_keys(self, capsys):
        """unbind_context drops the named key and keeps the rest."""
        configure_logging(level="INFO", format="json")
        bind_context(tick="queue", instance="api-1")
        unbind_context("tick")
        get_logger("hookrelay.test").info("after unbind")

        record = _last_json_line(capsys.readouterr().out)
        assert "tick" not in record
        assert record["instance"] == "api-1"


class TestModuleLevelLogger:
    """Tests for the pre-configured module-level logger."""

    def test_import_logger(self):
        """The package exposes a ready logger."""
        from hookrelay.logging import logger

        assert callable(getattr(logger, "info", None))
