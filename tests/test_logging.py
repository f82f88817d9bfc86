"""Tests for structured logging setup."""

import structlog

from cmdpolicy.config import PolicySettings
from cmdpolicy.constants import COMMAND_PREVIEW_LENGTH
from cmdpolicy.logging import (
    Loggers,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    truncate_commands,
    unbind_context,
)


class TestLogging:
    """Tests for logging configuration helpers."""

    def test_configure_console_and_json(self, mock_context):
        """Both output formats configure without errors."""
        configure_logging(PolicySettings(_env_file=None, log_format="json", log_level="debug"))
        configure_logging(PolicySettings(_env_file=None, log_format="console"))
        configure_logging()

        assert structlog.is_configured()

    def test_get_logger(self):
        assert get_logger("cmdpolicy.test") is not None
        assert Loggers.policy() is not None
        assert Loggers.config() is not None
        assert Loggers.cli() is not None

    def test_context_binding(self):
        clear_context()
        bind_context(request_id="abc123", source="ai_suggestion")

        assert structlog.contextvars.get_contextvars() == {
            "request_id": "abc123",
            "source": "ai_suggestion",
        }

        unbind_context("source")
        assert structlog.contextvars.get_contextvars() == {"request_id": "abc123"}

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_truncate_commands(self):
        """Long or multi-line commands are shortened in events."""
        event = truncate_commands(None, "info", {"event": "x", "command": "a" * 500, "reason": "r"})

        assert len(event["command"]) == COMMAND_PREVIEW_LENGTH + len("...")
        assert event["reason"] == "r"

        event = truncate_commands(None, "info", {"event": "x", "command": "ls\npwd"})
        assert event["command"] == "ls\\npwd"
