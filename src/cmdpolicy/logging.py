"""Structured logging configuration for cmdpolicy.

Uses structlog for structured, context-rich logging that supports
both human-readable console output and machine-readable JSON format.
Command strings attached to log events are always shortened to a preview.
"""

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor

from cmdpolicy.constants import COMMAND_PREVIEW_LENGTH, truncate

if TYPE_CHECKING:
    from cmdpolicy.config import PolicySettings

# Event keys holding raw command text
COMMAND_KEYS = ("command", "subject")


def truncate_commands(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Processor shortening command text so events stay one line."""
    for key in COMMAND_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = truncate(value.replace("\n", "\\n"), COMMAND_PREVIEW_LENGTH)
    return event_dict


def configure_logging(settings: "PolicySettings | None" = None) -> None:
    """Configure structured logging based on settings.

    Args:
        settings: Policy settings. If None, warnings and errors go to
            stderr in console format.
    """
    log_level = logging.WARNING
    log_format = "console"

    if settings is not None:
        log_level = getattr(logging, settings.log_level.upper(), logging.WARNING)
        log_format = settings.log_format

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        truncate_commands,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Library users embedding the policy get the same level on stdlib loggers
    logging.getLogger("cmdpolicy").setLevel(log_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name) if name else structlog.get_logger()


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log calls in the current context.

    Example:
        bind_context(request_id="abc123", source="ai_suggestion")
        logger.info("command_blocked")  # Will include request_id and source

    Args:
        **kwargs: Key-value pairs to bind to logging context
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


class Loggers:
    """Pre-configured logger instances for cmdpolicy components."""

    @staticmethod
    def policy() -> structlog.stdlib.BoundLogger:
        """Logger for the policy engine."""
        return get_logger("cmdpolicy.policy")

    @staticmethod
    def config() -> structlog.stdlib.BoundLogger:
        """Logger for configuration loading."""
        return get_logger("cmdpolicy.config")

    @staticmethod
    def cli() -> structlog.stdlib.BoundLogger:
        return get_logger("cmdpolicy.cli")
