"""Runtime settings for cmdpolicy.

Settings Management:
    The module provides both global singleton and context-based settings:

    1. Global singleton (simple cases):
        set_settings(my_settings)
        settings = get_settings()

    2. Context-based (isolated contexts, tests):
        with SettingsContext(my_settings):
            settings = get_settings()  # Returns my_settings

Settings Loading Priority (highest to lowest):
    1. Constructor arguments
    2. Environment variables (CMDPOLICY_* prefix)
    3. .env file
    4. Default values
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Generator, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cmdpolicy.constants import DEFAULT_MAX_DEPTH, MAX_DEPTH_LIMIT

__all__ = [
    "PolicySettings",
    "SettingsContext",
    "get_settings",
    "set_settings",
    "set_context_settings",
    "get_context_settings",
    "reload_settings",
]


class PolicySettings(BaseSettings):
    """Settings for the command policy engine.

    Rule-table extensions live in a separate YAML policy file
    (see ``cmdpolicy.policy.config.PolicyConfig``); these settings only
    control logging, the nesting cap, the pre-filter and where that file is.
    """

    model_config = SettingsConfigDict(
        env_prefix="CMDPOLICY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="warning",
        title="Log Level",
        description="Logging verbosity level",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        title="Log Format",
        description="Log output format (console for dev, json for production)",
    )
    max_depth: int = Field(
        default=DEFAULT_MAX_DEPTH,
        ge=1,
        le=MAX_DEPTH_LIMIT,
        title="Max Depth",
        description="Maximum subshell/substitution nesting before a command is unparseable",
    )
    enable_prefilter: bool = Field(
        default=True,
        title="Enable Pre-filter",
        description="Run the regex pre-filter before parsing",
    )
    policy_file: Path | None = Field(
        default=None,
        title="Policy File",
        description="YAML file extending the built-in rule table",
    )

    @field_validator("policy_file", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        """Expand ~ in the policy file path."""
        if isinstance(v, str):
            return Path(v).expanduser() if v else None
        return v


_settings_context: ContextVar[PolicySettings | None] = ContextVar(
    "cmdpolicy_settings_context", default=None
)

_settings_instance: PolicySettings | None = None


def get_settings() -> PolicySettings:
    """Get the current settings instance.

    Settings resolution order:
    1. Context variable (set via SettingsContext or set_context_settings)
    2. Global singleton (set via set_settings)
    3. Fresh PolicySettings instance (created on first access)

    Returns:
        PolicySettings instance for the current context
    """
    context_settings = _settings_context.get()
    if context_settings is not None:
        return context_settings

    global _settings_instance
    if _settings_instance is None:
        _settings_instance = PolicySettings()
    return _settings_instance


def set_settings(settings: PolicySettings) -> None:
    """Set the global settings instance.

    Args:
        settings: Settings instance to use globally
    """
    global _settings_instance
    _settings_instance = settings


def set_context_settings(settings: PolicySettings | None) -> Token:
    """Set settings for the current context.

    Args:
        settings: Settings to use in current context, or None to clear

    Returns:
        Token that can be used to reset the context variable.
    """
    return _settings_context.set(settings)


def get_context_settings() -> PolicySettings | None:
    """Get settings from current context (if any)."""
    return _settings_context.get()


@contextmanager
def SettingsContext(settings: PolicySettings) -> Generator[PolicySettings, None, None]:
    """Context manager for isolated settings.

    Example:
        with SettingsContext(PolicySettings(max_depth=8)) as s:
            policy = CommandPolicy.from_settings()  # uses s

    Args:
        settings: Settings to use within the context

    Yields:
        The settings instance
    """
    token = _settings_context.set(settings)
    try:
        yield settings
    finally:
        _settings_context.reset(token)


def reload_settings() -> PolicySettings:
    """Reload settings (clears global singleton and context cache).

    Returns:
        Fresh PolicySettings instance
    """
    global _settings_instance
    _settings_instance = None
    _settings_context.set(None)
    return get_settings()
