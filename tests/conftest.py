"""Shared test fixtures for cmdpolicy tests.

Provides:
- MockContext for isolating tests from global settings and the environment
- Policy, parser and engine fixtures
- Policy file helpers
"""

import os
from pathlib import Path
from typing import Callable, Generator

import pytest
import yaml

from cmdpolicy.config import (
    PolicySettings,
    reload_settings,
    set_context_settings,
    set_settings,
)
from cmdpolicy.policy import (
    AutonomyClassifier,
    CommandParser,
    CommandPolicy,
    CommandTokenizer,
    RuleEngine,
)


class MockContext:
    """Context manager for isolating tests from global state.

    Handles:
    - Clearing CMDPOLICY_* environment variables
    - Installing a fresh global settings instance
    - Resetting settings on exit

    Usage:
        with MockContext(max_depth=8) as ctx:
            settings = ctx.settings
    """

    def __init__(self, **settings_kwargs):
        self._settings_kwargs = settings_kwargs
        self._settings: PolicySettings | None = None
        self._original_env: dict[str, str] = {}

    def __enter__(self) -> "MockContext":
        for var in list(os.environ):
            if var.startswith("CMDPOLICY_"):
                self._original_env[var] = os.environ.pop(var)

        self._settings = PolicySettings(_env_file=None, **self._settings_kwargs)
        set_settings(self._settings)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        set_context_settings(None)
        os.environ.update(self._original_env)
        reload_settings()

    @property
    def settings(self) -> PolicySettings:
        """Get the test settings instance."""
        if self._settings is None:
            raise RuntimeError("MockContext not entered")
        return self._settings


@pytest.fixture
def mock_context() -> Generator[MockContext, None, None]:
    """Fixture providing an isolated settings context."""
    with MockContext() as ctx:
        yield ctx


@pytest.fixture
def policy() -> CommandPolicy:
    """Fresh policy with the built-in rule table."""
    return CommandPolicy()


@pytest.fixture
def tokenizer() -> CommandTokenizer:
    return CommandTokenizer()


@pytest.fixture
def parser() -> CommandParser:
    return CommandParser()


@pytest.fixture
def engine() -> RuleEngine:
    return RuleEngine()


@pytest.fixture
def autonomy() -> AutonomyClassifier:
    return AutonomyClassifier()


@pytest.fixture
def write_policy_file(tmp_path: Path) -> Callable[[dict], Path]:
    """Fixture returning a helper that writes a YAML policy file."""

    def _write(data: dict, name: str = "policy.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path

    return _write
