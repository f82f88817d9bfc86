"""Policy file configuration.

Provides user-configurable extensions to the built-in rule table:
extra indirect executors, denied commands, sensitive paths and extra
Auto allowlist patterns. Extensions can only add restrictions (or Auto
patterns for commands the engine already allows); they never remove
built-in rules.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from cmdpolicy.logging import Loggers
from cmdpolicy.policy.errors import PolicyConfigError
from cmdpolicy.policy.rules import RuleTable, default_rule_table

logger = Loggers.config()

_LIST_FIELDS = (
    "indirect_executors",
    "deny_commands",
    "sensitive_redirect_prefixes",
    "sensitive_files",
    "auto_patterns",
)


def _string_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise PolicyConfigError(f"'{key}' must be a list of strings")
    return list(value)


@dataclass
class PolicyConfig:
    """Configuration extending the built-in rule table.

    Attributes:
        indirect_executors: Additional commands blocked unconditionally.
        deny_commands: Commands always treated as destructive.
        sensitive_redirect_prefixes: Additional protected redirect targets.
        sensitive_files: Additional credential file fragments.
        auto_patterns: Extra regexes (full match) that qualify for Auto.
    """

    indirect_executors: list[str] = field(default_factory=list)
    deny_commands: list[str] = field(default_factory=list)
    sensitive_redirect_prefixes: list[str] = field(default_factory=list)
    sensitive_files: list[str] = field(default_factory=list)
    auto_patterns: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        for pattern in self.auto_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise PolicyConfigError(f"invalid auto pattern {pattern!r}: {e}") from e

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PolicyConfig":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary.

        Returns:
            PolicyConfig instance.

        Raises:
            PolicyConfigError: If a value has the wrong type.
        """
        if not isinstance(data, dict):
            raise PolicyConfigError("policy file must contain a mapping")
        return cls(**{key: _string_list(data, key) for key in _LIST_FIELDS})

    @classmethod
    def from_yaml(cls, path: Path | str) -> "PolicyConfig":
        """Load config from YAML file.

        Args:
            path: Path to YAML policy file.

        Returns:
            PolicyConfig instance (defaults if the file does not exist).

        Raises:
            PolicyConfigError: If the file is not valid YAML or has bad values.
        """
        path = Path(path)
        if not path.exists():
            logger.debug("policy_file_missing", path=str(path))
            return cls()

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise PolicyConfigError(f"invalid YAML in {path}: {e}") from e

        config = cls.from_dict(data)
        logger.info("policy_file_loaded", path=str(path))
        return config

    @classmethod
    def load_default(cls) -> "PolicyConfig":
        """Load configuration from default location.

        Looks for config in:
        1. ~/.config/cmdpolicy/policy.yaml
        2. ./cmdpolicy.yaml (project local)

        Returns:
            PolicyConfig instance.
        """
        user_config = Path.home() / ".config" / "cmdpolicy" / "policy.yaml"
        if user_config.exists():
            return cls.from_yaml(user_config)

        local_config = Path("cmdpolicy.yaml")
        if local_config.exists():
            return cls.from_yaml(local_config)

        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {key: list(getattr(self, key)) for key in _LIST_FIELDS}

    def merge_with(self, other: "PolicyConfig") -> "PolicyConfig":
        """Merge this config with another; lists are unioned in order.

        Args:
            other: Config to merge with.

        Returns:
            New merged config.
        """
        merged = {}
        for key in _LIST_FIELDS:
            values = list(getattr(self, key))
            values.extend(item for item in getattr(other, key) if item not in values)
            merged[key] = values
        return PolicyConfig(**merged)

    def build_rule_table(self, base: RuleTable | None = None) -> RuleTable:
        """Extend ``base`` (the built-in table by default) with this config."""
        return (base or default_rule_table()).extend(
            indirect_executors=self.indirect_executors,
            deny_commands=self.deny_commands,
            sensitive_redirect_prefixes=self.sensitive_redirect_prefixes,
            sensitive_files=self.sensitive_files,
        )
