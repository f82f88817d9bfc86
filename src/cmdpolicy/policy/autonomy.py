"""Autonomy classifier producing the Auto / Manual / Blocked disposition.

Layer 4: Autonomy Gate
- Blocked verdicts stay Blocked
- Allowed commands matching the read-only allowlist become Auto
- Everything else is Manual (requires human confirmation)

"Not destructive" is necessary but not sufficient for unattended
execution: ``npm install`` is Allowed by the rule engine yet stays Manual.
"""

import re
from typing import Iterable

from cmdpolicy.policy.models import (
    AutonomyDecision,
    Command,
    Node,
    Verdict,
)

_NAMESPACE = r"(\s+(-n\s+[a-z0-9][a-z0-9.-]*|--namespace[=\s][a-z0-9][a-z0-9.-]*|-A|--all-namespaces))"

# Files that are safe to print without prompting
KNOWN_SAFE_FILES: tuple[str, ...] = (
    "README",
    "README.md",
    "README.rst",
    "README.txt",
    "package.json",
    "tsconfig.json",
    "requirements.txt",
    "pyproject.toml",
    "setup.cfg",
    "go.mod",
    "Cargo.toml",
    "Gemfile",
    "Dockerfile",
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
    "Makefile",
    "Chart.yaml",
    ".nvmrc",
)

# Tools whose --version output is safe to collect
VERSION_TOOLS: tuple[str, ...] = (
    "node",
    "npm",
    "yarn",
    "pnpm",
    "go",
    "java",
    "git",
    "docker",
    "helm",
    "minikube",
    "terraform",
    "cargo",
    "rustc",
    "pip",
    "pip3",
)

_SAFE_FILE_ALTERNATION = "|".join(re.escape(name) for name in KNOWN_SAFE_FILES)

# Every pattern must match the whole command
READ_ONLY_ALLOWLIST: list[tuple[str, str]] = [
    (r"ls(\s+-[lah]+)*", "directory listing"),
    (r"pwd", "working directory"),
    (r"whoami", "current user"),
    (r"git status(\s+(-s|--short|-sb|--branch))*", "git status"),
    (r"git log(\s+(--oneline|-n\s*\d+|-\d+))*", "git log"),
    (r"git diff(\s+--stat)?", "git diff"),
    (r"git branch", "git branch listing"),
    (
        r"kubectl get\s+(?!secrets?\b)[a-z][a-z0-9.-]*"
        + _NAMESPACE
        + r"*(\s+-o\s+wide)?"
        + _NAMESPACE
        + r"*",
        "kubectl get",
    ),
    (r"docker ps(\s+(-a|--all))?", "docker ps"),
    (r"docker images", "docker images"),
    (r"helm (list|ls)" + _NAMESPACE + r"*", "helm list"),
    (r"minikube status", "minikube status"),
    (
        r"(cat|head|tail)\s+(\./)?(" + _SAFE_FILE_ALTERNATION + ")",
        "known-safe file",
    ),
    (
        r"(" + "|".join(VERSION_TOOLS) + r")\s+(--version|-v|version)",
        "tool version",
    ),
]

_COMPILED_ALLOWLIST = [
    (re.compile(pattern), description) for pattern, description in READ_ONLY_ALLOWLIST
]


class AutonomyClassifier:
    """Maps a verdict and its AST to an autonomy disposition.

    Supports extra fully-matched regex patterns from policy configuration.
    """

    def __init__(self, extra_patterns: Iterable[str] = ()):
        """Initialize autonomy classifier.

        Args:
            extra_patterns: Additional regexes that qualify for Auto.
        """
        self._patterns = list(_COMPILED_ALLOWLIST) + [
            (re.compile(pattern), "policy allowlist") for pattern in extra_patterns
        ]

    def classify(self, verdict: Verdict, ast: Node | None) -> AutonomyDecision:
        """Compute the disposition.

        Args:
            verdict: Verdict from the rule engine (or pre-filter/parse step).
            ast: Parsed command, None if parsing never happened.

        Returns:
            BLOCKED, AUTO or MANUAL.
        """
        if verdict.is_blocked:
            return AutonomyDecision.BLOCKED
        if ast is not None and self.match(ast) is not None:
            return AutonomyDecision.AUTO
        return AutonomyDecision.MANUAL

    def match(self, ast: Node) -> str | None:
        """Return the allowlist entry matching ``ast``, if any.

        Only a single simple command without assignments or redirects can
        match; its words are joined with single spaces before matching.
        """
        if not isinstance(ast, Command) or ast.name is None or ast.assignments:
            return None
        if any(word.has_expansion for word in (ast.name, *ast.args)):
            return None

        text = " ".join((ast.name.literal, *ast.literal_args))
        for pattern, description in self._patterns:
            if pattern.fullmatch(text):
                return description
        return None
