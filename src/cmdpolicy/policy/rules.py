"""Static rule table for the rule engine.

Holds the indirect-executor set, the destructive-binary predicates and
the sensitive path lists. A ``RuleTable`` is immutable once built and is
passed into the engine, so it can be shared freely between threads.
"""

import posixpath
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence

from cmdpolicy.policy.models import RuleEntry

# Reasons reported by the destructive-binary guard
REASON_RM = "destructive rm flags"
REASON_KUBECTL = "destructive kubectl delete"
REASON_DOCKER = "destructive docker command"
REASON_HELM = "destructive helm command"
REASON_CHMOD = "recursive world-writable chmod"
REASON_CHOWN = "recursive ownership change"
REASON_BLOCK_DEVICE = "direct block-device access"
REASON_SHRED = "irrecoverable file destruction"
REASON_POWER = "system power control"
REASON_GIT = "destructive git command"
REASON_FIND = "destructive find action"
REASON_SQL = "destructive SQL statement"
REASON_DENIED = "denied by policy"

# Programs that execute or decode payloads the engine cannot inspect
INDIRECT_EXECUTORS: frozenset[str] = frozenset({
    "sh",
    "bash",
    "zsh",
    "python",
    "python3",
    "perl",
    "ruby",
    "crontab",
    "at",
    "systemctl",
    "service",
    "sudo",
    "su",
    "env",
    "printenv",
    "eval",
    "xargs",
    "base64",
    "openssl",
    "printf",
})

# Wrappers, other shells and interpreters with the same capability
EXTENDED_INDIRECT_EXECUTORS: frozenset[str] = frozenset({
    # Builtins and wrappers that run their arguments
    "exec",
    "source",
    ".",
    "command",
    "builtin",
    "nohup",
    "nice",
    "timeout",
    "time",
    "watch",
    "setsid",
    "busybox",
    # Privilege and namespace switching
    "doas",
    "pkexec",
    "runuser",
    "chroot",
    "nsenter",
    # Other shells and interpreters
    "dash",
    "ksh",
    "fish",
    "csh",
    "tcsh",
    "php",
    "lua",
    "awk",
    "gawk",
    "mawk",
    "osascript",
    "pwsh",
    "powershell",
})

# node is allowed to run a named script, but not inline code
NODE_INLINE_FLAGS: frozenset[str] = frozenset({"-e", "--eval", "-p", "--print", "-"})

# Redirect targets that must never be written or read
SENSITIVE_REDIRECT_PREFIXES: tuple[str, ...] = (
    "/bin/",
    "/sbin/",
    "/usr/bin/",
    "/usr/sbin/",
    "/boot/",
    "/dev/sd",
    "/dev/hd",
    "/dev/vd",
    "/dev/nvme",
    "/dev/mapper/",
)
SENSITIVE_REDIRECT_FRAGMENTS: tuple[str, ...] = ("/etc/",)
SENSITIVE_REDIRECT_SUFFIXES: tuple[str, ...] = (
    ".service",
    ".cron",
    ".timer",
    ".bashrc",
    ".bash_profile",
    ".profile",
    ".zshrc",
    "authorized_keys",
    "sudoers",
)

# Credential and account files that must not be read or copied
SENSITIVE_FILES: tuple[str, ...] = (
    "/etc/passwd",
    "/etc/shadow",
    "/etc/gshadow",
    "/etc/sudoers",
    ".ssh/id_",
    "id_rsa",
    "id_ed25519",
    "id_ecdsa",
    ".aws/credentials",
)

_VERSION_SUFFIX = re.compile(r"[\d.]+$")
_SQL_DESTRUCTIVE = re.compile(
    r"\b(drop\s+(table|database|schema)|truncate\s+table|delete\s+from)\b",
    re.IGNORECASE,
)


def binary_candidates(name: str) -> tuple[str, ...]:
    """Names a command may be looked up under.

    ``/usr/bin/Python3.11`` yields ``("python3.11", "python3", "python")``.
    """
    base = name.rsplit("/", 1)[-1].lower()
    candidates = [base]
    head = base.split(".", 1)[0]
    if head and head not in candidates:
        candidates.append(head)
    stripped = _VERSION_SUFFIX.sub("", base)
    if stripped and stripped not in candidates:
        candidates.append(stripped)
    return tuple(candidates)


def normalize_path(path: str) -> str:
    """Collapse ``.``, ``..`` and repeated slashes (``//etc/./passwd`` -> ``/etc/passwd``)."""
    normalized = posixpath.normpath(path)
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def _short_flags(args: Sequence[str]) -> str:
    """Concatenated letters of every short-flag cluster (``-rf`` -> ``rf``)."""
    return "".join(
        arg[1:] for arg in args if arg.startswith("-") and not arg.startswith("--")
    )


def _long_flag(args: Sequence[str], name: str) -> bool:
    """True if any argument is ``--name`` or an abbreviation of it.

    getopt_long and git both accept unambiguous prefixes, so ``--rec``
    and ``--rec=x`` count as ``--recursive``.
    """
    for arg in args:
        if not arg.startswith("--"):
            continue
        option = arg[2:].split("=", 1)[0]
        if option and name.startswith(option):
            return True
    return False


def _positional(args: Sequence[str]) -> list[str]:
    return [arg for arg in args if not arg.startswith("-")]


def rm_is_destructive(args: Sequence[str]) -> bool:
    if any(letter in _short_flags(args) for letter in "rRf"):
        return True
    return _long_flag(args, "recursive") or _long_flag(args, "force")


def kubectl_is_destructive(args: Sequence[str]) -> bool:
    return "delete" in args


def docker_is_destructive(args: Sequence[str]) -> bool:
    if any(arg in ("rm", "rmi", "kill") for arg in args):
        return True
    positional = _positional(args)
    return bool(positional) and positional[0] == "system"


def helm_is_destructive(args: Sequence[str]) -> bool:
    return any(arg in ("uninstall", "delete", "rollback") for arg in args)


def _is_recursive(args: Sequence[str]) -> bool:
    return "R" in _short_flags(args) or _long_flag(args, "recursive")


def _is_world_writable_mode(mode: str) -> bool:
    if re.fullmatch(r"[0-7]{3,4}", mode):
        return int(mode[-1]) & 2 == 2
    for clause in mode.split(","):
        match = re.fullmatch(r"([ugoa]*)([+=])([rwxXst]*)", clause)
        if match and "w" in match.group(3):
            who = match.group(1)
            if not who or "o" in who or "a" in who:
                return True
    return False


def chmod_is_destructive(args: Sequence[str]) -> bool:
    if not _is_recursive(args):
        return False
    return any(_is_world_writable_mode(arg) for arg in args if not arg.startswith("-"))


def chown_is_destructive(args: Sequence[str]) -> bool:
    return _is_recursive(args)


def always(args: Sequence[str]) -> bool:
    return True


# git global options that take a separate value
_GIT_OPTIONS_WITH_VALUE = frozenset(
    {"-C", "-c", "--config-env", "--git-dir", "--work-tree", "--namespace"}
)

# git config keys whose value is run as a command
_GIT_EXEC_CONFIG_KEYS = frozenset({
    "core.pager",
    "core.sshcommand",
    "core.editor",
    "core.fsmonitor",
    "core.hookspath",
    "sequence.editor",
    "diff.external",
    "credential.helper",
})


def _git_global_options(
    args: Sequence[str],
) -> tuple[str | None, list[str], list[tuple[str, bool]]]:
    """Split git arguments into subcommand, its arguments and config overrides.

    Config overrides are ``(key=value, from_env)`` pairs from ``-c`` and
    ``--config-env``; ``from_env`` marks values the engine cannot see.
    """
    overrides: list[tuple[str, bool]] = []
    index = 0
    while index < len(args):
        arg = args[index]
        if arg in _GIT_OPTIONS_WITH_VALUE:
            if arg in ("-c", "--config-env") and index + 1 < len(args):
                overrides.append((args[index + 1], arg == "--config-env"))
            index += 2
        elif arg.startswith("--config-env="):
            overrides.append((arg.split("=", 1)[1], True))
            index += 1
        elif arg.startswith("-"):
            index += 1
        else:
            return arg, list(args[index + 1 :]), overrides
    return None, [], overrides


def _git_config_executes(override: str, from_env: bool) -> bool:
    key, _, value = override.partition("=")
    key = key.lower()
    if key.startswith("alias."):
        # Only "!" aliases run a shell command
        return from_env or value.lstrip().startswith("!")
    return key in _GIT_EXEC_CONFIG_KEYS or key.startswith("pager.")


def git_is_destructive(args: Sequence[str]) -> bool:
    subcommand, rest, overrides = _git_global_options(args)
    if any(_git_config_executes(override, from_env) for override, from_env in overrides):
        return True
    if subcommand == "reset":
        return _long_flag(rest, "hard")
    if subcommand == "clean":
        return "f" in _short_flags(rest) or _long_flag(rest, "force")
    if subcommand == "push":
        if any(arg.startswith("--force") for arg in rest) or _long_flag(rest, "force"):
            return True
        return "f" in _short_flags(rest) or any(arg.startswith("+") for arg in rest)
    return False


def find_is_destructive(args: Sequence[str]) -> bool:
    return any(arg in ("-delete", "-exec", "-execdir", "-ok", "-okdir") for arg in args)


def sql_is_destructive(args: Sequence[str]) -> bool:
    return any(_SQL_DESTRUCTIVE.search(arg) for arg in args)


def _entries(binaries: Iterable[str], predicate, reason: str) -> list[RuleEntry]:
    return [RuleEntry(binary=name, predicate=predicate, reason=reason) for name in binaries]


DEFAULT_RULES: tuple[RuleEntry, ...] = tuple(
    [
        RuleEntry("rm", rm_is_destructive, REASON_RM),
        RuleEntry("kubectl", kubectl_is_destructive, REASON_KUBECTL),
        RuleEntry("docker", docker_is_destructive, REASON_DOCKER),
        RuleEntry("helm", helm_is_destructive, REASON_HELM),
        RuleEntry("chmod", chmod_is_destructive, REASON_CHMOD),
        RuleEntry("git", git_is_destructive, REASON_GIT),
        RuleEntry("find", find_is_destructive, REASON_FIND),
    ]
    + _entries(("chown", "chgrp"), chown_is_destructive, REASON_CHOWN)
    + _entries(("dd", "mkfs", "fdisk", "parted", "gdisk", "wipefs"), always, REASON_BLOCK_DEVICE)
    + _entries(("shred", "wipe"), always, REASON_SHRED)
    + _entries(("shutdown", "reboot", "halt", "poweroff", "init"), always, REASON_POWER)
    + _entries(("psql", "mysql", "mariadb", "sqlite3"), sql_is_destructive, REASON_SQL)
)


@dataclass(frozen=True)
class RuleTable:
    """Immutable policy consulted by the rule engine.

    Attributes:
        indirect_executors: Command names blocked unconditionally.
        destructive: Binary name to RuleEntry.
        sensitive_redirect_prefixes: Redirect targets starting with these.
        sensitive_redirect_fragments: Redirect targets containing these.
        sensitive_redirect_suffixes: Redirect targets ending with these.
        sensitive_files: Argument fragments naming credential files.
    """

    indirect_executors: frozenset[str] = INDIRECT_EXECUTORS | EXTENDED_INDIRECT_EXECUTORS
    destructive: Mapping[str, RuleEntry] = field(
        default_factory=lambda: MappingProxyType({rule.binary: rule for rule in DEFAULT_RULES})
    )
    sensitive_redirect_prefixes: tuple[str, ...] = SENSITIVE_REDIRECT_PREFIXES
    sensitive_redirect_fragments: tuple[str, ...] = SENSITIVE_REDIRECT_FRAGMENTS
    sensitive_redirect_suffixes: tuple[str, ...] = SENSITIVE_REDIRECT_SUFFIXES
    sensitive_files: tuple[str, ...] = SENSITIVE_FILES

    def is_indirect_executor(self, name: str) -> bool:
        return any(candidate in self.indirect_executors for candidate in binary_candidates(name))

    def lookup(self, name: str) -> RuleEntry | None:
        """Find the destructive rule for a command name; None if there is none."""
        for candidate in binary_candidates(name):
            entry = self.destructive.get(candidate)
            if entry is not None:
                return entry
        return None

    def is_sensitive_redirect(self, target: str) -> bool:
        return any(
            self._matches_redirect_rules(path) for path in {target, normalize_path(target)}
        )

    def _matches_redirect_rules(self, target: str) -> bool:
        if target == "/etc" or target.startswith(self.sensitive_redirect_prefixes):
            return True
        if target.endswith(self.sensitive_redirect_suffixes):
            return True
        return any(fragment in target for fragment in self.sensitive_redirect_fragments)

    def sensitive_file_in(self, args: Sequence[str]) -> str | None:
        """Return the first argument naming a sensitive file, if any."""
        for arg in args:
            for path in (arg, normalize_path(arg)):
                if any(fragment in path for fragment in self.sensitive_files):
                    return arg
        return None

    def extend(
        self,
        indirect_executors: Iterable[str] = (),
        deny_commands: Iterable[str] = (),
        sensitive_redirect_prefixes: Iterable[str] = (),
        sensitive_files: Iterable[str] = (),
    ) -> "RuleTable":
        """Return a new table with additional restrictions.

        Extensions only add rules; built-in rules are never removed.
        """
        destructive = dict(self.destructive)
        for name in deny_commands:
            destructive[name.lower()] = RuleEntry(name.lower(), always, REASON_DENIED)
        return RuleTable(
            indirect_executors=self.indirect_executors
            | frozenset(name.lower() for name in indirect_executors),
            destructive=MappingProxyType(destructive),
            sensitive_redirect_prefixes=self.sensitive_redirect_prefixes
            + tuple(sensitive_redirect_prefixes),
            sensitive_redirect_fragments=self.sensitive_redirect_fragments,
            sensitive_redirect_suffixes=self.sensitive_redirect_suffixes,
            sensitive_files=self.sensitive_files + tuple(sensitive_files),
        )


def default_rule_table() -> RuleTable:
    """Build the built-in rule table."""
    return RuleTable()
