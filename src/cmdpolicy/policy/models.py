"""Data models for the command policy engine.

Provides tokens, the shell AST node types, verdicts and autonomy
dispositions. Every object here is immutable and built fresh for each
command string.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence, Union


class TokenKind(Enum):
    """Kind of lexical token produced by the tokenizer."""

    WORD = "word"
    PIPE = "|"
    AND = "&&"
    OR = "||"
    SEMI = ";"
    NEWLINE = "newline"
    LPAREN = "("
    RPAREN = ")"
    REDIRECT = "redirect"
    EOF = "eof"


class ExpansionKind(Enum):
    """Kind of runtime expansion a word contains."""

    NONE = "none"
    VARIABLE = "variable"  # $VAR, ${VAR}, $1
    COMMAND_SUBSTITUTION = "command_substitution"  # $(...)
    BACKTICK = "backtick"  # `...`


class ListOperator(Enum):
    """Operator joining two members of a command list."""

    SEQ = ";"
    AND = "&&"
    OR = "||"


class SubshellKind(Enum):
    """Whether a subshell is a ( ... ) group or a command substitution."""

    GROUP = "group"
    SUBSTITUTION = "substitution"


class RedirectDirection(Enum):
    """Direction of a redirection."""

    INPUT = "<"
    OUTPUT = ">"
    APPEND = ">>"
    DUPLICATE = ">&"  # 2>&1, <&0


class AutonomyDecision(Enum):
    """Tri-state disposition of a command."""

    AUTO = "auto"  # May run unattended
    MANUAL = "manual"  # Needs human confirmation
    BLOCKED = "blocked"  # Never run


@dataclass(frozen=True)
class Substitution:
    """Raw source of a command substitution found inside a word."""

    source: str  # Text between $( and ) or between backticks
    position: int  # Offset of the body in the outermost string
    kind: ExpansionKind


@dataclass(frozen=True)
class Token:
    """A lexical token.

    ``text`` is the raw surface text. WORD tokens additionally carry the
    unquoted ``literal``, the strongest ``expansion`` seen while lexing and
    every command substitution body. REDIRECT tokens carry the optional
    file descriptor prefix in ``fd``.
    """

    kind: TokenKind
    text: str
    position: int
    literal: str = ""
    expansion: ExpansionKind = ExpansionKind.NONE
    substitutions: tuple[Substitution, ...] = ()
    fd: str | None = None


@dataclass(frozen=True)
class Word:
    """A shell word after quote removal.

    Expansions are kept verbatim in ``literal``. Any literal containing
    ``$`` or a backtick reports an expansion, whatever the caller passed.
    """

    literal: str
    expansion_kind: ExpansionKind = ExpansionKind.NONE
    substitutions: tuple["Subshell", ...] = ()

    def __post_init__(self) -> None:
        if self.expansion_kind is not ExpansionKind.NONE:
            return
        if "`" in self.literal:
            kind = ExpansionKind.BACKTICK
        elif "$(" in self.literal or self.substitutions:
            kind = ExpansionKind.COMMAND_SUBSTITUTION
        elif "$" in self.literal:
            kind = ExpansionKind.VARIABLE
        else:
            return
        object.__setattr__(self, "expansion_kind", kind)

    @property
    def has_expansion(self) -> bool:
        """Whether the runtime value of this word is unknowable statically."""
        return self.expansion_kind is not ExpansionKind.NONE


@dataclass(frozen=True)
class Command:
    """A simple command: assignments, a command name and arguments.

    ``name`` is None for assignment-only commands such as ``CMD=rm``.
    """

    name: Word | None
    args: tuple[Word, ...] = ()
    assignments: tuple[tuple[str, Word], ...] = ()

    @property
    def literal_args(self) -> tuple[str, ...]:
        return tuple(arg.literal for arg in self.args)

    @property
    def words(self) -> tuple[Word, ...]:
        """Every word the command owns, in source order."""
        assigned = tuple(value for _, value in self.assignments)
        named = (self.name,) if self.name is not None else ()
        return assigned + named + self.args


@dataclass(frozen=True)
class Pipeline:
    """Commands connected with ``|``."""

    stages: tuple["Node", ...]


@dataclass(frozen=True)
class CommandList:
    """Pipelines joined by ``;``, ``&&`` or ``||``.

    ``operators[i]`` joins ``members[i]`` and ``members[i + 1]``. An empty
    list is the parse of an empty command.
    """

    members: tuple["Node", ...] = ()
    operators: tuple[ListOperator, ...] = ()


@dataclass(frozen=True)
class Subshell:
    """A ( ... ) group or the body of a command substitution."""

    body: "Node"
    kind: SubshellKind = SubshellKind.GROUP


@dataclass(frozen=True)
class Redirect:
    """A redirection applied to ``source``."""

    source: "Node"
    direction: RedirectDirection
    target: Word
    fd: str | None = None  # "2" in 2>file, "&" in &>file


Node = Union[Command, Pipeline, CommandList, Subshell, Redirect]

NODE_TYPES: tuple[type, ...] = (Command, Pipeline, CommandList, Subshell, Redirect)


@dataclass(frozen=True)
class RuleEntry:
    """A destructive-binary rule.

    Attributes:
        binary: Command name the rule applies to.
        predicate: Called with the literal arguments; True means dangerous.
        reason: Reason reported when the predicate fires.
    """

    binary: str
    predicate: Callable[[Sequence[str]], bool]
    reason: str

    def matches(self, literal_args: Sequence[str]) -> bool:
        return bool(self.predicate(tuple(literal_args)))


@dataclass(frozen=True)
class Verdict:
    """Outcome of the rule engine: Allowed, or Blocked with a reason.

    Attributes:
        allowed: True when no guard fired.
        reason: Short reason string when blocked.
        guard: Name of the guard that fired.
        subject: The offending text (command, word or target).
    """

    allowed: bool
    reason: str | None = None
    guard: str | None = None
    subject: str | None = None

    @classmethod
    def allow(cls) -> "Verdict":
        return cls(allowed=True)

    @classmethod
    def block(
        cls,
        reason: str,
        guard: str | None = None,
        subject: str | None = None,
    ) -> "Verdict":
        return cls(allowed=False, reason=reason, guard=guard, subject=subject)

    @property
    def is_blocked(self) -> bool:
        return not self.allowed

    def describe(self) -> str | None:
        """Human-readable reason, or None when allowed."""
        if self.allowed:
            return None
        if self.subject:
            return f"{self.reason}: {self.subject}"
        return self.reason


@dataclass(frozen=True)
class PolicyDecision:
    """Complete evaluation of one command string."""

    command: str
    verdict: Verdict
    autonomy: AutonomyDecision

    @property
    def is_blocked(self) -> bool:
        return self.autonomy is AutonomyDecision.BLOCKED

    @property
    def requires_confirmation(self) -> bool:
        return self.autonomy is AutonomyDecision.MANUAL

    @property
    def is_cacheable(self) -> bool:
        """Only unattended-safe commands may be persisted as learned fixes."""
        return self.autonomy is AutonomyDecision.AUTO
