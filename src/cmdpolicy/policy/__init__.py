"""Command policy engine with layered, fail-closed classification.

Classifies shell command strings before anything executes them:
- Layer 1: Regex pre-filter (stacked operators, traversal, homoglyphs)
- Layer 2: Tokenization and parsing into a shell AST
- Layer 3: Rule engine (expansion, indirect executor, destructive
  binary, redirect and sensitive-file guards)
- Layer 4: Autonomy classifier (Auto / Manual / Blocked)

Usage:
    from cmdpolicy.policy import CommandPolicy

    policy = CommandPolicy()

    # Read-only command - may run unattended
    policy.decide("kubectl get pods")  # AutonomyDecision.AUTO

    # Not destructive, but needs confirmation
    policy.decide("rm file.txt")  # AutonomyDecision.MANUAL

    # Destructive command - never runs
    policy.explain("rm -rf /tmp/cache")  # "destructive rm flags: rm -rf /tmp/cache"

    # Dynamic content - blocked regardless of what it expands to
    policy.classify("$(echo rm) -rf /").reason  # "dynamic/expanded content"
"""

from cmdpolicy.policy.autonomy import AutonomyClassifier
from cmdpolicy.policy.command_policy import (
    CommandPolicy,
    classify,
    decide,
    default_policy,
    evaluate,
    explain,
)
from cmdpolicy.policy.config import PolicyConfig
from cmdpolicy.policy.engine import RuleEngine
from cmdpolicy.policy.errors import (
    ParseError,
    PolicyConfigError,
    PolicyError,
    RecursionLimitExceeded,
)
from cmdpolicy.policy.models import (
    AutonomyDecision,
    Command,
    CommandList,
    ExpansionKind,
    ListOperator,
    Node,
    Pipeline,
    PolicyDecision,
    Redirect,
    RedirectDirection,
    RuleEntry,
    Subshell,
    SubshellKind,
    Token,
    TokenKind,
    Verdict,
    Word,
)
from cmdpolicy.policy.parser import CommandParser, parse
from cmdpolicy.policy.prefilter import PreFilter, quick_reject
from cmdpolicy.policy.rules import RuleTable, default_rule_table
from cmdpolicy.policy.tokenizer import CommandTokenizer

__all__ = [
    # Entry points
    "CommandPolicy",
    "default_policy",
    "evaluate",
    "classify",
    "decide",
    "explain",
    "parse",
    "quick_reject",
    # Configuration
    "PolicyConfig",
    "RuleTable",
    "default_rule_table",
    # Layers
    "PreFilter",
    "CommandTokenizer",
    "CommandParser",
    "RuleEngine",
    "AutonomyClassifier",
    # Models
    "AutonomyDecision",
    "Command",
    "CommandList",
    "ExpansionKind",
    "ListOperator",
    "Node",
    "Pipeline",
    "PolicyDecision",
    "Redirect",
    "RedirectDirection",
    "RuleEntry",
    "Subshell",
    "SubshellKind",
    "Token",
    "TokenKind",
    "Verdict",
    "Word",
    # Errors
    "PolicyError",
    "ParseError",
    "RecursionLimitExceeded",
    "PolicyConfigError",
]
