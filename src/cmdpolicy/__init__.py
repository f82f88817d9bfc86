"""cmdpolicy - static safety policy for shell commands.

Decides whether a shell command string may run unattended, needs human
confirmation, or must never run.
"""

from cmdpolicy.policy import (
    AutonomyDecision,
    CommandPolicy,
    ParseError,
    PolicyConfig,
    PolicyDecision,
    RuleTable,
    Verdict,
    classify,
    decide,
    default_rule_table,
    evaluate,
    explain,
    parse,
    quick_reject,
)

__version__ = "0.1.0"

__all__ = [
    "classify",
    "decide",
    "explain",
    "evaluate",
    "parse",
    "quick_reject",
    "CommandPolicy",
    "PolicyConfig",
    "RuleTable",
    "default_rule_table",
    "AutonomyDecision",
    "PolicyDecision",
    "Verdict",
    "ParseError",
]
