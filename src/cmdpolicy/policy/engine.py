"""Rule engine applying ordered guards to a shell AST.

Layer 3: Semantic Rule Evaluation
- Walk every node and word of the AST exactly once
- Apply guards across the whole tree in a fixed order:
  1. Expansion guard (any dynamic word)
  2. Indirect-executor guard (shells, interpreters, decoders, wrappers)
  3. Destructive-binary guard (argument-sensitive predicates)
  4. Redirect guard (sensitive targets)
  5. Sensitive-file guard (credential files in arguments)

Guard 3 only ever sees literal arguments because guard 1 has already
rejected every tree containing an expanded word.
"""

from dataclasses import dataclass, field

from cmdpolicy.constants import DEFAULT_MAX_DEPTH
from cmdpolicy.logging import Loggers
from cmdpolicy.policy.errors import RecursionLimitExceeded
from cmdpolicy.policy.models import (
    Command,
    CommandList,
    Node,
    Pipeline,
    Redirect,
    RedirectDirection,
    Subshell,
    Verdict,
    Word,
)
from cmdpolicy.policy.rules import NODE_INLINE_FLAGS, RuleTable, binary_candidates, default_rule_table

logger = Loggers.policy()

REASON_DYNAMIC = "dynamic/expanded content"
REASON_INDIRECT = "indirect executor"
REASON_INLINE_CODE = "inline code execution"
REASON_REDIRECT = "sensitive redirect target"
REASON_SENSITIVE_FILE = "sensitive file access"

GUARD_EXPANSION = "expansion"
GUARD_INDIRECT = "indirect_executor"
GUARD_DESTRUCTIVE = "destructive_binary"
GUARD_REDIRECT = "redirect"
GUARD_SENSITIVE_FILE = "sensitive_file"


@dataclass
class _Inventory:
    """Everything reachable from the root, collected in one walk."""

    words: list[Word] = field(default_factory=list)
    commands: list[Command] = field(default_factory=list)
    redirects: list[Redirect] = field(default_factory=list)
    nodes: int = 0


def _command_text(command: Command) -> str:
    parts = [f"{name}={value.literal}" for name, value in command.assignments]
    if command.name is not None:
        parts.append(command.name.literal)
    parts.extend(command.literal_args)
    return " ".join(parts)


class RuleEngine:
    """Classifies AST nodes against a rule table.

    The engine keeps no per-call state; the rule table is immutable.
    """

    def __init__(
        self,
        rules: RuleTable | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        """Initialize rule engine.

        Args:
            rules: Rule table to apply (the built-in table by default).
            max_depth: Nesting cap enforced while walking the tree.
        """
        self.rules = rules or default_rule_table()
        self.max_depth = max_depth

    def classify(self, ast: Node) -> Verdict:
        """Classify an AST.

        Args:
            ast: Root node produced by the parser.

        Returns:
            Verdict.allow() if no guard fires, else the first Blocked verdict
            in guard order.

        Raises:
            RecursionLimitExceeded: If the tree is deeper than ``max_depth``.
            TypeError: If the tree contains an unknown node type.
        """
        inventory = _Inventory()
        self._collect(ast, inventory, depth=1)

        verdict = (
            self._expansion_guard(inventory)
            or self._indirect_executor_guard(inventory)
            or self._destructive_binary_guard(inventory)
            or self._redirect_guard(inventory)
            or self._sensitive_file_guard(inventory)
            or Verdict.allow()
        )
        logger.debug(
            "ast_classified",
            nodes=inventory.nodes,
            commands=len(inventory.commands),
            allowed=verdict.allowed,
        )
        return verdict

    def _collect(self, node: Node, inventory: _Inventory, depth: int) -> None:
        if depth > self.max_depth:
            raise RecursionLimitExceeded(self.max_depth)
        inventory.nodes += 1

        if isinstance(node, Command):
            inventory.commands.append(node)
            for word in node.words:
                self._collect_word(word, inventory, depth)
        elif isinstance(node, Pipeline):
            for stage in node.stages:
                self._collect(stage, inventory, depth)
        elif isinstance(node, CommandList):
            for member in node.members:
                self._collect(member, inventory, depth)
        elif isinstance(node, Subshell):
            self._collect(node.body, inventory, depth + 1)
        elif isinstance(node, Redirect):
            inventory.redirects.append(node)
            self._collect_word(node.target, inventory, depth)
            self._collect(node.source, inventory, depth)
        else:
            raise TypeError(f"unknown AST node type: {type(node).__name__}")

    def _collect_word(self, word: Word, inventory: _Inventory, depth: int) -> None:
        inventory.words.append(word)
        for substitution in word.substitutions:
            self._collect(substitution, inventory, depth)

    def _expansion_guard(self, inventory: _Inventory) -> Verdict | None:
        for word in inventory.words:
            if word.has_expansion:
                return Verdict.block(REASON_DYNAMIC, GUARD_EXPANSION, word.literal)
        return None

    def _indirect_executor_guard(self, inventory: _Inventory) -> Verdict | None:
        for command in inventory.commands:
            if command.name is None:
                continue
            name = command.name.literal
            if self.rules.is_indirect_executor(name):
                return Verdict.block(REASON_INDIRECT, GUARD_INDIRECT, _command_text(command))
            if "node" in binary_candidates(name) and self._node_runs_inline(command):
                return Verdict.block(REASON_INLINE_CODE, GUARD_INDIRECT, _command_text(command))
        return None

    @staticmethod
    def _node_runs_inline(command: Command) -> bool:
        for arg in command.literal_args:
            if arg in NODE_INLINE_FLAGS:
                return True
            if arg.startswith("--eval=") or arg.startswith("--print="):
                return True
            if arg.startswith("-") and not arg.startswith("--") and set(arg[1:]) & {"e", "p"}:
                return True
        return False

    def _destructive_binary_guard(self, inventory: _Inventory) -> Verdict | None:
        for command in inventory.commands:
            if command.name is None:
                continue
            entry = self.rules.lookup(command.name.literal)
            if entry is not None and entry.matches(command.literal_args):
                return Verdict.block(entry.reason, GUARD_DESTRUCTIVE, _command_text(command))
        return None

    def _redirect_guard(self, inventory: _Inventory) -> Verdict | None:
        for redirect in inventory.redirects:
            if redirect.direction is RedirectDirection.DUPLICATE:
                continue
            if self.rules.is_sensitive_redirect(redirect.target.literal):
                return Verdict.block(REASON_REDIRECT, GUARD_REDIRECT, redirect.target.literal)
        return None

    def _sensitive_file_guard(self, inventory: _Inventory) -> Verdict | None:
        for command in inventory.commands:
            found = self.rules.sensitive_file_in(command.literal_args)
            if found is not None:
                return Verdict.block(REASON_SENSITIVE_FILE, GUARD_SENSITIVE_FILE, found)
        return None
