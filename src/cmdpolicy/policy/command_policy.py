"""Command policy: the single entry point tying every layer together.

Layer 1: Pre-filter (cheap regex rejection)
Layer 2: Tokenize + parse into an AST
Layer 3: Rule engine (ordered guards)
Layer 4: Autonomy classifier (Auto / Manual / Blocked)

Evaluation is fail-closed: parse failures, over-deep nesting and any
unexpected exception all become Blocked verdicts. No exception ever
leaves ``evaluate``.
"""

from functools import lru_cache
from typing import Iterable

from cmdpolicy.config import PolicySettings, get_settings
from cmdpolicy.constants import DEFAULT_MAX_DEPTH, truncate
from cmdpolicy.logging import Loggers
from cmdpolicy.policy.autonomy import AutonomyClassifier
from cmdpolicy.policy.config import PolicyConfig
from cmdpolicy.policy.engine import RuleEngine
from cmdpolicy.policy.errors import ParseError, PolicyConfigError
from cmdpolicy.policy.models import AutonomyDecision, Node, PolicyDecision, Verdict
from cmdpolicy.policy.parser import CommandParser
from cmdpolicy.policy.prefilter import REASON_PREFILTER, PreFilter
from cmdpolicy.policy.rules import RuleTable, default_rule_table

logger = Loggers.policy()

REASON_UNPARSEABLE = "unparseable"
REASON_INTERNAL = "internal error"

GUARD_PREFILTER = "prefilter"
GUARD_PARSE = "parse"
GUARD_INTERNAL = "internal"


class CommandPolicy:
    """Evaluates shell command strings against a rule table.

    Instances hold only immutable collaborators and can be shared freely
    between threads.

    Example:
        policy = CommandPolicy()
        policy.decide("kubectl get pods")  # AutonomyDecision.AUTO
        policy.explain("rm -rf /tmp/cache")  # "destructive rm flags: rm -rf /tmp/cache"
    """

    def __init__(
        self,
        rules: RuleTable | None = None,
        *,
        max_depth: int = DEFAULT_MAX_DEPTH,
        enable_prefilter: bool = True,
        auto_patterns: Iterable[str] = (),
    ):
        """Initialize the policy.

        Args:
            rules: Rule table (the built-in table by default).
            max_depth: Subshell/substitution nesting cap.
            enable_prefilter: Run the regex pre-filter before parsing.
            auto_patterns: Extra fully-matched regexes that qualify for Auto.
        """
        self.rules = rules or default_rule_table()
        self.max_depth = max_depth
        self.prefilter = PreFilter() if enable_prefilter else None
        self.parser = CommandParser(max_depth=max_depth)
        self.engine = RuleEngine(self.rules, max_depth=max_depth)
        self.autonomy = AutonomyClassifier(auto_patterns)

    @classmethod
    def from_config(
        cls,
        config: PolicyConfig,
        settings: PolicySettings | None = None,
    ) -> "CommandPolicy":
        """Create a policy from a policy file configuration.

        Args:
            config: Rule-table extensions.
            settings: Runtime settings (current settings by default).
        """
        settings = settings or get_settings()
        return cls(
            config.build_rule_table(),
            max_depth=settings.max_depth,
            enable_prefilter=settings.enable_prefilter,
            auto_patterns=config.auto_patterns,
        )

    @classmethod
    def from_settings(cls, settings: PolicySettings | None = None) -> "CommandPolicy":
        """Create a policy from runtime settings.

        Loads ``settings.policy_file`` when set, otherwise the default
        policy file locations.

        Raises:
            PolicyConfigError: If the policy file is invalid, or was named
                explicitly and does not exist.
        """
        settings = settings or get_settings()
        if settings.policy_file is not None:
            if not settings.policy_file.exists():
                raise PolicyConfigError(f"policy file not found: {settings.policy_file}")
            config = PolicyConfig.from_yaml(settings.policy_file)
        else:
            config = PolicyConfig.load_default()
        return cls.from_config(config, settings)

    def evaluate(self, command: str) -> PolicyDecision:
        """Evaluate a command through every layer.

        Args:
            command: Raw shell command string.

        Returns:
            PolicyDecision carrying the verdict and disposition.
        """
        ast: Node | None = None
        try:
            verdict = self._prefilter(command)
            if verdict is None:
                ast = self.parser.parse(command)
                verdict = self.engine.classify(ast)
        except ParseError as e:
            ast = None
            verdict = Verdict.block(REASON_UNPARSEABLE, GUARD_PARSE, e.message)
        except Exception as e:
            ast = None
            logger.error(
                "evaluation_failed",
                error=str(e),
                error_type=type(e).__name__,
                command=truncate(command),
            )
            verdict = Verdict.block(REASON_INTERNAL, GUARD_INTERNAL)

        autonomy = self.autonomy.classify(verdict, ast)
        if verdict.is_blocked:
            logger.info(
                "command_blocked",
                reason=verdict.reason,
                guard=verdict.guard,
                command=truncate(command),
            )
        else:
            logger.debug(
                "command_classified",
                autonomy=autonomy.value,
                command=truncate(command),
            )
        return PolicyDecision(command=command, verdict=verdict, autonomy=autonomy)

    def classify(self, command: str) -> Verdict:
        """Return the Allowed/Blocked verdict for a command."""
        return self.evaluate(command).verdict

    def decide(self, command: str) -> AutonomyDecision:
        """Return the Auto/Manual/Blocked disposition for a command."""
        return self.evaluate(command).autonomy

    def explain(self, command: str) -> str | None:
        """Return "reason: subject" for a blocked command, None otherwise."""
        return self.evaluate(command).verdict.describe()

    def _prefilter(self, command: str) -> Verdict | None:
        if self.prefilter is None:
            return None
        shape = self.prefilter.check(command)
        if shape is None:
            return None
        return Verdict.block(REASON_PREFILTER, GUARD_PREFILTER, shape)


@lru_cache(maxsize=1)
def default_policy() -> CommandPolicy:
    """Shared policy built from the built-in rule table."""
    return CommandPolicy()


def evaluate(command: str) -> PolicyDecision:
    return default_policy().evaluate(command)


def classify(command: str) -> Verdict:
    return default_policy().classify(command)


def decide(command: str) -> AutonomyDecision:
    return default_policy().decide(command)


def explain(command: str) -> str | None:
    return default_policy().explain(command)
