"""Command-line entry point.

Usage:
  cmdpolicy "kubectl get pods" "rm -rf /tmp/cache" [--policy-file FILE] [--log-level LEVEL]

Prints the disposition and reason for each command. The exit status is
that of the most restrictive disposition: 0 for Auto, 1 for Manual and
2 for Blocked. An invalid policy file also exits 2.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from cmdpolicy.config import PolicySettings, get_settings
from cmdpolicy.constants import truncate
from cmdpolicy.logging import Loggers, configure_logging
from cmdpolicy.policy.command_policy import CommandPolicy
from cmdpolicy.policy.errors import PolicyConfigError
from cmdpolicy.policy.models import AutonomyDecision, PolicyDecision

EXIT_CODES = {
    AutonomyDecision.AUTO: 0,
    AutonomyDecision.MANUAL: 1,
    AutonomyDecision.BLOCKED: 2,
}

_STYLES = {
    AutonomyDecision.AUTO: "green",
    AutonomyDecision.MANUAL: "yellow",
    AutonomyDecision.BLOCKED: "bold red",
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="cmdpolicy",
        description="Classify shell commands as auto, manual or blocked.",
    )
    ap.add_argument("commands", nargs="+", help="Shell command strings to classify")
    ap.add_argument("--policy-file", type=Path, help="YAML file extending the built-in rules")
    ap.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        help="Override CMDPOLICY_LOG_LEVEL",
    )
    return ap


def render(decisions: list[PolicyDecision]) -> Table:
    """Build the result table for a batch of decisions."""
    table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    table.add_column("Decision", no_wrap=True)
    table.add_column("Command", style="bold cyan")
    table.add_column("Reason", style="dim")

    for decision in decisions:
        style = _STYLES[decision.autonomy]
        table.add_row(
            f"[{style}]{decision.autonomy.value}[/{style}]",
            escape(truncate(decision.command)),
            escape(decision.verdict.describe() or ""),
        )
    return table


def main(argv: list[str] | None = None, console: Console | None = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.policy_file is not None:
        overrides["policy_file"] = args.policy_file
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    settings = get_settings()
    if overrides:
        settings = PolicySettings(**{**settings.model_dump(), **overrides})
    configure_logging(settings)

    console = console or Console()
    try:
        policy = CommandPolicy.from_settings(settings)
    except PolicyConfigError as e:
        Loggers.cli().error("policy_load_failed", error=str(e))
        console.print(Panel(escape(str(e)), title="[bold]Invalid policy file[/bold]", border_style="red"))
        return EXIT_CODES[AutonomyDecision.BLOCKED]

    decisions = [policy.evaluate(command) for command in args.commands]
    console.print(render(decisions))
    return max(EXIT_CODES[decision.autonomy] for decision in decisions)


if __name__ == "__main__":
    raise SystemExit(main())
