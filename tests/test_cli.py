"""Tests for the cmdpolicy command-line entry point."""

import io

import pytest
from rich.console import Console

from cmdpolicy.cli import EXIT_CODES, build_parser, main
from cmdpolicy.policy import AutonomyDecision


class RecordingConsole:
    """A wide rich console writing into a string buffer."""

    def __init__(self):
        self.buffer = io.StringIO()
        self.console = Console(file=self.buffer, width=200, color_system=None)

    @property
    def output(self) -> str:
        return self.buffer.getvalue()


@pytest.fixture
def out() -> RecordingConsole:
    return RecordingConsole()


@pytest.fixture
def no_policy_file(tmp_path):
    """CLI arguments pointing at an empty policy file."""
    path = tmp_path / "empty.yaml"
    path.write_text("")
    return ["--policy-file", str(path)]


class TestCli:
    """Tests for exit codes and output."""

    def test_exit_codes(self):
        assert EXIT_CODES == {
            AutonomyDecision.AUTO: 0,
            AutonomyDecision.MANUAL: 1,
            AutonomyDecision.BLOCKED: 2,
        }

    def test_auto(self, mock_context, no_policy_file, out):
        assert main(["ls -la", *no_policy_file], console=out.console) == 0
        assert "auto" in out.output

    def test_manual(self, mock_context, no_policy_file, out):
        assert main(["npm install", *no_policy_file], console=out.console) == 1
        assert "manual" in out.output

    def test_blocked_shows_reason(self, mock_context, no_policy_file, out):
        assert main(["kubectl delete pod nginx", *no_policy_file], console=out.console) == 2
        assert "blocked" in out.output
        assert "destructive kubectl delete: kubectl delete pod nginx" in out.output

    def test_markup_in_command_is_literal(self, mock_context, no_policy_file, out):
        """Command text is printed verbatim, not as rich markup."""
        main(["echo [bold]hi[/bold]", *no_policy_file], console=out.console)

        assert "echo [bold]hi[/bold]" in out.output

    def test_most_restrictive_wins(self, mock_context, no_policy_file, out):
        """The exit status reflects the most restrictive command."""
        assert main(["ls", "npm install", *no_policy_file], console=out.console) == 1
        assert main(["ls", "rm -rf /", "npm install", *no_policy_file], console=out.console) == 2

    def test_policy_file(self, mock_context, write_policy_file, out):
        path = write_policy_file({"deny_commands": ["terraform"]})

        assert main(["terraform apply", "--policy-file", str(path)], console=out.console) == 2
        assert "denied by policy" in out.output

    def test_invalid_policy_file(self, mock_context, write_policy_file, out):
        path = write_policy_file({"deny_commands": "terraform"})

        assert main(["ls", "--policy-file", str(path)], console=out.console) == 2
        assert "Invalid policy file" in out.output

    def test_missing_policy_file(self, mock_context, tmp_path, out):
        """A named policy file that does not exist is an error, not the defaults."""
        path = tmp_path / "polcy.yaml"

        assert main(["ls", "--policy-file", str(path)], console=out.console) == 2
        assert "not found" in out.output

    def test_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_log_level_option(self):
        args = build_parser().parse_args(["ls", "--log-level", "debug"])

        assert args.log_level == "debug"
        assert args.commands == ["ls"]
