"""Tests for the recursive-descent parser and AST models."""

import pytest

from cmdpolicy.policy import (
    Command,
    CommandList,
    CommandParser,
    ExpansionKind,
    ListOperator,
    ParseError,
    Pipeline,
    RecursionLimitExceeded,
    Redirect,
    RedirectDirection,
    Subshell,
    SubshellKind,
    Word,
    parse,
)


def cmd(*words: str) -> Command:
    return Command(name=Word(words[0]), args=tuple(Word(w) for w in words[1:]))


class TestSimpleCommands:
    """Tests for simple commands and assignments."""

    def test_simple_command(self, parser):
        """A lone command parses to a Command node."""
        assert parser.parse("ls -la") == cmd("ls", "-la")

    def test_empty_command(self, parser):
        """Empty and blank input parse to an empty CommandList."""
        assert parser.parse("") == CommandList()
        assert parser.parse("  \n\n ") == CommandList()

    def test_quoted_arguments(self, parser):
        """Quotes are removed from arguments."""
        node = parser.parse('git commit -m "fix the bug"')

        assert node.literal_args == ("commit", "-m", "fix the bug")

    def test_assignment_only(self, parser):
        """An assignment without a command has no name."""
        node = parser.parse("CMD=rm")

        assert node == Command(name=None, assignments=(("CMD", Word("rm")),))

    def test_assignment_prefix(self, parser):
        """Assignments before the first word are not arguments."""
        node = parser.parse("FOO=bar BAZ=1 make build")

        assert [name for name, _ in node.assignments] == ["FOO", "BAZ"]
        assert node.name == Word("make")
        assert node.literal_args == ("build",)

    def test_assignment_after_name_is_argument(self, parser):
        """Words with = after the command name are plain arguments."""
        node = parser.parse("dd if=/dev/zero of=out.img")

        assert node.assignments == ()
        assert node.literal_args == ("if=/dev/zero", "of=out.img")

    def test_quoted_assignment_name_is_word(self, parser):
        """A quoted name is not an assignment."""
        node = parser.parse("'FOO=bar' ls")

        assert node.assignments == ()
        assert node.name == Word("FOO=bar")

    def test_assignment_with_substitution(self, parser):
        """Assignment values keep their substitutions."""
        node = parser.parse("X=$(whoami)")
        name, value = node.assignments[0]

        assert name == "X"
        assert value.literal == "$(whoami)"
        assert value.expansion_kind is ExpansionKind.COMMAND_SUBSTITUTION
        assert value.substitutions[0].body == cmd("whoami")

    def test_words_property_order(self, parser):
        """Command.words lists assignment values, name, then arguments."""
        node = parser.parse("A=1 echo hi")

        assert [w.literal for w in node.words] == ["1", "echo", "hi"]


class TestLists:
    """Tests for pipelines and command lists."""

    def test_pipeline(self, parser):
        """Pipes build a Pipeline with ordered stages."""
        node = parser.parse("ls -la | grep foo | wc -l")

        assert node == Pipeline(stages=(cmd("ls", "-la"), cmd("grep", "foo"), cmd("wc", "-l")))

    def test_and_or_list(self, parser):
        """&& and || are recorded between members."""
        node = parser.parse("make && make test || echo failed")

        assert node == CommandList(
            members=(cmd("make"), cmd("make", "test"), cmd("echo", "failed")),
            operators=(ListOperator.AND, ListOperator.OR),
        )

    def test_sequence_and_newline(self, parser):
        """; and newlines both sequence commands."""
        node = parser.parse("cd /tmp; ls\npwd")

        assert node.operators == (ListOperator.SEQ, ListOperator.SEQ)
        assert len(node.members) == 3

    def test_trailing_semicolon(self, parser):
        """A trailing ; is allowed and a single member is unwrapped."""
        assert parser.parse("ls;") == cmd("ls")

    def test_pipeline_inside_list(self, parser):
        """Pipelines bind tighter than list operators."""
        node = parser.parse("ls | wc -l && echo done")

        assert isinstance(node, CommandList)
        assert isinstance(node.members[0], Pipeline)


class TestSubshells:
    """Tests for groups and command substitutions."""

    def test_group(self, parser):
        """Parentheses create a GROUP subshell."""
        node = parser.parse("(cd /tmp && ls)")

        assert isinstance(node, Subshell)
        assert node.kind is SubshellKind.GROUP
        assert isinstance(node.body, CommandList)

    def test_group_in_pipeline(self, parser):
        """A group can be a pipeline stage."""
        node = parser.parse("(echo a; echo b) | sort")

        assert isinstance(node, Pipeline)
        assert isinstance(node.stages[0], Subshell)

    def test_substitution_parsed(self, parser):
        """Substitution bodies become SUBSTITUTION subshells on the word."""
        node = parser.parse("echo $(ls /tmp)")
        word = node.args[0]

        assert word.has_expansion
        assert word.substitutions == (
            Subshell(body=cmd("ls", "/tmp"), kind=SubshellKind.SUBSTITUTION),
        )

    def test_nested_substitution(self, parser):
        """Substitutions nest recursively."""
        node = parser.parse("echo $(echo $(whoami))")
        inner = node.args[0].substitutions[0].body

        assert inner.args[0].substitutions[0].body == cmd("whoami")

    def test_backtick_substitution(self, parser):
        """Backtick bodies are parsed like $( )."""
        node = parser.parse("echo `date`")
        word = node.args[0]

        assert word.expansion_kind is ExpansionKind.BACKTICK
        assert word.substitutions[0].body == cmd("date")

    def test_group_redirect(self, parser):
        """Redirects after a group wrap the subshell."""
        node = parser.parse("(ls) > out.txt")

        assert isinstance(node, Redirect)
        assert isinstance(node.source, Subshell)


class TestRedirects:
    """Tests for redirection nodes."""

    def test_output_redirect(self, parser):
        """> wraps the command in an OUTPUT redirect."""
        node = parser.parse("echo hi > out.txt")

        assert node == Redirect(
            source=cmd("echo", "hi"),
            direction=RedirectDirection.OUTPUT,
            target=Word("out.txt"),
        )

    def test_redirect_before_name(self, parser):
        """Redirects may appear anywhere in a simple command."""
        node = parser.parse("> out.txt echo hi")

        assert node.source == cmd("echo", "hi")
        assert node.target == Word("out.txt")

    def test_multiple_redirects_in_order(self, parser):
        """Later redirects wrap earlier ones."""
        node = parser.parse("cmd < in.txt >> log.txt")

        assert node.direction is RedirectDirection.APPEND
        assert node.source.direction is RedirectDirection.INPUT
        assert node.source.source == cmd("cmd")

    def test_fd_duplication(self, parser):
        """2>&1 is a DUPLICATE redirect with its fd."""
        node = parser.parse("make 2>&1")

        assert node.direction is RedirectDirection.DUPLICATE
        assert node.fd == "2"
        assert node.target == Word("1")

    def test_duplicate_to_file_is_output(self, parser):
        """>&file writes both streams to the file."""
        node = parser.parse("make >&build.log")

        assert node.direction is RedirectDirection.OUTPUT
        assert node.fd == "&"
        assert node.target == Word("build.log")

    def test_redirect_only(self, parser):
        """A bare redirect has an assignment-free, nameless command."""
        node = parser.parse("> empty.txt")

        assert node.source == Command(name=None)


class TestParseErrors:
    """Malformed input raises ParseError."""

    @pytest.mark.parametrize(
        "command,message",
        [
            ("(ls", "unmatched '('"),
            ("ls)", "unmatched ')'"),
            ("()", "empty subshell"),
            ("ls &&", "missing command after '&&'"),
            ("ls ||", "missing command after '||'"),
            ("ls |", "missing command after '|'"),
            ("| ls", "unexpected '|'"),
            ("&& ls", "unexpected '&&'"),
            ("echo >", "missing redirect target after '>'"),
            ("cat <&file", "'<&' needs a file descriptor"),
            ("(ls) foo", "unexpected 'foo' after subshell"),
            ("greet() { echo hi; }", "arrays and function definitions are not supported"),
            ("arr=(a b)", "arrays and function definitions are not supported"),
        ],
    )
    def test_rejected(self, parser, command, message):
        """Each malformed command fails with a descriptive message."""
        with pytest.raises(ParseError) as exc_info:
            parser.parse(command)

        assert exc_info.value.message == message

    def test_error_inside_substitution(self, parser):
        """Errors inside substitution bodies propagate."""
        with pytest.raises(ParseError):
            parser.parse("echo $(ls &&)")


class TestDepthLimit:
    """Tests for the nesting cap."""

    def test_within_limit(self):
        """Nesting up to the cap parses."""
        parser = CommandParser(max_depth=3)

        node = parser.parse("((ls))")

        assert isinstance(node, Subshell)

    def test_group_over_limit(self):
        """Groups deeper than the cap raise RecursionLimitExceeded."""
        parser = CommandParser(max_depth=3)

        with pytest.raises(RecursionLimitExceeded) as exc_info:
            parser.parse("(((ls)))")

        assert exc_info.value.limit == 3

    def test_substitution_over_limit(self):
        """Substitution levels count towards the cap."""
        parser = CommandParser(max_depth=2)

        with pytest.raises(RecursionLimitExceeded):
            parser.parse("echo $(echo $(ls))")

    def test_deep_nesting_default(self, parser):
        """Forty levels of nesting fail cleanly with the default cap."""
        command = "(" * 40 + "ls" + ")" * 40

        with pytest.raises(RecursionLimitExceeded):
            parser.parse(command)

    def test_recursion_limit_is_parse_error(self):
        """RecursionLimitExceeded is a ParseError."""
        assert issubclass(RecursionLimitExceeded, ParseError)

    def test_module_level_parse(self):
        """parse() accepts a custom cap."""
        with pytest.raises(RecursionLimitExceeded):
            parse("((ls))", max_depth=2)
        assert parse("ls") == cmd("ls")


class TestWordExpansionFlag:
    """Words containing $ or ` always report an expansion."""

    @pytest.mark.parametrize(
        "literal,kind",
        [
            ("$HOME", ExpansionKind.VARIABLE),
            ("$(id)", ExpansionKind.COMMAND_SUBSTITUTION),
            ("`id`", ExpansionKind.BACKTICK),
            ("plain", ExpansionKind.NONE),
        ],
    )
    def test_inferred_kind(self, literal, kind):
        """The expansion kind is inferred from the literal."""
        assert Word(literal).expansion_kind is kind

    def test_single_quoted_dollar_still_flagged(self, parser):
        """A $ kept from single quotes still counts as an expansion."""
        node = parser.parse("echo '$HOME'")

        assert node.args[0].has_expansion
