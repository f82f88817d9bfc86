"""Recursive-descent parser building a depth-capped shell AST.

Grammar (the supported subset):

    list      := pipeline ((';' | '&&' | '||' | NEWLINE) pipeline)* [';']
    pipeline  := command ('|' command)*
    command   := '(' list ')' redirect* | simple
    simple    := (assignment | word | redirect)+

Command substitution bodies found by the tokenizer are parsed recursively
and attached to their words as ``Subshell`` nodes. Each subshell or
substitution level counts towards the depth cap.
"""

import re

from cmdpolicy.constants import DEFAULT_MAX_DEPTH
from cmdpolicy.policy.errors import ParseError, RecursionLimitExceeded
from cmdpolicy.policy.models import (
    Command,
    CommandList,
    ListOperator,
    Node,
    Pipeline,
    Redirect,
    RedirectDirection,
    Subshell,
    SubshellKind,
    Token,
    TokenKind,
    Word,
)
from cmdpolicy.policy.tokenizer import CommandTokenizer

_ASSIGNMENT = re.compile(r"(?P<name>[A-Za-z_][A-Za-z0-9_]*)\+?=")

_LIST_OPERATORS = {
    TokenKind.SEMI: ListOperator.SEQ,
    TokenKind.NEWLINE: ListOperator.SEQ,
    TokenKind.AND: ListOperator.AND,
    TokenKind.OR: ListOperator.OR,
}

_REDIRECT_DIRECTIONS = {
    "<": RedirectDirection.INPUT,
    ">": RedirectDirection.OUTPUT,
    ">>": RedirectDirection.APPEND,
    ">&": RedirectDirection.DUPLICATE,
    "<&": RedirectDirection.DUPLICATE,
}


class _TokenStream:
    """Cursor over a token list."""

    def __init__(self, tokens: list[Token]):
        self._tokens = tokens
        self._index = 0

    def peek(self) -> Token:
        return self._tokens[self._index]

    def at(self, *kinds: TokenKind) -> bool:
        return self.peek().kind in kinds

    def advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind is not TokenKind.EOF:
            self._index += 1
        return token

    def skip_newlines(self) -> None:
        while self.at(TokenKind.NEWLINE):
            self.advance()


def _describe(token: Token) -> str:
    if token.kind is TokenKind.EOF:
        return "end of input"
    if token.kind is TokenKind.NEWLINE:
        return "newline"
    return repr(token.text)


class CommandParser:
    """Parses command strings into AST nodes.

    Holds only immutable configuration, so one parser can serve concurrent
    callers.
    """

    def __init__(
        self,
        max_depth: int = DEFAULT_MAX_DEPTH,
        tokenizer: CommandTokenizer | None = None,
    ):
        """Initialize parser.

        Args:
            max_depth: Maximum subshell/substitution nesting.
            tokenizer: Tokenizer to use (a fresh one by default).
        """
        self.max_depth = max_depth
        self.tokenizer = tokenizer or CommandTokenizer()

    def parse(self, command: str) -> Node:
        """Parse a command string.

        Args:
            command: The shell command to parse.

        Returns:
            The root AST node. An empty command yields an empty CommandList.

        Raises:
            ParseError: On unsupported or malformed syntax.
            RecursionLimitExceeded: When nesting exceeds ``max_depth``.
        """
        return self._parse_source(command, offset=0, depth=1)

    def _parse_source(self, source: str, offset: int, depth: int) -> Node:
        self._check_depth(depth, offset)
        stream = _TokenStream(self.tokenizer.tokenize(source, offset))
        node = self._parse_list(stream, depth)
        token = stream.peek()
        if token.kind is TokenKind.RPAREN:
            raise ParseError("unmatched ')'", token.position)
        if token.kind is not TokenKind.EOF:
            raise ParseError(f"unexpected {_describe(token)}", token.position)
        return node

    def _check_depth(self, depth: int, position: int) -> None:
        if depth > self.max_depth:
            raise RecursionLimitExceeded(self.max_depth, position)

    def _parse_list(self, stream: _TokenStream, depth: int) -> Node:
        stream.skip_newlines()
        if stream.at(TokenKind.EOF, TokenKind.RPAREN):
            return CommandList()

        members: list[Node] = [self._parse_pipeline(stream, depth)]
        operators: list[ListOperator] = []

        while stream.peek().kind in _LIST_OPERATORS:
            token = stream.advance()
            operator = _LIST_OPERATORS[token.kind]
            stream.skip_newlines()

            if stream.at(TokenKind.EOF, TokenKind.RPAREN):
                if operator is ListOperator.SEQ:
                    break
                raise ParseError(f"missing command after {token.text!r}", token.position)

            operators.append(operator)
            members.append(self._parse_pipeline(stream, depth))

        if len(members) == 1:
            return members[0]
        return CommandList(members=tuple(members), operators=tuple(operators))

    def _parse_pipeline(self, stream: _TokenStream, depth: int) -> Node:
        stages: list[Node] = [self._parse_command(stream, depth)]
        while stream.at(TokenKind.PIPE):
            pipe = stream.advance()
            stream.skip_newlines()
            if stream.at(TokenKind.EOF, TokenKind.RPAREN):
                raise ParseError("missing command after '|'", pipe.position)
            stages.append(self._parse_command(stream, depth))

        if len(stages) == 1:
            return stages[0]
        return Pipeline(stages=tuple(stages))

    def _parse_command(self, stream: _TokenStream, depth: int) -> Node:
        if stream.at(TokenKind.LPAREN):
            return self._parse_group(stream, depth)
        return self._parse_simple(stream, depth)

    def _parse_group(self, stream: _TokenStream, depth: int) -> Node:
        opening = stream.advance()
        self._check_depth(depth + 1, opening.position)

        body = self._parse_list(stream, depth + 1)
        if isinstance(body, CommandList) and not body.members:
            raise ParseError("empty subshell", opening.position)
        if not stream.at(TokenKind.RPAREN):
            raise ParseError("unmatched '('", opening.position)
        stream.advance()

        node: Node = Subshell(body=body, kind=SubshellKind.GROUP)
        while stream.at(TokenKind.REDIRECT):
            node = self._parse_redirect(stream, node, depth)
        if stream.at(TokenKind.WORD, TokenKind.LPAREN):
            token = stream.peek()
            raise ParseError(f"unexpected {_describe(token)} after subshell", token.position)
        return node

    def _parse_simple(self, stream: _TokenStream, depth: int) -> Node:
        first = stream.peek()
        assignments: list[tuple[str, Word]] = []
        words: list[Word] = []
        redirect_tokens: list[tuple[Token, Token]] = []

        while True:
            token = stream.peek()
            if token.kind is TokenKind.WORD:
                stream.advance()
                match = _ASSIGNMENT.match(token.text)
                if not words and match:
                    value = token.literal[match.end():]
                    assignments.append((match.group("name"), self._word(token, depth, value)))
                else:
                    words.append(self._word(token, depth))
            elif token.kind is TokenKind.REDIRECT:
                stream.advance()
                target = stream.advance()
                if target.kind is not TokenKind.WORD:
                    raise ParseError(f"missing redirect target after {token.text!r}", token.position)
                redirect_tokens.append((token, target))
            else:
                break

        if not (assignments or words or redirect_tokens):
            raise ParseError(f"unexpected {_describe(first)}", first.position)
        if stream.at(TokenKind.LPAREN):
            raise ParseError(
                "arrays and function definitions are not supported",
                stream.peek().position,
            )

        node: Node = Command(
            name=words[0] if words else None,
            args=tuple(words[1:]),
            assignments=tuple(assignments),
        )
        for operator, target in redirect_tokens:
            node = self._redirect(node, operator, target, depth)
        return node

    def _parse_redirect(self, stream: _TokenStream, source: Node, depth: int) -> Node:
        operator = stream.advance()
        target = stream.advance()
        if target.kind is not TokenKind.WORD:
            raise ParseError(f"missing redirect target after {operator.text!r}", operator.position)
        return self._redirect(source, operator, target, depth)

    def _redirect(self, source: Node, operator: Token, target: Token, depth: int) -> Redirect:
        direction = _REDIRECT_DIRECTIONS[operator.text]
        fd = operator.fd
        if direction is RedirectDirection.DUPLICATE and not _is_fd_target(target.literal):
            if operator.text == "<&":
                raise ParseError("'<&' needs a file descriptor", operator.position)
            # >&file is the same as &>file
            direction = RedirectDirection.OUTPUT
            fd = "&"
        return Redirect(
            source=source,
            direction=direction,
            target=self._word(target, depth),
            fd=fd,
        )

    def _word(self, token: Token, depth: int, literal: str | None = None) -> Word:
        substitutions = tuple(
            Subshell(
                body=self._parse_source(sub.source, sub.position, depth + 1),
                kind=SubshellKind.SUBSTITUTION,
            )
            for sub in token.substitutions
        )
        return Word(
            literal=token.literal if literal is None else literal,
            expansion_kind=token.expansion,
            substitutions=substitutions,
        )


def _is_fd_target(literal: str) -> bool:
    return literal == "-" or literal.isdigit()


def parse(command: str, max_depth: int = DEFAULT_MAX_DEPTH) -> Node:
    """Parse a command string with a throwaway parser.

    Raises:
        ParseError: On unsupported or malformed syntax.
    """
    return CommandParser(max_depth=max_depth).parse(command)
