"""Command tokenizer for the supported shell subset.

Layer 2: Lexical Analysis
- Split a command string into words, operators and redirections
- Remove quotes while keeping expansions verbatim
- Record every command substitution body for the parser
- Reject constructs outside the subset (heredocs, process substitution,
  arithmetic, ANSI-C quoting, brace expansion, background jobs)
"""

import re

from cmdpolicy.policy.errors import ParseError
from cmdpolicy.policy.models import ExpansionKind, Substitution, Token, TokenKind

# Characters that end an unquoted word
_METACHARACTERS = frozenset("|&;()<> \t\r\n")
_BLANKS = frozenset(" \t\r")

_NAME_START = re.compile(r"[A-Za-z_]")
_NAME_CHARS = re.compile(r"[A-Za-z0-9_]*")
_SPECIAL_PARAMETERS = frozenset("@*#?$!-0123456789")
_FD_PREFIX = re.compile(r"\d+(?=[<>])")
_BRACE_EXPANSION = re.compile(r"\{[^{}\s]*(,|\.\.)[^{}\s]*\}")

# Ranks used to keep the strongest expansion seen inside one word
_EXPANSION_RANK = {
    ExpansionKind.NONE: 0,
    ExpansionKind.VARIABLE: 1,
    ExpansionKind.BACKTICK: 2,
    ExpansionKind.COMMAND_SUBSTITUTION: 3,
}


class CommandTokenizer:
    """Tokenizes shell commands into a flat token list.

    The tokenizer holds no per-call state, so one instance can be shared
    between threads.
    """

    def tokenize(self, command: str, offset: int = 0) -> list[Token]:
        """Lex a command string.

        Args:
            command: The shell command (or substitution body) to lex.
            offset: Position of ``command`` inside the outermost string,
                used so nested tokens report absolute positions.

        Returns:
            Token list, always terminated by an EOF token.

        Raises:
            ParseError: If the command uses unsupported or malformed syntax.
        """
        return _Scan(command, offset).run()


class _Scan:
    """Single-use scanner state for one tokenize call."""

    def __init__(self, source: str, offset: int):
        self.src = source
        self.offset = offset
        self.pos = 0

    def run(self) -> list[Token]:
        tokens: list[Token] = []
        while True:
            self._skip_blanks()
            if self.pos >= len(self.src):
                tokens.append(Token(TokenKind.EOF, "", self._abs(self.pos)))
                return tokens

            char = self.src[self.pos]
            if char == "\n":
                tokens.append(Token(TokenKind.NEWLINE, "\n", self._abs(self.pos)))
                self.pos += 1
            elif char == "#":
                raise ParseError("comments are not supported", self._abs(self.pos))
            elif _FD_PREFIX.match(self.src, self.pos):
                tokens.append(self._redirect())
            elif char in "<>" or self.src.startswith("&>", self.pos):
                tokens.append(self._redirect())
            elif char in "|&;()":
                tokens.append(self._operator())
            else:
                tokens.append(self._word())

    def _abs(self, index: int) -> int:
        return self.offset + index

    def _peek(self, ahead: int = 1) -> str:
        index = self.pos + ahead
        return self.src[index] if index < len(self.src) else ""

    def _skip_blanks(self) -> None:
        while self.pos < len(self.src):
            char = self.src[self.pos]
            if char in _BLANKS:
                self.pos += 1
            elif char == "\\" and self._peek() == "\n":
                self.pos += 2  # line continuation
            else:
                break

    def _operator(self) -> Token:
        start = self.pos
        char = self.src[start]
        nxt = self._peek()

        if char == "|":
            if nxt == "|":
                self.pos += 2
                return Token(TokenKind.OR, "||", self._abs(start))
            if nxt == "&":
                raise ParseError("'|&' is not supported", self._abs(start))
            self.pos += 1
            return Token(TokenKind.PIPE, "|", self._abs(start))

        if char == "&":
            if nxt == "&":
                self.pos += 2
                return Token(TokenKind.AND, "&&", self._abs(start))
            raise ParseError("background jobs are not supported", self._abs(start))

        if char == ";":
            if nxt in (";", "&"):
                raise ParseError(f"';{nxt}' is not supported", self._abs(start))
            self.pos += 1
            return Token(TokenKind.SEMI, ";", self._abs(start))

        self.pos += 1
        kind = TokenKind.LPAREN if char == "(" else TokenKind.RPAREN
        return Token(kind, char, self._abs(start))

    def _redirect(self) -> Token:
        start = self.pos
        fd = None
        match = _FD_PREFIX.match(self.src, self.pos)
        if match:
            fd = match.group()
            self.pos = match.end()
        elif self.src.startswith("&>", self.pos):
            fd = "&"
            self.pos += 1

        char = self.src[self.pos]
        nxt = self._peek()

        if nxt == "(":
            raise ParseError("process substitution is not supported", self._abs(start))

        if char == "<":
            if nxt == "<":
                raise ParseError("heredocs are not supported", self._abs(start))
            if nxt == ">":
                raise ParseError("'<>' redirection is not supported", self._abs(start))
            if nxt == "&":
                op = "<&"
            else:
                op = "<"
        else:
            if nxt == ">":
                op = ">>"
            elif nxt == "&" and fd != "&":
                op = ">&"
            elif nxt == "|":
                op = ">|"
            else:
                op = ">"

        if fd == "&" and op not in (">", ">>"):
            raise ParseError(f"'&{op}' is not supported", self._abs(start))

        self.pos += len(op)
        text = ">" if op == ">|" else op
        return Token(TokenKind.REDIRECT, text, self._abs(start), fd=fd)

    def _word(self) -> Token:
        start = self.pos
        parts: list[str] = []
        substitutions: list[Substitution] = []
        expansion = ExpansionKind.NONE

        def raise_expansion(kind: ExpansionKind) -> None:
            nonlocal expansion
            if _EXPANSION_RANK[kind] > _EXPANSION_RANK[expansion]:
                expansion = kind

        while self.pos < len(self.src):
            char = self.src[self.pos]
            if char in _METACHARACTERS:
                break

            if char == "\\":
                nxt = self._peek()
                if nxt == "":
                    raise ParseError("trailing backslash", self._abs(self.pos))
                if nxt != "\n":
                    parts.append(nxt)
                self.pos += 2
            elif char == "'":
                close = self.src.find("'", self.pos + 1)
                if close == -1:
                    raise ParseError("unterminated single quote", self._abs(self.pos))
                parts.append(self.src[self.pos + 1 : close])
                self.pos = close + 1
            elif char == '"':
                self._double_quoted(parts, substitutions, raise_expansion)
            elif char == "$":
                self._dollar(parts, substitutions, raise_expansion)
            elif char == "`":
                self._backtick(parts, substitutions, raise_expansion)
            elif char == "{":
                match = _BRACE_EXPANSION.match(self.src, self.pos)
                if match:
                    raise ParseError("brace expansion is not supported", self._abs(self.pos))
                parts.append(char)
                self.pos += 1
            else:
                parts.append(char)
                self.pos += 1

        return Token(
            TokenKind.WORD,
            self.src[start : self.pos],
            self._abs(start),
            literal="".join(parts),
            expansion=expansion,
            substitutions=tuple(substitutions),
        )

    def _double_quoted(self, parts, substitutions, raise_expansion) -> None:
        opening = self.pos
        self.pos += 1
        while True:
            if self.pos >= len(self.src):
                raise ParseError("unterminated double quote", self._abs(opening))
            char = self.src[self.pos]
            if char == '"':
                self.pos += 1
                return
            if char == "\\":
                nxt = self._peek()
                if nxt in ('$', '`', '"', "\\"):
                    parts.append(nxt)
                    self.pos += 2
                elif nxt == "\n":
                    self.pos += 2
                else:
                    parts.append(char)
                    self.pos += 1
            elif char == "$":
                self._dollar(parts, substitutions, raise_expansion)
            elif char == "`":
                self._backtick(parts, substitutions, raise_expansion)
            else:
                parts.append(char)
                self.pos += 1

    def _dollar(self, parts, substitutions, raise_expansion) -> None:
        start = self.pos
        nxt = self._peek()

        if nxt == "(":
            if self._peek(2) == "(":
                raise ParseError("arithmetic expansion is not supported", self._abs(start))
            close = self._matching_paren(start + 2)
            body_start = start + 2
            substitutions.append(
                Substitution(
                    source=self.src[body_start:close],
                    position=self._abs(body_start),
                    kind=ExpansionKind.COMMAND_SUBSTITUTION,
                )
            )
            parts.append(self.src[start : close + 1])
            raise_expansion(ExpansionKind.COMMAND_SUBSTITUTION)
            self.pos = close + 1
            return

        if nxt == "{":
            close = self.src.find("}", start + 2)
            if close == -1:
                raise ParseError("unterminated parameter expansion", self._abs(start))
            parts.append(self.src[start : close + 1])
            raise_expansion(ExpansionKind.VARIABLE)
            self.pos = close + 1
            return

        if nxt == "'":
            raise ParseError("ANSI-C quoting is not supported", self._abs(start))
        if nxt == '"':
            raise ParseError("locale quoting is not supported", self._abs(start))

        if nxt and _NAME_START.match(nxt):
            end = _NAME_CHARS.match(self.src, start + 2).end()
            parts.append(self.src[start:end])
            self.pos = end
        elif nxt and nxt in _SPECIAL_PARAMETERS:
            parts.append(self.src[start : start + 2])
            self.pos = start + 2
        else:
            parts.append("$")
            self.pos = start + 1
        raise_expansion(ExpansionKind.VARIABLE)

    def _backtick(self, parts, substitutions, raise_expansion) -> None:
        start = self.pos
        index = start + 1
        while index < len(self.src):
            char = self.src[index]
            if char == "\\":
                index += 2
                continue
            if char == "`":
                break
            index += 1
        else:
            raise ParseError("unterminated backtick substitution", self._abs(start))

        body = self.src[start + 1 : index]
        substitutions.append(
            Substitution(
                source=body.replace("\\`", "`"),
                position=self._abs(start + 1),
                kind=ExpansionKind.BACKTICK,
            )
        )
        parts.append(self.src[start : index + 1])
        raise_expansion(ExpansionKind.BACKTICK)
        self.pos = index + 1

    def _matching_paren(self, index: int) -> int:
        """Find the ``)`` closing a ``$(`` whose body starts at ``index``."""
        opening = index - 2
        depth = 1
        while index < len(self.src):
            char = self.src[index]
            if char == "\\":
                index += 2
                continue
            if char == "'":
                close = self.src.find("'", index + 1)
                if close == -1:
                    break
                index = close + 1
                continue
            if char == '"':
                index = self._skip_double_quotes(index)
                continue
            if char == "`":
                close = self.src.find("`", index + 1)
                if close == -1:
                    break
                index = close + 1
                continue
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    return index
            index += 1
        raise ParseError("unterminated command substitution", self._abs(opening))

    def _skip_double_quotes(self, index: int) -> int:
        """Return the index just past the double-quoted string at ``index``."""
        opening = index
        index += 1
        while index < len(self.src):
            char = self.src[index]
            if char == "\\":
                index += 2
                continue
            if char == '"':
                return index + 1
            index += 1
        raise ParseError("unterminated double quote", self._abs(opening))
