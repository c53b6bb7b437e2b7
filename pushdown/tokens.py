"""Tokens, and a small regex tokenizer to make them.

The automaton does not care where its tokens come from: anything with a
`lexeme` and a `kind` will do. This module provides a `Token` for callers who
don't have one of their own, and a `Lexer` that turns text into tokens from a
list of `(kind, pattern)` pairs, which is enough for tests and small
languages.
"""

import re
import typing
from dataclasses import dataclass


@dataclass(frozen=True)
class Token:
    lexeme: str
    kind: str
    line: int = 1
    column: int = 1

    def __str__(self) -> str:
        lexeme = self.lexeme.replace("\n", "\\n")
        return f"{self.kind}:'{lexeme}' {self.line}:{self.column}"


class TokenError(ValueError):
    """Raised when the lexer finds text that no pattern matches."""

    line: int
    column: int

    def __init__(self, message: str, line: int, column: int):
        super().__init__(f"{line}:{column}: {message}")
        self.line = line
        self.column = column


class Lexer:
    """A tokenizer built from an ordered list of `(kind, pattern)` pairs.

    All the patterns are combined into one big alternation, so at any position
    the *first* pattern in the list that matches wins; list keywords before
    the identifier pattern that would also match them, and longer operators
    before their prefixes. Tokens whose kind is in `skip` (whitespace,
    comments) are dropped from the output but still count for line and column
    tracking.
    """

    patterns: list[typing.Tuple[str, str]]
    skip: set[str]

    def __init__(self, patterns: list[typing.Tuple[str, str]], *, skip: typing.Iterable[str] = ()):
        if len(patterns) == 0:
            raise ValueError("A lexer needs at least one pattern")

        kinds: set[str] = set()
        for kind, _ in patterns:
            if not kind.isidentifier():
                raise ValueError(f"Token kind {kind!r} must be a valid identifier")
            if kind in kinds:
                raise ValueError(f"Token kind {kind!r} appears more than once")
            kinds.add(kind)

        self.patterns = list(patterns)
        self.skip = set(skip)
        self._master = re.compile("|".join(f"(?P<{kind}>{pattern})" for kind, pattern in patterns))

    def tokenize(self, source: str) -> list[Token]:
        tokens: list[Token] = []
        pos = 0
        line = 1
        line_start = 0
        while pos < len(source):
            column = pos - line_start + 1

            match = self._master.match(source, pos)
            if match is None:
                raise TokenError(f"Unexpected character {source[pos]!r}", line, column)

            kind = match.lastgroup
            assert kind is not None
            lexeme = match.group()
            if len(lexeme) == 0:
                raise TokenError(f"Pattern {kind} matched no input", line, column)

            if kind not in self.skip:
                tokens.append(Token(lexeme=lexeme, kind=kind, line=line, column=column))

            newlines = lexeme.count("\n")
            if newlines > 0:
                line += newlines
                line_start = pos + lexeme.rfind("\n") + 1
            pos = match.end()

        return tokens


def tokenize(
    source: str,
    patterns: list[typing.Tuple[str, str]],
    *,
    skip: typing.Iterable[str] = (),
) -> list[Token]:
    """Tokenize the source with a one-off lexer."""
    return Lexer(patterns, skip=skip).tokenize(source)
