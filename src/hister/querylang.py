"""Tokenizer for the search box query language.

The language has three token kinds separated by whitespace:

- ``WORD``: a run of non-whitespace characters. A ``"`` inside a word opens a
  quoted section in which whitespace does not split, so ``title:"a b"`` is a
  single word.
- ``QUOTED``: text between double quotes. ``\\"`` is the only escape.
- ``ALTERNATION``: text between balanced parentheses, split on top-level
  ``|`` into trimmed ``WORD`` parts. Empty alternatives are dropped.

Only an unclosed quote or parenthesis is an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from hister.errors import QuerySyntaxError


class TokenKind(str, Enum):
    WORD = "word"
    QUOTED = "quoted"
    ALTERNATION = "alternation"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    parts: tuple[Token, ...] = ()


def word(value: str) -> Token:
    return Token(TokenKind.WORD, value)


class _Lexer:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    @property
    def char(self) -> str:
        if self.pos >= len(self.text):
            return ""
        return self.text[self.pos]

    def peek(self) -> str:
        nxt = self.pos + 1
        if nxt >= len(self.text):
            return ""
        return self.text[nxt]

    def skip_whitespace(self) -> None:
        while self.char and self.char.isspace():
            self.pos += 1

    def next_token(self) -> Token | None:
        self.skip_whitespace()
        if not self.char:
            return None
        if self.char == '"':
            return self.read_quoted()
        if self.char == "(":
            return self.read_alternation()
        return self.read_word()

    def read_quoted(self) -> Token:
        start = self.pos
        self.pos += 1
        chars: list[str] = []
        while self.char and self.char != '"':
            if self.char == "\\" and self.peek() == '"':
                chars.append('"')
                self.pos += 2
                continue
            chars.append(self.char)
            self.pos += 1
        if self.char != '"':
            raise QuerySyntaxError("unclosed quoted string", start)
        self.pos += 1
        return Token(TokenKind.QUOTED, "".join(chars))

    def read_alternation(self) -> Token:
        start = self.pos
        self.pos += 1
        chars: list[str] = []
        depth = 1
        while self.char:
            if self.char == "(":
                depth += 1
            elif self.char == ")":
                depth -= 1
                if depth == 0:
                    break
            chars.append(self.char)
            self.pos += 1
        if self.char != ")":
            raise QuerySyntaxError("unclosed alternation string", start)
        self.pos += 1
        value = "".join(chars)
        return Token(TokenKind.ALTERNATION, value, split_alternatives(value))

    def read_word(self) -> Token:
        start = self.pos
        quote_start = -1
        while self.char and (quote_start >= 0 or not self.char.isspace()):
            if self.char == '"':
                quote_start = -1 if quote_start >= 0 else self.pos
            self.pos += 1
        if quote_start >= 0:
            raise QuerySyntaxError("unclosed quoted string", quote_start)
        return word(self.text[start : self.pos])


def split_alternatives(value: str) -> tuple[Token, ...]:
    """Split alternation content on ``|`` at nesting depth zero."""
    parts: list[Token] = []
    current: list[str] = []
    depth = 0
    for ch in value:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "|" and depth == 0:
            _append_part(parts, current)
            current = []
            continue
        current.append(ch)
    _append_part(parts, current)
    return tuple(parts)


def _append_part(parts: list[Token], chars: list[str]) -> None:
    option = "".join(chars).strip()
    if option:
        parts.append(word(option))


def tokenize(text: str) -> list[Token]:
    """Return the tokens of ``text`` in order.

    Raises:
        QuerySyntaxError: on an unclosed quote or parenthesis.
    """
    lexer = _Lexer(text)
    tokens: list[Token] = []
    while (token := lexer.next_token()) is not None:
        tokens.append(token)
    return tokens
