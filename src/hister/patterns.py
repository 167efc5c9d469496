"""Regular expression helpers shared by the rules and the sensitive content screen.

User patterns are often written for RE2, where a leading ``(?i)`` may appear
in any alternative. Python only accepts global flags at the very start of an
expression, so each pattern's leading flags are rewritten into a scoped group
before patterns are joined.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import re

from hister.errors import RuleCompileError


_LEADING_FLAGS_RE = re.compile(r"^\(\?([aiLmsux]+)\)")


def scope_inline_flags(pattern: str) -> str:
    """Turn ``(?i)body`` into ``(?i:body)``; other patterns are returned unchanged."""
    match = _LEADING_FLAGS_RE.match(pattern)
    if match is None:
        return pattern
    return f"(?{match.group(1)}:{pattern[match.end():]})"


def compile_alternation(patterns: Iterable[str]) -> re.Pattern[str]:
    """Compile ``patterns`` into one ``(a)|(b)|...`` expression.

    Raises:
        RuleCompileError: when any pattern is not a valid regular expression.
    """
    source = "|".join(f"({scope_inline_flags(pattern)})" for pattern in patterns)
    try:
        return re.compile(source)
    except re.error as exc:
        raise RuleCompileError(f"invalid rule pattern {source!r}: {exc}") from exc


def compile_named_alternation(patterns: Mapping[str, str]) -> re.Pattern[str]:
    """Compile named patterns into one expression whose ``lastgroup`` names the hit."""
    source = "|".join(
        f"(?P<{name}>{scope_inline_flags(pattern)})" for name, pattern in sorted(patterns.items())
    )
    try:
        return re.compile(source)
    except re.error as exc:
        raise RuleCompileError(f"invalid sensitive content pattern: {exc}") from exc
