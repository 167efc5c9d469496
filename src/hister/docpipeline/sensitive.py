"""Screen raw HTML for secrets before it reaches the index."""

from __future__ import annotations

from collections.abc import Mapping
import re

from hister.config import DEFAULT_SENSITIVE_CONTENT_PATTERNS
from hister.patterns import compile_named_alternation


class SensitiveContentMatcher:
    """Named patterns compiled into one alternation.

    Each pattern becomes a named group so a hit reports which rule fired.

    Raises:
        RuleCompileError: when the patterns do not compile together.
    """

    def __init__(self, patterns: Mapping[str, str] | None = None) -> None:
        self.patterns = dict(DEFAULT_SENSITIVE_CONTENT_PATTERNS if patterns is None else patterns)
        self._regex: re.Pattern[str] | None = compile_named_alternation(self.patterns) if self.patterns else None

    def find(self, content: str) -> str | None:
        """Return the name of the first matching pattern, or None."""
        if self._regex is None or not content:
            return None
        match = self._regex.search(content)
        if match is None:
            return None
        return match.lastgroup

    def __contains__(self, content: str) -> bool:
        return self.find(content) is not None
