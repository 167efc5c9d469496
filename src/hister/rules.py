"""User rule set: skip and priority patterns plus query aliases.

A ``Rules`` value is immutable once built. Every edit produces a new value
with freshly compiled patterns, and ``RulesStore`` swaps the active value in
one assignment after the file has been written, so readers never see a rule
set whose patterns and sources disagree.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
import logging
from pathlib import Path
import re
import threading
from types import MappingProxyType

import orjson

from hister.errors import RuleCompileError
from hister.patterns import compile_alternation


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    """A list of regex sources compiled into a single alternation."""

    patterns: tuple[str, ...] = ()
    _compiled: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.patterns:
            return
        object.__setattr__(self, "_compiled", compile_alternation(self.patterns))

    @classmethod
    def of(cls, patterns: Iterable[str]) -> Rule:
        return cls(tuple(p for p in patterns if p))

    def match(self, value: str) -> bool:
        if self._compiled is None:
            return False
        return self._compiled.search(value) is not None

    def __bool__(self) -> bool:
        return bool(self.patterns)


@dataclass(frozen=True)
class Rules:
    """Skip/priority rules and aliases, compiled once at construction."""

    skip: Rule = field(default_factory=Rule)
    priority: Rule = field(default_factory=Rule)
    aliases: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "aliases", MappingProxyType(dict(self.aliases)))

    def is_skip(self, url: str) -> bool:
        return self.skip.match(url)

    def is_priority(self, value: str) -> bool:
        return self.priority.match(value)

    def resolve_aliases(self, text: str) -> str:
        """Replace whole whitespace-separated tokens that have an alias."""
        if not self.aliases:
            return text
        words = text.split()
        changed = False
        for idx, word in enumerate(words):
            replacement = self.aliases.get(word)
            if replacement is not None:
                words[idx] = replacement
                changed = True
        if not changed:
            return text
        return " ".join(words)

    def with_skip(self, patterns: Iterable[str]) -> Rules:
        return Rules(skip=Rule.of(patterns), priority=self.priority, aliases=self.aliases)

    def with_priority(self, patterns: Iterable[str]) -> Rules:
        return Rules(skip=self.skip, priority=Rule.of(patterns), aliases=self.aliases)

    def with_alias(self, keyword: str, value: str) -> Rules:
        keyword = keyword.strip()
        if not keyword or any(ch.isspace() for ch in keyword):
            raise ValueError(f"alias keyword must be a single word: {keyword!r}")
        aliases = dict(self.aliases)
        aliases[keyword] = value
        return Rules(skip=self.skip, priority=self.priority, aliases=aliases)

    def without_alias(self, keyword: str) -> Rules:
        aliases = {k: v for k, v in self.aliases.items() if k != keyword}
        return Rules(skip=self.skip, priority=self.priority, aliases=aliases)

    def to_dict(self) -> dict[str, object]:
        return {
            "skip": list(self.skip.patterns),
            "priority": list(self.priority.patterns),
            "aliases": dict(self.aliases),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object] | None) -> Rules:
        data = data or {}
        skip = data.get("skip") or []
        priority = data.get("priority") or []
        aliases = data.get("aliases") or {}
        if not isinstance(skip, list) or not isinstance(priority, list) or not isinstance(aliases, dict):
            raise RuleCompileError("rules must contain 'skip' and 'priority' lists and an 'aliases' object")
        return cls(
            skip=Rule.of(str(p) for p in skip),
            priority=Rule.of(str(p) for p in priority),
            aliases={str(k): str(v) for k, v in aliases.items()},
        )


class RulesStore:
    """Persists ``Rules`` as JSON and holds the currently active value."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._current = Rules()

    @property
    def current(self) -> Rules:
        return self._current

    def load(self) -> Rules:
        """Load rules from disk, creating an empty rules file when missing."""
        if not self.path.exists():
            logger.info("Rules file %s not found, creating an empty one", self.path)
            return self.save(Rules())
        try:
            data = orjson.loads(self.path.read_bytes())
        except orjson.JSONDecodeError as exc:
            raise RuleCompileError(f"invalid rules file {self.path}: {exc}") from exc
        rules = Rules.from_dict(data)
        with self._lock:
            self._current = rules
        return rules

    def save(self, rules: Rules) -> Rules:
        """Write ``rules`` atomically and make them the active value."""
        payload = orjson.dumps(rules.to_dict(), option=orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            try:
                tmp_path.write_bytes(payload)
                tmp_path.replace(self.path)
            except OSError:
                tmp_path.unlink(missing_ok=True)
                raise
            self._current = rules
        logger.debug("Saved rules to %s", self.path)
        return rules

    def update(self, mutate: Callable[[Rules], Rules]) -> Rules:
        """Apply ``mutate`` to the active rules and persist the result.

        If ``mutate`` raises (for example on an invalid pattern) nothing is
        written and the active rules stay as they were.
        """
        with self._lock:
            return self.save(mutate(self._current))
