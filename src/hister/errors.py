"""Exception hierarchy shared by the search core.

Errors fall into a few families so callers can decide what to do with them:

- ``DocumentError``: the caller handed us something we cannot index (bad URL,
  empty content). The document is rejected and nothing is written.
- ``PolicyRejection``: the document is well formed but a policy (sensitive
  content screen, skip rule) refuses it. Reindex logs these and continues.
- ``ExtractionError``: no extraction strategy produced a title and text.
- ``QuerySyntaxError``: the query text has an unclosed quote or group.
- ``StorageError``: the index backend failed. Always fatal for the operation.
"""

from __future__ import annotations


class HisterError(Exception):
    """Base class for all errors raised by the search core."""


class DocumentError(HisterError):
    """A document was rejected because its input is malformed."""


class PolicyRejection(HisterError):
    """A document was rejected by a user or content policy."""


class SensitiveContentError(PolicyRejection):
    """The raw HTML matched one of the sensitive content patterns."""

    def __init__(self, pattern_name: str | None = None) -> None:
        self.pattern_name = pattern_name
        message = "document contains sensitive data"
        if pattern_name:
            message = f"{message} ({pattern_name})"
        super().__init__(message)


class SkipRuleError(PolicyRejection):
    """The document URL matches the user's skip rule."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"URL matches skip rules: {url}")


class ExtractionError(DocumentError):
    """No extractor could produce a non-empty title and text."""


class QuerySyntaxError(HisterError):
    """Raised when query text contains an unclosed quote or parenthesis."""

    def __init__(self, message: str, position: int) -> None:
        self.position = position
        super().__init__(f"{message} at position {position}")


class RuleCompileError(HisterError):
    """A rule or sensitive content pattern is not a valid regular expression."""


class StorageError(HisterError):
    """The index backend failed to read or write."""


class ReindexError(StorageError):
    """Reindex aborted; the source index was left untouched."""
