"""Pydantic records exchanged with callers (web handlers, CLI, TUI).

``Document``, ``Query`` and ``Results`` serialize to plain JSON so they can
cross a process boundary unchanged. Processing flags and the compiled query
live in private attributes and never leave the process.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr


class Highlight(str, Enum):
    """Fragment formatting requested by the caller. Never affects matching."""

    NONE = ""
    HTML = "HTML"
    TEXT = "text"
    TUI = "tui"


class Document(BaseModel):
    """One indexed page, keyed by its canonical URL."""

    url: str = ""
    domain: str = ""
    html: str = ""
    title: str = ""
    text: str = ""
    favicon: str = ""
    score: float = 0.0
    added: int = 0

    _processed: bool = PrivateAttr(default=False)
    _skip_sensitive_check: bool = PrivateAttr(default=False)
    _favicon_url: str = PrivateAttr(default="")

    @property
    def processed(self) -> bool:
        return self._processed

    @property
    def favicon_url(self) -> str:
        """Icon href discovered while extracting, resolved against ``url``."""
        return self._favicon_url

    def set_favicon_url(self, url: str) -> None:
        self._favicon_url = url

    def mark_processed(self) -> None:
        self._processed = True

    def skip_sensitive_check(self, skip: bool = True) -> None:
        """Let ``process`` bypass the sensitive content screen (reindex only)."""
        self._skip_sensitive_check = skip

    @property
    def sensitive_check_skipped(self) -> bool:
        return self._skip_sensitive_check

    def to_index_fields(self) -> dict[str, Any]:
        """Fields written to the index backend; ``score`` is transient."""
        return self.model_dump(exclude={"score"})

    @classmethod
    def from_index_fields(cls, fields: dict[str, Any]) -> Document:
        known = {key: fields[key] for key in cls.model_fields if key in fields and fields[key] is not None}
        return cls(**known)


class HistoryEntry(BaseModel):
    """A recently opened result merged in from the external history store."""

    url: str
    title: str = ""
    count: int = 0


class Query(BaseModel):
    """One search request in the custom query language."""

    text: str = ""
    highlight: Highlight = Highlight.NONE
    fields: list[str] | None = None
    limit: int = Field(default=10, ge=0)
    sort: str = ""
    date_from: int | None = None
    date_to: int | None = None
    boost: float = Field(default=1.0, gt=0)

    _compiled: Any = PrivateAttr(default=None)

    @property
    def compiled(self) -> Any:
        """Backend query built for this request, set by the indexer."""
        return self._compiled

    def set_compiled(self, compiled: Any) -> None:
        self._compiled = compiled


class Results(BaseModel):
    """Ordered search hits plus request metadata."""

    total: int = 0
    query: Query | None = None
    documents: list[Document] = Field(default_factory=list)
    history: list[HistoryEntry] = Field(default_factory=list)
    search_duration: str = ""
    query_suggestion: str = ""

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize for the wire, omitting raw HTML from the hits."""
        return self.model_dump(mode="json", exclude={"documents": {"__all__": {"html", "domain"}}})
