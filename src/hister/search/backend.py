"""Narrow interface between the index façade and an inverted index engine.

Anything that can store documents by key, evaluate a ``SearchQuery`` tree
and page through its corpus can back the façade. ``SqliteIndex`` in
``hister.search.storage`` is the bundled implementation.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from hister.search.query import SearchQuery
from hister.search.scoring import FieldModifier
from hister.search.snippet import HighlightStyle


@dataclass(frozen=True)
class SearchRequest:
    """Paging, sorting, highlighting and re-scoring options for one search.

    ``sort`` is empty for score order, otherwise a stored field name with an
    optional ``-`` prefix for descending order. ``modifier`` runs once per
    field listed in ``score_fields`` for every candidate, before paging.
    """

    limit: int = 10
    offset: int = 0
    sort: str = ""
    highlight: HighlightStyle | None = None
    highlight_fields: tuple[str, ...] = ("title", "text")
    fragment_size: int = 300
    score_fields: tuple[str, ...] = ()
    modifier: FieldModifier | None = None
    user_boost: float = 1.0


@dataclass(frozen=True)
class SearchHit:
    id: str
    score: float
    fields: Mapping[str, Any]
    fragments: Mapping[str, str] = field(default_factory=dict)
    matched_fields: frozenset[str] = frozenset()


@dataclass(frozen=True)
class SearchHits:
    total: int
    hits: tuple[SearchHit, ...] = ()


class IndexBackend(Protocol):
    """Operations the index façade needs from a storage engine."""

    path: Path

    def open(self) -> None: ...

    def close(self) -> None: ...

    def add(self, doc_id: str, fields: Mapping[str, Any]) -> None:
        """Insert or replace the document stored under ``doc_id``."""
        ...

    def delete(self, doc_id: str) -> None:
        """Remove ``doc_id``; missing keys are ignored."""
        ...

    def search(self, query: SearchQuery, request: SearchRequest) -> SearchHits: ...

    def page(self, offset: int, size: int) -> list[dict[str, Any]]:
        """Return stored fields of up to ``size`` documents in match-all order."""
        ...

    def count(self) -> int: ...
