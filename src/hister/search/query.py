"""Backend query tree.

Queries are frozen dataclasses so two compilations of the same text compare
equal, and so a compiled query can be shared between threads. The executor in
``hister.search.executor`` evaluates them against a ``SqliteIndex``.
"""

from __future__ import annotations

from dataclasses import dataclass


class SearchQuery:
    """Marker base class for every node of the query tree."""

    boost: float = 1.0


@dataclass(frozen=True)
class MatchAllQuery(SearchQuery):
    boost: float = 1.0


@dataclass(frozen=True)
class MatchNoneQuery(SearchQuery):
    boost: float = 1.0


@dataclass(frozen=True)
class TermQuery(SearchQuery):
    """Exact term on a field, compared against the indexed (analyzed) terms."""

    field: str
    term: str
    boost: float = 1.0


@dataclass(frozen=True)
class MatchQuery(SearchQuery):
    """Analyze ``text`` with the field analyzer and OR the resulting terms."""

    field: str
    text: str
    boost: float = 1.0


@dataclass(frozen=True)
class PhraseQuery(SearchQuery):
    """Analyzed terms of ``text`` must appear at consecutive positions."""

    field: str
    text: str
    boost: float = 1.0


@dataclass(frozen=True)
class WildcardQuery(SearchQuery):
    """``*`` matches any run of characters and ``?`` exactly one."""

    field: str
    pattern: str
    boost: float = 1.0


@dataclass(frozen=True)
class NumericRangeQuery(SearchQuery):
    """Inclusive range filter over a numeric field. ``None`` leaves a side open."""

    field: str
    minimum: int | None = None
    maximum: int | None = None
    boost: float = 1.0


@dataclass(frozen=True)
class DisjunctionQuery(SearchQuery):
    queries: tuple[SearchQuery, ...]
    boost: float = 1.0


@dataclass(frozen=True)
class ConjunctionQuery(SearchQuery):
    queries: tuple[SearchQuery, ...]
    boost: float = 1.0


@dataclass(frozen=True)
class BooleanQuery(SearchQuery):
    """``AND(must) AND NOT OR(must_not)``.

    With no ``must`` clauses and at least one ``must_not`` clause the query
    matches every document except the excluded ones.
    """

    must: tuple[SearchQuery, ...] = ()
    must_not: tuple[SearchQuery, ...] = ()
    boost: float = 1.0


@dataclass(frozen=True)
class QueryStringQuery(SearchQuery):
    """Free text handed to the backend's lenient parser."""

    text: str
    boost: float = 1.0
