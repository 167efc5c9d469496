"""Compile query language tokens into a field-weighted backend query."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging
import time
from types import MappingProxyType

from hister.errors import QuerySyntaxError
from hister.querylang import Token, TokenKind, tokenize
from hister.search.query import (
    BooleanQuery,
    ConjunctionQuery,
    DisjunctionQuery,
    MatchNoneQuery,
    MatchQuery,
    NumericRangeQuery,
    PhraseQuery,
    QueryStringQuery,
    SearchQuery,
    TermQuery,
    WildcardQuery,
)


logger = logging.getLogger(__name__)

FIELD_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "text": 1.0,
        "url": 4.0,
        "domain": 8.0,
        "title": 12.0,
    }
)

_KEYWORD_FIELDS = frozenset({"url", "domain"})
_CONTENT_FIELDS = ("title", "text")
_LOCATION_FIELDS = ("url", "domain")


class QueryBuilder:
    """Turns query text into a ``BooleanQuery`` of weighted clusters.

    Each token contributes one clause. Included clauses are ANDed, negated
    clauses are ORed and subtracted. ``fields`` restricts which fields the
    clauses may target; unknown names are ignored.
    """

    def __init__(
        self,
        weights: Mapping[str, float] = FIELD_WEIGHTS,
        fields: Iterable[str] | None = None,
    ) -> None:
        self.weights = weights
        allowed = set(weights)
        if fields:
            restricted = allowed.intersection(fields)
            if restricted:
                allowed = restricted
        self.allowed = frozenset(allowed)

    def build(self, text: str) -> SearchQuery:
        if not text.strip():
            return MatchNoneQuery()
        try:
            tokens = tokenize(text)
        except QuerySyntaxError as exc:
            logger.debug("Falling back to query string for %r: %s", text, exc)
            return QueryStringQuery(text)

        included: list[SearchQuery] = []
        excluded: list[SearchQuery] = []
        for token in tokens:
            clause, negated = self._token_query(token)
            if clause is None:
                continue
            if negated:
                excluded.append(clause)
            else:
                included.append(clause)
        return BooleanQuery(must=tuple(included), must_not=tuple(excluded))

    def _token_query(self, token: Token) -> tuple[SearchQuery | None, bool]:
        if token.kind is TokenKind.QUOTED:
            phrases = [
                PhraseQuery(field, token.value, boost=self.weights[field])
                for field in _CONTENT_FIELDS
                if field in self.allowed
            ]
            return _any_of(phrases), False
        if token.kind is TokenKind.ALTERNATION:
            options = [self._token_query(part)[0] for part in token.parts]
            return _any_of([q for q in options if q is not None]), False
        return self._word_query(token.value)

    def _word_query(self, value: str) -> tuple[SearchQuery | None, bool]:
        field = self._field_prefix(value)
        if field is not None:
            return self._field_query(field, value[len(field) + 1 :])

        negated = value.startswith("-")
        if negated:
            value = value[1:]
        if not value:
            return None, False

        clauses: list[SearchQuery] = []
        has_wildcard = "*" in value
        for content_field in _CONTENT_FIELDS:
            if content_field not in self.allowed:
                continue
            boost = self.weights[content_field]
            if has_wildcard:
                clauses.append(WildcardQuery(content_field, value.lower(), boost=boost))
            else:
                clauses.append(MatchQuery(content_field, value, boost=boost))

        pattern = value.lower() if has_wildcard else f"*{value.lower()}*"
        clauses.extend(
            WildcardQuery(location_field, pattern, boost=self.weights[location_field])
            for location_field in _LOCATION_FIELDS
            if location_field in self.allowed
        )
        return _any_of(clauses), negated

    def _field_query(self, field: str, value: str) -> tuple[SearchQuery | None, bool]:
        negated = value.startswith("-")
        if negated:
            value = value[1:]
        if field not in self.allowed:
            return MatchNoneQuery(), negated
        boost = self.weights[field]
        if "*" in value:
            return WildcardQuery(field, value.lower(), boost=boost), negated
        if field in _KEYWORD_FIELDS:
            return TermQuery(field, value.lower(), boost=boost), negated
        return MatchQuery(field, value, boost=boost), negated

    def _field_prefix(self, value: str) -> str | None:
        for field in self.weights:
            if value.startswith(field + ":"):
                return field
        return None


def _any_of(clauses: list[SearchQuery]) -> SearchQuery:
    if not clauses:
        return MatchNoneQuery()
    return DisjunctionQuery(tuple(clauses))


def date_range(date_from: int | None, date_to: int | None, *, now: int | None = None) -> NumericRangeQuery | None:
    """Return the ``added`` range filter, or None when no bound is given.

    A lone ``date_from`` is closed at the current time.
    """
    if date_from is None and date_to is None:
        return None
    if date_from is not None and date_to is None:
        date_to = now if now is not None else int(time.time())
    return NumericRangeQuery("added", minimum=date_from, maximum=date_to)


def compile_query(
    text: str,
    *,
    fields: Iterable[str] | None = None,
    date_from: int | None = None,
    date_to: int | None = None,
    now: int | None = None,
) -> SearchQuery:
    """Compile query text, optionally ANDed with a date range on ``added``."""
    query = QueryBuilder(fields=fields).build(text)
    window = date_range(date_from, date_to, now=now)
    if window is None or isinstance(query, MatchNoneQuery):
        return query
    return ConjunctionQuery((query, window))
