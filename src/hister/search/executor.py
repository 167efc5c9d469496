"""Evaluate a ``SearchQuery`` tree against one index snapshot.

Every node produces a map ``doc_id -> _Match`` holding the BM25 score, the
fields that matched and the matched terms per field (for highlighting).
Boolean nodes combine those maps. After evaluation the optional field
modifier re-weights each candidate, then candidates are sorted and paged.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any

from hister.search.backend import SearchHit, SearchHits, SearchRequest
from hister.search.query import (
    BooleanQuery,
    ConjunctionQuery,
    DisjunctionQuery,
    MatchAllQuery,
    MatchNoneQuery,
    MatchQuery,
    NumericRangeQuery,
    PhraseQuery,
    QueryStringQuery,
    SearchQuery,
    TermQuery,
    WildcardQuery,
)
from hister.search.schema import FieldType
from hister.search.scoring import rescore
from hister.search.snippet import build_fragment
from hister.search.stats import bm25, calculate_idf


if TYPE_CHECKING:
    from hister.search.storage import IndexReader


logger = logging.getLogger(__name__)

MAX_WILDCARD_TERMS = 1024
_DOC_VALUE_PREFIX = 512
_LENIENT_STRIP = str.maketrans({ch: " " for ch in '"()|+'})


@dataclass
class _Match:
    score: float = 0.0
    fields: set[str] = field(default_factory=set)
    terms: dict[str, set[str]] = field(default_factory=dict)

    def absorb(self, other: _Match) -> None:
        self.score += other.score
        self.fields |= other.fields
        for field_name, terms in other.terms.items():
            self.terms.setdefault(field_name, set()).update(terms)


Matches = dict[int, _Match]


def wildcard_to_glob(pattern: str) -> str:
    """Translate ``*``/``?`` wildcards to a SQLite GLOB with ``[`` escaped."""
    return pattern.replace("[", "[[]")


def lenient_query(text: str, indexed_fields: set[str]) -> SearchQuery:
    """Best-effort reading of query text that failed to tokenize.

    Quotes, parentheses, ``|`` and ``+`` are dropped. ``-word`` excludes,
    ``field:value`` targets one field, any other word matches title or text.
    """
    should: list[SearchQuery] = []
    must_not: list[SearchQuery] = []
    for raw in text.translate(_LENIENT_STRIP).split():
        negated = raw.startswith("-")
        word = raw[1:] if negated else raw
        if not word:
            continue
        name, sep, value = word.partition(":")
        if sep and name in indexed_fields and value:
            clause: SearchQuery = MatchQuery(name, value)
        else:
            clause = DisjunctionQuery((MatchQuery("title", word), MatchQuery("text", word)))
        (must_not if negated else should).append(clause)
    must = (DisjunctionQuery(tuple(should)),) if should else ()
    return BooleanQuery(must=must, must_not=tuple(must_not))


class QueryExecutor:
    """Runs queries for one ``IndexReader``; not shared between threads."""

    def __init__(self, reader: IndexReader) -> None:
        self.reader = reader
        self.schema = reader.schema
        self._indexed = {f.name for f in self.schema.indexed_fields}
        self._handlers: dict[type, Callable[[Any], Matches]] = {
            MatchAllQuery: self._match_all,
            MatchNoneQuery: lambda _query: {},
            TermQuery: self._term,
            MatchQuery: self._match,
            PhraseQuery: self._phrase,
            WildcardQuery: self._wildcard,
            NumericRangeQuery: self._numeric_range,
            DisjunctionQuery: self._disjunction,
            ConjunctionQuery: self._conjunction,
            BooleanQuery: self._boolean,
            QueryStringQuery: self._query_string,
        }

    def evaluate(self, query: SearchQuery) -> Matches:
        handler = self._handlers.get(type(query))
        if handler is None:
            raise TypeError(f"Unsupported query type: {type(query).__name__}")
        return handler(query)

    # Leaf queries

    def _match_all(self, query: MatchAllQuery) -> Matches:
        return {doc_id: _Match(score=query.boost) for doc_id in self.reader.all_doc_ids()}

    def _term_matches(self, field_name: str, term: str, boost: float) -> Matches:
        if field_name not in self._indexed or not term:
            return {}
        postings = self.reader.postings(field_name, term)
        if not postings:
            return {}
        idf = calculate_idf(len(postings), self.reader.doc_count())
        avg_length = self.reader.field_stats(field_name).average_length
        return {
            p.doc_id: _Match(
                score=idf * bm25(p.tf, p.doc_length, avg_length) * boost,
                fields={field_name},
                terms={field_name: {term}},
            )
            for p in postings
        }

    def _term(self, query: TermQuery) -> Matches:
        return self._term_matches(query.field, query.term, query.boost)

    def _analyze(self, field_name: str, text: str):
        if field_name not in self._indexed:
            return []
        return self.schema.analyzer(field_name)(text)

    def _match(self, query: MatchQuery) -> Matches:
        terms = dict.fromkeys(token.text for token in self._analyze(query.field, query.text))
        return _union(self._term_matches(query.field, term, query.boost) for term in terms)

    def _phrase(self, query: PhraseQuery) -> Matches:
        tokens = self._analyze(query.field, query.text)
        if not tokens:
            return {}
        if len(tokens) == 1:
            return self._term_matches(query.field, tokens[0].text, query.boost)

        per_term: dict[str, dict[int, set[int]]] = {}
        for token in tokens:
            if token.text in per_term:
                continue
            postings = self.reader.postings(query.field, token.text, include_positions=True)
            if not postings:
                return {}
            per_term[token.text] = {p.doc_id: set(p.positions) for p in postings}

        candidates = set.intersection(*(set(docs) for docs in per_term.values()))
        offsets = [(token.text, token.position - tokens[0].position) for token in tokens]
        phrase_docs = [
            doc_id
            for doc_id in candidates
            if any(
                all(start + offset in per_term[term][doc_id] for term, offset in offsets)
                for start in per_term[tokens[0].text][doc_id]
            )
        ]
        if not phrase_docs:
            return {}
        scored = _union(self._term_matches(query.field, term, query.boost) for term in per_term)
        return {doc_id: scored[doc_id] for doc_id in phrase_docs}

    def _wildcard(self, query: WildcardQuery) -> Matches:
        if query.field not in self._indexed or not query.pattern:
            return {}
        terms = self.reader.expand_terms(query.field, wildcard_to_glob(query.pattern), limit=MAX_WILDCARD_TERMS)
        if len(terms) >= MAX_WILDCARD_TERMS:
            logger.warning("Wildcard %r on %s expanded to too many terms, truncated", query.pattern, query.field)
        return _union(self._term_matches(query.field, term, query.boost) for term in terms)

    def _numeric_range(self, query: NumericRangeQuery) -> Matches:
        return {
            doc_id: _Match() for doc_id in self.reader.range_doc_ids(query.field, query.minimum, query.maximum)
        }

    # Compound queries

    def _disjunction(self, query: DisjunctionQuery) -> Matches:
        if not query.queries:
            return {}
        results = [self.evaluate(child) for child in query.queries]
        combined: Matches = {}
        hits: dict[int, int] = {}
        for result in results:
            for doc_id, match in result.items():
                combined.setdefault(doc_id, _Match()).absorb(match)
                hits[doc_id] = hits.get(doc_id, 0) + 1
        total = len(query.queries)
        for doc_id, match in combined.items():
            match.score *= query.boost * hits[doc_id] / total
        return combined

    def _conjunction(self, query: ConjunctionQuery) -> Matches:
        return self._all_of(query.queries, query.boost)

    def _all_of(self, queries: tuple[SearchQuery, ...], boost: float) -> Matches:
        if not queries:
            return {}
        combined: Matches | None = None
        for child in queries:
            result = self.evaluate(child)
            if combined is None:
                combined = {doc_id: _copy(match) for doc_id, match in result.items()}
            else:
                combined = {doc_id: match for doc_id, match in combined.items() if doc_id in result}
                for doc_id, match in combined.items():
                    match.absorb(result[doc_id])
            if not combined:
                return {}
        for match in combined.values():
            match.score *= boost
        return combined

    def _boolean(self, query: BooleanQuery) -> Matches:
        if query.must:
            included = self._all_of(query.must, query.boost)
        elif query.must_not:
            included = self._match_all(MatchAllQuery(boost=query.boost))
        else:
            return {}
        if not included:
            return {}
        for excluded_query in query.must_not:
            for doc_id in self.evaluate(excluded_query):
                included.pop(doc_id, None)
        return included

    def _query_string(self, query: QueryStringQuery) -> Matches:
        return self.evaluate(lenient_query(query.text, self._indexed))

    # Ranking

    def _doc_values(self, stored: dict[str, Any], fields: tuple[str, ...]) -> dict[str, str]:
        values: dict[str, str] = {}
        for field_name in dict.fromkeys(fields):
            if field_name not in self._indexed:
                continue
            value = stored.get(field_name)
            if value in (None, ""):
                continue
            raw = str(value)
            if self.schema[field_name].field_type is not FieldType.KEYWORD:
                raw = raw[:_DOC_VALUE_PREFIX]
            tokens = self.schema.analyzer(field_name)(raw)
            if tokens:
                values[field_name] = tokens[0].text
        return values

    def run(self, query: SearchQuery, request: SearchRequest) -> SearchHits:
        matches = self.evaluate(query)
        if not matches:
            return SearchHits(total=0)

        needs_stored = request.modifier is not None or bool(request.sort)
        stored = self.reader.stored_fields(list(matches)) if needs_stored else {}

        if request.modifier is not None:
            for doc_id, match in matches.items():
                doc_values = self._doc_values(stored.get(doc_id, {}), request.score_fields)
                match.score = rescore(
                    match.score,
                    doc_values,
                    match.fields,
                    request.modifier,
                    user_boost=request.user_boost,
                )
        elif request.user_boost != 1.0:
            for match in matches.values():
                match.score *= request.user_boost

        ordered = _order(matches, stored, request.sort)
        window = ordered[request.offset : request.offset + request.limit]
        if not stored:
            stored = self.reader.stored_fields(window)
        else:
            stored = {doc_id: stored[doc_id] for doc_id in window if doc_id in stored}

        hits = []
        for doc_id in window:
            match = matches[doc_id]
            fields = stored.get(doc_id, {})
            fragments: dict[str, str] = {}
            if request.highlight is not None:
                for field_name in request.highlight_fields:
                    terms = match.terms.get(field_name)
                    value = fields.get(field_name)
                    if terms and value:
                        fragments[field_name] = build_fragment(
                            str(value), sorted(terms), request.highlight, request.fragment_size
                        )
            hits.append(
                SearchHit(
                    id=fields.get(self.schema.unique_field, ""),
                    score=match.score,
                    fields=fields,
                    fragments=fragments,
                    matched_fields=frozenset(match.fields),
                )
            )
        return SearchHits(total=len(matches), hits=tuple(hits))


def _copy(match: _Match) -> _Match:
    copied = _Match(score=match.score, fields=set(match.fields))
    copied.terms = {name: set(terms) for name, terms in match.terms.items()}
    return copied


def _union(results) -> Matches:
    combined: Matches = {}
    for result in results:
        for doc_id, match in result.items():
            combined.setdefault(doc_id, _Match()).absorb(match)
    return combined


def _order(matches: Matches, stored: dict[int, dict[str, Any]], sort: str) -> list[int]:
    by_score = sorted(matches, key=lambda doc_id: (-matches[doc_id].score, doc_id))
    if not sort:
        return by_score
    descending = sort.startswith("-")
    field_name = sort.lstrip("-")
    present = [doc_id for doc_id in by_score if stored.get(doc_id, {}).get(field_name) is not None]
    missing = [doc_id for doc_id in by_score if stored.get(doc_id, {}).get(field_name) is None]
    present.sort(key=lambda doc_id: _sort_key(stored[doc_id][field_name]), reverse=descending)
    return present + missing


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value).lower())
