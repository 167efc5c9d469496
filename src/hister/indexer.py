"""Index façade: add, delete, search, lookup and iteration over one open index.

The façade owns no locking of its own. Concurrent calls rely on the
backend's single-writer/multi-reader guarantee.
"""

from __future__ import annotations

from collections.abc import Callable
import logging
from typing import Any

from hister.config import Settings
from hister.docpipeline.processor import DocumentProcessor
from hister.errors import HisterError
from hister.models import Document, Highlight, Query, Results
from hister.observability.metrics import DOCUMENTS, ERROR_COUNT, INDEX_DOC_COUNT, OPERATION_LATENCY, track_latency
from hister.observability.tracing import create_span
from hister.querybuilder import FIELD_WEIGHTS, compile_query
from hister.rules import Rules
from hister.search.backend import IndexBackend, SearchHit, SearchRequest
from hister.search.query import TermQuery
from hister.search.scoring import FieldScorer
from hister.search.snippet import HighlightStyle, plain_snippet
from hister.search.storage import SqliteIndex


logger = logging.getLogger(__name__)

RulesProvider = Callable[[], Rules]

_HIGHLIGHT_STYLES: dict[Highlight, HighlightStyle | None] = {
    Highlight.NONE: None,
    Highlight.HTML: HighlightStyle.HTML,
    Highlight.TEXT: HighlightStyle.ANSI,
    Highlight.TUI: HighlightStyle.TUI,
}


def _no_rules() -> Rules:
    return Rules()


class Indexer:
    """Thin layer between callers and an ``IndexBackend``.

    ``rules`` is called on every search so rule edits take effect without
    reopening the index.
    """

    def __init__(
        self,
        backend: IndexBackend,
        processor: DocumentProcessor | None = None,
        rules: RulesProvider | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.backend = backend
        self.settings = settings or Settings()
        self.processor = processor or DocumentProcessor.from_settings(self.settings)
        self._rules = rules or _no_rules

    def __enter__(self) -> Indexer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def add(self, doc: Document) -> None:
        """Process ``doc`` unless already processed, then upsert it by URL."""
        with (
            create_span("index.add", attributes={"document.url": doc.url}),
            track_latency(OPERATION_LATENCY, operation="add"),
        ):
            try:
                self.processor.process(doc)
            except HisterError as exc:
                DOCUMENTS.labels(operation="add", outcome="rejected").inc()
                logger.debug("Rejected %s: %s", doc.url, exc)
                raise
            try:
                self.backend.add(doc.url, doc.to_index_fields())
            except HisterError as exc:
                ERROR_COUNT.labels(error_type=type(exc).__name__, component="indexer").inc()
                raise
            DOCUMENTS.labels(operation="add", outcome="indexed").inc()

    def delete(self, url: str) -> None:
        self.backend.delete(url)

    def search(self, query: Query) -> Results:
        """Compile and run ``query``; hits come back re-scored and hydrated."""
        with (
            create_span("index.search", attributes={"query.text_length": len(query.text)}),
            track_latency(OPERATION_LATENCY, operation="search"),
        ):
            compiled = compile_query(
                query.text,
                fields=query.fields,
                date_from=query.date_from,
                date_to=query.date_to,
            )
            query.set_compiled(compiled)
            rules = self._rules()
            request = SearchRequest(
                limit=query.limit or self.settings.search_limit,
                sort=query.sort,
                highlight=_HIGHLIGHT_STYLES[query.highlight],
                fragment_size=self.settings.snippet_length,
                score_fields=tuple(FIELD_WEIGHTS),
                modifier=FieldScorer(
                    rules.priority,
                    title_factor=self.settings.title_match_boost,
                    priority_factor=self.settings.priority_boost,
                ),
                user_boost=query.boost,
            )
            hits = self.backend.search(compiled, request)
            documents = [self._hydrate(hit) for hit in hits.hits]
            return Results(total=hits.total, query=query, documents=documents)

    def _hydrate(self, hit: SearchHit) -> Document:
        fields = hit.fields
        title = hit.fragments.get("title") or fields.get("title") or ""
        text = hit.fragments.get("text") or plain_snippet(fields.get("text") or "", self.settings.snippet_length)
        return Document(
            url=fields.get("url") or hit.id,
            title=title,
            text=text,
            favicon=fields.get("favicon") or "",
            added=int(fields.get("added") or 0),
            score=hit.score,
        )

    def get_by_url(self, url: str) -> Document | None:
        """Exact, case-insensitive lookup of a stored document."""
        hits = self.backend.search(TermQuery("url", url.lower()), SearchRequest(limit=1))
        if not hits.hits:
            return None
        return Document.from_index_fields(dict(hits.hits[0].fields))

    def iterate(self, visitor: Callable[[Document], Any]) -> None:
        """Call ``visitor`` once per stored document, a page at a time."""
        size = self.settings.iterate_page_size
        offset = 0
        while True:
            page = self.backend.page(offset, size)
            if not page:
                break
            for fields in page:
                visitor(Document.from_index_fields(fields))
            offset += len(page)

    def count(self) -> int:
        total = self.backend.count()
        INDEX_DOC_COUNT.labels(index=self.backend.path.name).set(total)
        return total

    def close(self) -> None:
        self.backend.close()


def open_index(settings: Settings, rules: RulesProvider | None = None) -> Indexer:
    """Open (creating if needed) the index under ``settings.index_path``."""
    settings.ensure_data_dir()
    backend = SqliteIndex(settings.index_path)
    backend.open()
    logger.info("Opened index %s", settings.index_path)
    return Indexer(backend, DocumentProcessor.from_settings(settings), rules, settings)
