"""Search orchestration on top of the index façade.

Resolves query aliases, merges entries from the recent-history store and
attaches a query suggestion. Submissions go through the skip rule and the
own-URL guard before reaching the index.
"""

from __future__ import annotations

import logging
import time
from typing import Protocol

from hister.config import Settings
from hister.docpipeline.favicon import FaviconResolver
from hister.errors import HisterError, SkipRuleError
from hister.indexer import Indexer
from hister.models import Document, HistoryEntry, Query, Results
from hister.rules import RulesStore


logger = logging.getLogger(__name__)


class HistoryProvider(Protocol):
    """Recently opened results, keyed by the query that led to them."""

    def recent(self, query: str) -> list[HistoryEntry]: ...

    def suggest(self, query: str) -> str: ...


def format_duration(seconds: float) -> str:
    if seconds < 1e-3:
        return f"{seconds * 1e6:.0f}µs"
    if seconds < 1:
        return f"{seconds * 1e3:.3f}ms"
    return f"{seconds:.3f}s"


class SearchService:
    def __init__(
        self,
        indexer: Indexer,
        rules_store: RulesStore,
        history: HistoryProvider | None = None,
        *,
        settings: Settings | None = None,
        favicons: FaviconResolver | None = None,
    ) -> None:
        self.indexer = indexer
        self.rules_store = rules_store
        self.history = history
        self.settings = settings or indexer.settings
        self.favicons = favicons or FaviconResolver(timeout=self.settings.favicon_timeout)

    def search(self, query: Query) -> Results:
        """Run ``query`` and decorate the results.

        Backend failures are logged and produce empty results; the history
        and suggestion lookups still run against the text the user typed.
        """
        start = time.perf_counter()
        original_text = query.text
        query.text = self.rules_store.current.resolve_aliases(query.text)

        try:
            results = self.indexer.search(query)
        except HisterError as exc:
            logger.error("Failed to get indexer results for %r: %s", original_text, exc)
            results = Results(query=query)

        if self.history is not None and original_text:
            try:
                recent = self.history.recent(original_text)
                if recent:
                    results.history = recent
                results.query_suggestion = self.history.suggest(original_text)
            except HisterError as exc:
                logger.warning("History lookup failed for %r: %s", original_text, exc)

        results.search_duration = format_duration(time.perf_counter() - start)
        return results

    def should_index(self, url: str) -> bool:
        """False for URLs matching the skip rule or served by hister itself."""
        if self.settings.is_own_url(url):
            return False
        return not self.rules_store.current.is_skip(url)

    async def add(self, doc: Document) -> None:
        """Screen, process, embed the favicon and index ``doc``.

        Raises:
            SkipRuleError: the URL is excluded by the rules or is our own page.
            HisterError: processing or storage failed.
        """
        if not self.should_index(doc.url):
            logger.debug("Skip indexing %s", doc.url)
            raise SkipRuleError(doc.url)
        self.indexer.processor.process(doc)
        await self.favicons.resolve(doc)
        self.indexer.add(doc)
