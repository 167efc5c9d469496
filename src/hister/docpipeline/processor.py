"""Turn a submitted (URL, HTML) pair into an indexable ``Document``."""

from __future__ import annotations

from collections.abc import Callable, Sequence
import html
import logging
import time

from hister.config import Settings
from hister.docpipeline.extractors import DefaultExtractor, Extractor, ReadabilityExtractor, extract_content
from hister.docpipeline.sensitive import SensitiveContentMatcher
from hister.docpipeline.urls import canonicalize_url
from hister.errors import SensitiveContentError
from hister.models import Document


logger = logging.getLogger(__name__)


class DocumentProcessor:
    """Normalizes documents before they are written to the index.

    The extractor list and the sensitive matcher are fixed at construction;
    build a new processor to change them.
    """

    def __init__(
        self,
        sensitive: SensitiveContentMatcher | None = None,
        extractors: Sequence[Extractor] | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.sensitive = sensitive if sensitive is not None else SensitiveContentMatcher()
        self.extractors: tuple[Extractor, ...] = tuple(extractors) if extractors else (DefaultExtractor(),)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> DocumentProcessor:
        extractors: list[Extractor] = []
        if settings.use_readability:
            extractors.append(ReadabilityExtractor())
        extractors.append(DefaultExtractor())
        return cls(SensitiveContentMatcher(settings.sensitive_content_patterns), extractors)

    def process(self, doc: Document) -> Document:
        """Validate and normalize ``doc`` in place. A processed document is left as is.

        Raises:
            SensitiveContentError: the HTML matches a sensitive pattern.
            DocumentError: the URL is missing or not absolute.
            ExtractionError: no title or text could be extracted.
        """
        if doc.processed:
            return doc

        if not doc.sensitive_check_skipped:
            pattern_name = self.sensitive.find(doc.html)
            if pattern_name is not None:
                logger.info("Rejecting %s: matches sensitive pattern %s", doc.url, pattern_name)
                raise SensitiveContentError(pattern_name)

        url, host = canonicalize_url(doc.url)
        if url != doc.url:
            logger.debug("Canonicalized %s -> %s", doc.url, url)
            doc.url = url
        if not doc.added:
            doc.added = int(self._clock())
        doc.domain = host

        if not doc.text or not doc.title:
            extraction = extract_content(self.extractors, doc)
            if not doc.title:
                doc.title = html.escape(extraction.title)
            if not doc.text:
                doc.text = extraction.text
            if extraction.icon_url:
                doc.set_favicon_url(extraction.icon_url)

        doc.mark_processed()
        return doc
