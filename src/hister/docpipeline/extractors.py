"""HTML text/title extraction strategies.

A strategy answers ``match(doc)`` and then ``extract(doc)``. The processor
tries its strategies in order and keeps the first successful result; a
failing strategy is logged and the next one is tried.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import logging
from typing import Protocol

from article_extractor import ExtractionOptions, extract_article
from bs4 import BeautifulSoup

from hister.docpipeline.urls import full_url
from hister.errors import ExtractionError
from hister.models import Document


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Extraction:
    title: str
    text: str
    icon_url: str = ""


class Extractor(Protocol):
    name: str

    def match(self, doc: Document) -> bool: ...

    def extract(self, doc: Document) -> Extraction: ...


_SKIPPED_TAGS = ["script", "style", "noscript"]


def _icon_href(soup: BeautifulSoup) -> str:
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "icon" in (value.lower() for value in rel):
            href = link["href"]
            if isinstance(href, list):
                href = href[0] if href else ""
            return href.strip()
    return ""


class DefaultExtractor:
    """Baseline extractor: ``<title>`` text plus all visible body text."""

    name = "default"

    def match(self, doc: Document) -> bool:
        return True

    def extract(self, doc: Document) -> Extraction:
        soup = BeautifulSoup(doc.html, "html.parser")
        for tag in soup.find_all(_SKIPPED_TAGS):
            tag.decompose()

        title = "".join(s.strip() for s in soup.title.strings) if soup.title else ""
        text = soup.body.get_text().strip() if soup.body else ""
        if not text:
            raise ExtractionError("no text found")
        if not title:
            raise ExtractionError("no title found")
        icon_href = _icon_href(soup)
        icon_url = full_url(doc.url, icon_href) if icon_href else ""
        return Extraction(title=title, text=text, icon_url=icon_url)


class ReadabilityExtractor:
    """Readability-style main content extraction via article-extractor."""

    name = "readability"

    def __init__(self, *, min_word_count: int = 50) -> None:
        self._options = ExtractionOptions(
            min_word_count=min_word_count,
            include_images=False,
            include_code_blocks=True,
            safe_markdown=True,
        )

    def match(self, doc: Document) -> bool:
        return bool(doc.html.strip())

    def extract(self, doc: Document) -> Extraction:
        try:
            result = extract_article(doc.html, doc.url, self._options)
        except Exception as exc:
            raise ExtractionError(f"readability extraction failed: {exc}") from exc
        if not result.success:
            raise ExtractionError(f"readability extraction failed: {result.error}")
        text = (result.markdown or "").strip()
        title = (result.title or "").strip()
        if not text:
            raise ExtractionError("no text found")
        if not title:
            raise ExtractionError("no title found")
        return Extraction(title=title, text=text)


def extract_content(extractors: Sequence[Extractor], doc: Document) -> Extraction:
    """Run ``extractors`` in order and return the first successful result.

    Raises:
        ExtractionError: when every matching strategy failed.
    """
    failures: list[str] = []
    for extractor in extractors:
        if not extractor.match(doc):
            continue
        try:
            return extractor.extract(doc)
        except Exception as exc:
            logger.warning("Extractor %s failed for %s: %s", extractor.name, doc.url, exc)
            failures.append(f"{extractor.name}: {exc}")
    detail = f" ({'; '.join(failures)})" if failures else ""
    raise ExtractionError(f"no extractor found{detail}")
