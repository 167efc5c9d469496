"""Tests for search orchestration."""

from unittest.mock import patch

import httpx
import pytest

from hister.docpipeline.favicon import FaviconResolver
from hister.errors import SkipRuleError, StorageError
from hister.models import HistoryEntry, Query
from hister.rules import Rules
from hister.search_service import SearchService, format_duration


class FakeHistory:
    def __init__(self):
        self.queries = []

    def recent(self, query):
        self.queries.append(query)
        return [HistoryEntry(url="https://opened.example/", title="Opened", count=3)]

    def suggest(self, query):
        return query + " tutorial"


def _favicons(status=200):
    transport = httpx.MockTransport(
        lambda request: httpx.Response(status, content=b"ico", headers={"Content-Type": "image/x-icon"})
    )
    return FaviconResolver(timeout=1.0, transport=transport)


@pytest.fixture
def service(indexer, rules_store, settings):
    return SearchService(indexer, rules_store, settings=settings, favicons=_favicons())


class TestSearch:
    def test_aliases_resolved_before_search(self, service, indexer, rules_store, make_document):
        indexer.add(make_document("https://ex.com/py", "Python", "python language"))
        rules_store.save(Rules().with_alias("py", "python"))

        results = service.search(Query(text="py"))

        assert results.total == 1
        assert results.query.text == "python"
        assert results.search_duration

    def test_history_and_suggestion_use_original_text(self, indexer, rules_store, settings):
        history = FakeHistory()
        rules_store.save(Rules().with_alias("py", "python"))
        service = SearchService(indexer, rules_store, history, settings=settings)

        results = service.search(Query(text="py"))

        assert history.queries == ["py"]
        assert results.history[0].url == "https://opened.example/"
        assert results.query_suggestion == "py tutorial"

    def test_backend_failure_returns_empty_results(self, service, indexer):
        with patch.object(indexer, "search", side_effect=StorageError("locked")):
            results = service.search(Query(text="anything"))

        assert results.total == 0
        assert results.documents == []
        assert results.search_duration


class TestShouldIndex:
    def test_own_pages_refused(self, service, settings):
        assert service.should_index(settings.base_url + "/search?q=x") is False

    def test_skip_rule_refused(self, service, rules_store):
        rules_store.save(Rules().with_skip([r"bank\.example"]))
        assert service.should_index("https://bank.example/account") is False
        assert service.should_index("https://news.example/") is True


@pytest.mark.asyncio
class TestAdd:
    async def test_add_embeds_favicon_and_indexes(self, service, indexer, make_document):
        await service.add(make_document("https://ex.com/page", "Page", "content"))

        stored = indexer.get_by_url("https://ex.com/page")
        assert stored.favicon.startswith("data:image/x-icon;base64,")

    async def test_favicon_failure_still_indexes(self, indexer, rules_store, settings, make_document):
        service = SearchService(indexer, rules_store, settings=settings, favicons=_favicons(status=500))

        await service.add(make_document("https://ex.com/page", "Page", "content"))

        assert indexer.get_by_url("https://ex.com/page").favicon == ""

    async def test_skipped_url_rejected(self, service, indexer, rules_store, make_document):
        rules_store.save(Rules().with_skip(["private"]))
        with pytest.raises(SkipRuleError):
            await service.add(make_document("https://private.example/", "P", "body"))
        assert indexer.count() == 0


def test_format_duration():
    assert format_duration(0.0000005).endswith("µs")
    assert format_duration(0.25) == "250.000ms"
    assert format_duration(2.5) == "2.500s"
