"""Tests for favicon embedding."""

import base64

import httpx
import pytest

from hister.docpipeline.favicon import FaviconResolver
from hister.models import Document


PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


def _resolver(handler) -> FaviconResolver:
    return FaviconResolver(timeout=1.0, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
class TestFaviconResolver:
    async def test_default_icon_location_embedded(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})

        doc = Document(url="https://ex.com/some/page")
        favicon = await _resolver(handler).resolve(doc)

        assert favicon == "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
        assert doc.favicon == favicon
        assert str(seen[0].url) == "https://ex.com/favicon.ico"
        assert seen[0].headers["User-Agent"] == "Hister"

    async def test_discovered_icon_url_used(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=b"<svg/>", headers={"Content-Type": "image/svg+xml"})

        doc = Document(url="https://ex.com/")
        doc.set_favicon_url("https://cdn.ex.com/icon.svg")
        await _resolver(handler).resolve(doc)

        assert seen == ["https://cdn.ex.com/icon.svg"]
        assert doc.favicon.startswith("data:image/svg+xml;base64,")

    async def test_data_uri_used_without_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        doc = Document(url="https://ex.com/")
        doc.set_favicon_url("data:image/x-icon;base64,AAAA")
        assert await _resolver(handler).resolve(doc) == "data:image/x-icon;base64,AAAA"

    async def test_http_error_status_leaves_favicon_empty(self):
        doc = Document(url="https://ex.com/")
        result = await _resolver(lambda request: httpx.Response(404)).resolve(doc)
        assert result == ""
        assert doc.favicon == ""

    async def test_network_failure_is_not_fatal(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        doc = Document(url="https://ex.com/")
        assert await _resolver(handler).resolve(doc) == ""

    async def test_existing_favicon_kept(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        doc = Document(url="https://ex.com/", favicon="data:image/png;base64,XYZ")
        assert await _resolver(handler).resolve(doc) == "data:image/png;base64,XYZ"
