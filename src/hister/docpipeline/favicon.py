"""Best-effort favicon embedding.

The icon is fetched from the ``link rel=icon`` href found during extraction,
or ``/favicon.ico`` on the page's host, and stored as a ``data:`` URI so the
result list never has to reach out to the original site. Failures are
logged and leave ``favicon`` empty.
"""

from __future__ import annotations

import base64
import logging

import httpx

from hister.docpipeline.urls import full_url
from hister.models import Document


logger = logging.getLogger(__name__)

USER_AGENT = "Hister"


class FaviconResolver:
    """Fetch and embed favicons with a bounded timeout."""

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    def icon_url(self, doc: Document) -> str:
        return doc.favicon_url or full_url(doc.url, "/favicon.ico")

    async def resolve(self, doc: Document) -> str:
        """Fill ``doc.favicon`` if it is empty and return its value."""
        if doc.favicon:
            return doc.favicon
        icon_url = self.icon_url(doc)
        if not icon_url:
            return ""
        if icon_url.startswith("data:"):
            doc.favicon = icon_url
            return doc.favicon

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
                transport=self._transport,
            ) as client:
                response = await client.get(icon_url)
        except httpx.HTTPError as exc:
            logger.warning("Failed to download favicon %s: %s", icon_url, exc)
            return ""

        if response.status_code != httpx.codes.OK:
            logger.warning("Failed to download favicon %s: status %s", icon_url, response.status_code)
            return ""
        if not response.content:
            logger.debug("Empty favicon response from %s", icon_url)
            return ""

        content_type = response.headers.get("Content-Type", "")
        payload = base64.b64encode(response.content).decode("ascii")
        doc.favicon = f"data:{content_type};base64,{payload}"
        return doc.favicon
