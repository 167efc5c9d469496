"""URL canonicalization for indexed pages."""

from __future__ import annotations

from urllib.parse import unquote_plus, urljoin, urlsplit, urlunsplit

from hister.errors import DocumentError


def _is_tracking_param(segment: str) -> bool:
    key = unquote_plus(segment.partition("=")[0])
    return key == "utm" or key.startswith("utm_")


def canonicalize_url(url: str) -> tuple[str, str]:
    """Return ``(canonical_url, host)`` for a submitted page URL.

    The fragment and any ``utm``/``utm_*`` query parameters are removed;
    other parameters keep their order and encoding. The URL is only rebuilt
    when something was removed.

    Raises:
        DocumentError: if the URL is empty or lacks a scheme or host.
    """
    if not url:
        raise DocumentError("missing URL")
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise DocumentError(f"invalid URL {url!r}: {exc}") from exc
    host = parts.netloc.rpartition("@")[2]
    if not parts.scheme or not host:
        raise DocumentError(f"invalid URL {url!r}: missing scheme/host")

    query = parts.query
    if query:
        kept = [segment for segment in query.split("&") if segment and not _is_tracking_param(segment)]
        query = "&".join(kept)
    if query == parts.query and not parts.fragment:
        return url, host
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, "")), host


def full_url(base: str, href: str) -> str:
    """Resolve ``href`` against ``base``; ``data:`` URIs pass through."""
    if href.startswith("data:"):
        return href
    try:
        return urljoin(base, href)
    except ValueError:
        return ""
