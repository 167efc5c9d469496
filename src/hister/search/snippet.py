"""Fragment building for highlighted search results.

A fragment is a window of a stored field around the first matched term,
trimmed to sentence or word boundaries where possible, with every matched
term wrapped in the markers of the requested style.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
import html
import re


SENTENCE_END_PATTERN = re.compile(r"[.!?]\s+")
WORD_BOUNDARY_PATTERN = re.compile(r"\s+")


class HighlightStyle(str, Enum):
    PLAIN = "plain"
    HTML = "html"
    ANSI = "ansi"
    TUI = "tui"


_MARKERS: dict[HighlightStyle, tuple[str, str]] = {
    HighlightStyle.PLAIN: ("", ""),
    HighlightStyle.HTML: ("<mark>", "</mark>"),
    HighlightStyle.ANSI: ("\x1b[7m", "\x1b[0m"),
    HighlightStyle.TUI: ("\x1b[1m", "\x1b[0m"),
}


def _window_start(text: str, position: int, lookback: int) -> int:
    if position <= 0:
        return 0
    start = max(0, position - lookback)
    region = text[start:position]
    sentence_ends = list(SENTENCE_END_PATTERN.finditer(region))
    if sentence_ends:
        return start + sentence_ends[-1].end()
    if start == 0:
        return 0
    first_space = WORD_BOUNDARY_PATTERN.search(region)
    return start + first_space.end() if first_space else start


def _window_end(text: str, position: int, lookahead: int) -> int:
    if position >= len(text):
        return len(text)
    end = min(len(text), position + lookahead)
    region = text[position:end]
    sentence_end = SENTENCE_END_PATTERN.search(region)
    if sentence_end:
        return position + sentence_end.start() + 1
    if end == len(text):
        return end
    spaces = list(WORD_BOUNDARY_PATTERN.finditer(region))
    return position + spaces[-1].start() if spaces else end


def _first_match(text: str, terms: Sequence[str]) -> tuple[int, int]:
    lowered = text.lower()
    best = (-1, 0)
    for term in terms:
        if not term:
            continue
        pos = lowered.find(term.lower())
        if pos != -1 and (best[0] == -1 or pos < best[0]):
            best = (pos, len(term))
    return best


def plain_snippet(text: str, max_chars: int) -> str:
    """Return the beginning of ``text`` cut at a word boundary."""
    text = text.strip()
    if len(text) <= max_chars:
        return text
    cut = text.rfind(" ", 0, max_chars)
    if cut <= max_chars // 2:
        cut = max_chars
    return text[:cut].rstrip() + "…"


def highlight_terms(text: str, terms: Sequence[str], style: HighlightStyle) -> str:
    """Wrap every case-insensitive occurrence of ``terms`` in style markers.

    HTML output is escaped; text that already holds entities (stored titles)
    is unescaped first so it is not escaped twice.
    """
    if style is HighlightStyle.HTML:
        text = html.unescape(text)
    wanted = sorted({t for t in terms if t and len(t) >= 2}, key=len, reverse=True)
    spans: list[tuple[int, int]] = []
    if wanted:
        pattern = re.compile("|".join(re.escape(t) for t in wanted), re.IGNORECASE)
        spans = [(m.start(), m.end()) for m in pattern.finditer(text)]

    escape = (lambda s: html.escape(s, quote=False)) if style is HighlightStyle.HTML else (lambda s: s)
    open_mark, close_mark = _MARKERS[style]
    pieces: list[str] = []
    cursor = 0
    for start, end in spans:
        pieces.append(escape(text[cursor:start]))
        pieces.append(open_mark + escape(text[start:end]) + close_mark)
        cursor = end
    pieces.append(escape(text[cursor:]))
    return "".join(pieces)


def build_fragment(
    text: str,
    terms: Sequence[str],
    style: HighlightStyle,
    max_chars: int = 300,
) -> str:
    """Return a highlighted window of ``text`` around the first matched term.

    Without a match the beginning of the text is returned.
    """
    if not text:
        return ""
    position, length = _first_match(text, terms)
    if position == -1:
        return highlight_terms(plain_snippet(text, max_chars), terms, style)

    context = max(max_chars - length, 0) // 2
    start = _window_start(text, position, context)
    end = _window_end(text, position + length, context)
    if end - start > max_chars:
        center = position + length // 2
        start = max(0, center - max_chars // 2)
        end = min(len(text), start + max_chars)
    fragment = text[start:end].strip()
    if start > 0:
        fragment = "…" + fragment
    if end < len(text):
        fragment = fragment + "…"
    return highlight_terms(fragment, terms, style)
