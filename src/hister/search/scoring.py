"""Post-match re-ranking.

The backend scores candidates with BM25 and per-clause boosts. After that a
field modifier runs once per field of every candidate and multiplies the
score. The modifier is a pure function of ``(field, term, did_match)`` so it
does not depend on how any particular backend exposes its scoring hooks.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from hister.rules import Rule


FieldModifier = Callable[[str, str, bool], float]


class FieldScorer:
    """Boost title matches and URLs that satisfy the priority rule.

    - ``title`` gives ``title_factor`` when the match occurred in the title.
    - ``url`` gives ``priority_factor`` when the URL term matches ``priority``.
    - Every other field gives 1.
    """

    def __init__(self, priority: Rule, *, title_factor: float = 10.0, priority_factor: float = 10.0) -> None:
        self.priority = priority
        self.title_factor = title_factor
        self.priority_factor = priority_factor

    def __call__(self, field: str, term: str, did_match: bool) -> float:
        modifier = 1.0
        if field == "title" and did_match:
            modifier *= self.title_factor
        if field == "url" and self.priority.match(term):
            modifier *= self.priority_factor
        return modifier


def rescore(
    score: float,
    doc_values: Mapping[str, str],
    matched_fields: Iterable[str],
    modifier: FieldModifier,
    *,
    user_boost: float = 1.0,
) -> float:
    """Return ``score * user_boost * product(modifier per field)``.

    ``doc_values`` maps each field present on the document to its first
    indexed term; each field is visited exactly once.
    """
    matched = set(matched_fields)
    product = 1.0
    for field, term in doc_values.items():
        product *= modifier(field, term, field in matched)
    return score * user_boost * product
