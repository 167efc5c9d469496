"""Tests for post-match re-ranking."""

import pytest

from hister.rules import Rule
from hister.search.scoring import FieldScorer, rescore
from hister.search.stats import bm25, calculate_idf


class TestFieldScorer:
    def test_title_match_boosted(self):
        scorer = FieldScorer(Rule())
        assert scorer("title", "python", True) == 10.0
        assert scorer("title", "python", False) == 1.0

    def test_priority_url_boosted(self):
        scorer = FieldScorer(Rule.of([r"docs\.python\.org"]), priority_factor=5.0)
        assert scorer("url", "https://docs.python.org/3/", False) == 5.0
        assert scorer("url", "https://example.com/", True) == 1.0

    def test_other_fields_neutral(self):
        scorer = FieldScorer(Rule.of(["."]))
        assert scorer("text", "anything", True) == 1.0
        assert scorer("domain", "example.com", True) == 1.0


def test_rescore_multiplies_each_field_once():
    scorer = FieldScorer(Rule.of(["python"]))
    score = rescore(
        2.0,
        {"title": "python", "url": "https://python.org", "text": "python"},
        {"title", "text"},
        scorer,
        user_boost=0.5,
    )
    assert score == pytest.approx(2.0 * 0.5 * 10.0 * 10.0)


def test_rescore_without_fields_keeps_score():
    assert rescore(3.0, {}, set(), FieldScorer(Rule())) == 3.0


def test_bm25_length_normalization_capped():
    assert bm25(1, 100, 10.0) == bm25(1, 40, 10.0)
    assert bm25(0, 10, 10.0) == 0.0


def test_idf_rarer_terms_weigh_more():
    assert calculate_idf(1, 100) > calculate_idf(50, 100) > 0
    assert calculate_idf(1, 0) == 0.0
