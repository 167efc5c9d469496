"""Tests for the query language tokenizer."""

import pytest

from hister.errors import QuerySyntaxError
from hister.querylang import Token, TokenKind, split_alternatives, tokenize, word


class TestTokenize:
    def test_mixed_query_yields_tokens_in_order(self):
        tokens = tokenize('foo "bar baz" (a|b|c) -qux field:val')

        assert [t.kind for t in tokens] == [
            TokenKind.WORD,
            TokenKind.QUOTED,
            TokenKind.ALTERNATION,
            TokenKind.WORD,
            TokenKind.WORD,
        ]
        assert tokens[0].value == "foo"
        assert tokens[1].value == "bar baz"
        assert [p.value for p in tokens[2].parts] == ["a", "b", "c"]
        assert tokens[3].value == "-qux"
        assert tokens[4].value == "field:val"

    def test_empty_and_whitespace_only(self):
        assert tokenize("") == []
        assert tokenize("  \t\n ") == []

    def test_escaped_quote_inside_phrase(self):
        tokens = tokenize(r'"say \"hi\" now"')
        assert tokens == [Token(TokenKind.QUOTED, 'say "hi" now')]

    def test_quote_inside_word_keeps_spaces(self):
        tokens = tokenize('title:"two words" next')
        assert tokens == [word('title:"two words"'), word("next")]

    def test_alternation_trims_and_drops_empty_parts(self):
        (token,) = tokenize("( a | | b |)")
        assert token.kind is TokenKind.ALTERNATION
        assert [p.value for p in token.parts] == ["a", "b"]

    def test_nested_parentheses_stay_in_one_alternative(self):
        (token,) = tokenize("(x|(y|z))")
        assert [p.value for p in token.parts] == ["x", "(y|z)"]

    def test_tokens_are_deterministic(self):
        text = 'go "error handling" (net|http) -spam url:*.dev*'
        assert tokenize(text) == tokenize(text)


class TestTokenizeErrors:
    def test_unclosed_quote_reports_position(self):
        with pytest.raises(QuerySyntaxError) as exc_info:
            tokenize('foo "bar')
        assert exc_info.value.position == 4
        assert "unclosed quoted string" in str(exc_info.value)

    def test_unclosed_parenthesis_reports_position(self):
        with pytest.raises(QuerySyntaxError) as exc_info:
            tokenize("a (b|c")
        assert exc_info.value.position == 2
        assert "unclosed alternation" in str(exc_info.value)

    def test_unclosed_quote_inside_word(self):
        with pytest.raises(QuerySyntaxError) as exc_info:
            tokenize('title:"oops')
        assert exc_info.value.position == 6


def test_split_alternatives_top_level_only():
    assert [p.value for p in split_alternatives("a|(b|c)|d")] == ["a", "(b|c)", "d"]
    assert split_alternatives("") == ()
