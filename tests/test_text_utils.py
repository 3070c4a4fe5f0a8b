"""Tests for text normalization, keyword extraction and similarity."""

import pytest

from packages.domain.coa_migration.text_utils import keywords, normalize, similarity


class TestNormalize:

    def test_strips_punctuation_and_case(self):
        assert normalize("COGS - Food (Kitchen)") == "cogs food kitchen"

    def test_collapses_whitespace(self):
        assert normalize("  Cash   in\tBank  ") == "cash in bank"

    def test_missing_text_is_empty(self):
        assert normalize(None) == ""
        assert normalize("") == ""
        assert normalize(" -- ") == ""

    @pytest.mark.parametrize("text", [
        "Owner's Equity",
        "A/R - Trade",
        "Sundry   Creditors",
        "1010 Cash",
    ])
    def test_idempotent(self, text):
        assert normalize(normalize(text)) == normalize(text)


class TestKeywords:

    def test_drops_stop_words_and_short_tokens(self):
        assert keywords("Cost of Goods Sold - Food and Beverage") == [
            "cost", "goods", "sold", "food", "beverage",
        ]

    def test_caps_keyword_count(self):
        assert keywords("alpha bravo charlie delta echo foxtrot") == [
            "alpha", "bravo", "charlie", "delta", "echo",
        ]

    def test_nothing_significant(self):
        assert keywords("A to Z of IT") == []
        assert keywords(None) == []


class TestSimilarity:

    def test_identity(self):
        assert similarity("food cost", "food cost") == 1.0

    def test_two_empty_strings_are_identical(self):
        assert similarity("", "") == 1.0

    def test_one_empty_string(self):
        assert similarity("abc", "") == 0.0

    def test_edit_distance_ratio(self):
        # kitten -> sitting: 3 edits over 7 characters
        assert similarity("kitten", "sitting") == pytest.approx(4 / 7)

    @pytest.mark.parametrize("a,b", [
        ("cash on hand", "cash in bank"),
        ("accounts payable", "ap"),
        ("rent", "rent expense"),
    ])
    def test_bounded_and_symmetric(self, a, b):
        score = similarity(a, b)
        assert 0.0 <= score <= 1.0
        assert score == similarity(b, a)
