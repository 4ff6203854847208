"""
Tests for query term and entity extraction.
"""

from modnote.retrieval.terms import (
    analyze_query,
    extract_entities,
    extract_terms,
    normalize_query,
    tokenize,
)


class TestTerms:
    def test_stop_words_and_short_tokens_dropped(self):
        assert extract_terms("What does Seth Godin say about marketing?") == ["seth", "godin", "marketing"]

    def test_max_terms(self):
        terms = extract_terms("alpha bravo charlie delta echo foxtrot", max_terms=4)
        assert terms == ["alpha", "bravo", "charlie", "delta"]

    def test_duplicates_removed(self):
        assert extract_terms("habits Habits HABITS routine") == ["habits", "routine"]

    def test_min_length(self):
        assert extract_terms("ai ml data", min_length=2) == ["ai", "ml", "data"]

    def test_tokenize_strips_edge_punctuation(self):
        assert tokenize('"Deep Work," (Newport)!') == ["deep", "work", "newport"]

    def test_normalize_query(self):
        assert normalize_query("  Hello   World\n") == "hello world"


class TestEntities:
    def test_quoted_phrases_first(self):
        entities = extract_entities('Compare "deep work" with GTD by David Allen')

        assert entities == ["deep work", "compare", "david", "allen", "gtd"]

    def test_capitalized_stop_words_ignored(self):
        assert extract_entities("What did Naval say") == ["naval"]


class TestAnalyzeQuery:
    def test_analysis(self):
        terms = analyze_query("Seth Godin marketing")

        assert terms.normalized == "seth godin marketing"
        assert terms.terms == ["seth", "godin", "marketing"]
        assert terms.entities == ["seth", "godin"]
        assert not terms.is_empty

    def test_empty_when_only_stop_words(self):
        assert analyze_query("what is the way").is_empty
