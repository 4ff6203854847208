"""
Tests for relevance scoring.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from modnote.models import ContentItem
from modnote.retrieval.scorer import RelevanceScorer, ScoringConfig

SETH_QUERY = "What does Seth Godin say about marketing?"


@pytest.fixture
def scorer():
    return RelevanceScorer()


class TestScore:
    def test_title_match_scores_full(self, scorer, notes_corpus):
        seth = notes_corpus[0]
        assert scorer.score(seth, SETH_QUERY) == pytest.approx(1.0)

    def test_unrelated_notes_score_zero(self, scorer, notes_corpus):
        for item in notes_corpus[1:]:
            assert scorer.score(item, SETH_QUERY) == 0.0

    def test_stop_word_query_scores_zero(self, scorer, notes_corpus):
        assert scorer.score(notes_corpus[0], "what is the") == 0.0

    def test_power_curve(self, scorer):
        # Title match plus prominence: 10 of a possible 16
        item = ContentItem(id="a", title="Compounding")
        assert scorer.score(item, "compounding habits") == pytest.approx((10 / 16) ** 3)

    def test_late_content_earns_nothing(self, scorer):
        early = ContentItem(id="early", text="habits " + "filler " * 100)
        late = ContentItem(id="late", text="filler " * 100 + "habits")

        assert scorer.score(early, "habits") > 0
        assert scorer.score(late, "habits") == 0.0

    def test_source_type_hint(self, scorer):
        text = "compounding explained in plain words"
        transcript = ContentItem(id="t", text=text, is_transcript=True)
        note = ContentItem(id="n", text=text)

        assert scorer.score(transcript, "compounding video") > scorer.score(note, "compounding video")
        assert scorer.score(note, "compounding article") > scorer.score(transcript, "compounding article")

    def test_recency_only_with_reference_time(self, scorer, now):
        item = ContentItem(id="a", title="Compounding", created_at=now - timedelta(days=1))
        old = ContentItem(id="b", title="Compounding", created_at=now - timedelta(days=10))

        base = scorer.score(item, "compounding habits")
        assert scorer.score(item, "compounding habits", now=now) > base
        assert scorer.score(old, "compounding habits", now=now) == base


class TestEvaluateAndRank:
    def test_threshold_is_inclusive(self):
        exact = (10 / 16) ** 3
        item = ContentItem(id="a", title="Compounding")

        assert RelevanceScorer(ScoringConfig(threshold=exact)).evaluate(item, "compounding habits").passes_threshold
        assert not RelevanceScorer(ScoringConfig(threshold=0.25)).evaluate(item, "compounding habits").passes_threshold

    def test_rank_keeps_only_passing(self, scorer, notes_corpus):
        ranked = scorer.rank(notes_corpus, SETH_QUERY)

        assert [c.item.id for c in ranked] == ["seth"]
        assert ranked[0].passes_threshold

    def test_equal_scores_keep_input_order(self, scorer):
        items = [ContentItem(id=f"n{i}", title="Marketing basics") for i in range(5)]

        ranked = scorer.rank(items, "marketing")

        assert [c.item.id for c in ranked] == ["n0", "n1", "n2", "n3", "n4"]

    def test_better_match_ranks_first(self, scorer):
        weak = ContentItem(id="weak", title="Funnel notes", text="marketing is mentioned here once")
        strong = ContentItem(id="strong", title="Marketing funnel", text="How a marketing funnel works.")

        ranked = scorer.rank([weak, strong], "marketing funnel")

        assert [c.item.id for c in ranked] == ["strong", "weak"]
        assert ranked[0].relevance_score > ranked[1].relevance_score


class TestScoringConfig:
    def test_exponent_must_exceed_one(self):
        with pytest.raises(ValidationError):
            ScoringConfig(exponent=1.0)

    def test_from_settings(self, settings):
        config = ScoringConfig.from_settings(settings)

        assert config.threshold == settings.relevance_threshold
        assert config.exponent == settings.score_exponent
