"""
Deterministic relevance scoring for stored notes and transcripts.

A candidate earns points for query terms in its title and early in its body,
for phrase and entity matches, and for small source-type and recency hints.
The sum is normalized against the best a perfect title could score and then
raised to a power > 1, so only strong matches clear the threshold.
"""

import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator

from modnote.config import Settings
from modnote.models import ContentItem, ScoredCandidate
from modnote.retrieval.terms import QueryTerms, analyze_query
from modnote.utils.logging import get_logger

logger = get_logger(__name__)

VIDEO_HINT_WORDS = frozenset({"video", "watch", "youtube", "channel", "episode", "stream", "podcast"})
TEXT_HINT_WORDS = frozenset({"note", "article", "text", "document", "write", "written"})


class ScoringConfig(BaseModel):
    """Weights and limits for ``RelevanceScorer``. All values are tunable."""

    threshold: float = Field(0.25, gt=0.0, le=1.0)
    exponent: float = Field(3.0, description="Power-curve exponent, must exceed 1")
    max_terms: int = Field(4, ge=1)
    min_term_length: int = Field(4, ge=1)

    # Title
    title_match_weight: float = 8.0
    title_prominence_bonus: float = 2.0
    title_prominence_words: int = 3

    # Content
    content_window: int = 400
    frequency_cap: int = 2
    very_early_position: int = 100
    very_early_multiplier: float = 2.0
    early_position: int = 200
    early_multiplier: float = 1.5
    content_term_cap: float = 4.0

    # Phrases
    phrase_title_bonus: float = 10.0
    phrase_content_bonus: float = 6.0
    phrase_content_window: int = 300
    bigram_title_bonus: float = 3.0
    bigram_content_bonus: float = 1.0
    bigram_content_window: int = 500
    phrase_bonus_cap: float = 12.0

    # Entities
    entity_title_bonus: float = 4.0
    entity_content_bonus: float = 2.0
    entity_bonus_cap: float = 8.0

    # Hints
    source_type_bonus: float = 1.0
    recency_bonus: float = 0.5
    recency_days: float = 3.0

    @field_validator("exponent")
    @classmethod
    def _steep_curve(cls, value: float) -> float:
        if value <= 1:
            raise ValueError("exponent must be greater than 1")
        return value

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringConfig":
        return cls(
            threshold=settings.relevance_threshold,
            exponent=settings.score_exponent,
            max_terms=settings.max_query_terms,
            min_term_length=settings.min_term_length,
        )


def _word_pattern(word: str) -> "re.Pattern[str]":
    return re.compile(rf"\b{re.escape(word)}\b")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RelevanceScorer:
    """Score candidates against a query and apply the threshold."""

    def __init__(self, config: Optional[ScoringConfig] = None) -> None:
        self.config = config or ScoringConfig()

    def analyze(self, query: str) -> QueryTerms:
        return analyze_query(query, max_terms=self.config.max_terms, min_length=self.config.min_term_length)

    def score(
        self,
        item: ContentItem,
        query: str,
        terms: Optional[QueryTerms] = None,
        now: Optional[datetime] = None,
    ) -> float:
        """
        Relevance of ``item`` to ``query`` in 0..1.

        Args:
            item: Candidate note or transcript
            query: Natural-language query
            terms: Pre-analyzed query, to avoid re-analysis across candidates
            now: Reference time for the recency hint; omitted means no recency bonus
        """
        terms = terms or self.analyze(query)
        if terms.is_empty:
            return 0.0

        title = item.title.lower()
        content = item.text.lower()
        patterns = {term: _word_pattern(term) for term in terms.terms}

        raw = (
            self._title_score(title, patterns)
            + self._content_score(content, patterns)
            + self._phrase_bonus(title, content, terms)
            + self._entity_bonus(title, content, terms)
            + self._source_type_bonus(item, terms)
            + self._recency_bonus(item, now)
        )

        max_possible = len(terms.terms) * self.config.title_match_weight
        normalized = min(raw / max_possible, 1.0)
        return normalized ** self.config.exponent

    def evaluate(
        self,
        item: ContentItem,
        query: str,
        terms: Optional[QueryTerms] = None,
        now: Optional[datetime] = None,
    ) -> ScoredCandidate:
        """Score one candidate and decide whether it passes the threshold."""
        relevance = self.score(item, query, terms=terms, now=now)
        passes = relevance >= self.config.threshold
        if not passes and relevance > 0:
            logger.info(
                f"ThresholdRejected: {item.id} scored {relevance:.4f} < {self.config.threshold}"
            )
        return ScoredCandidate(item=item, relevance_score=relevance, passes_threshold=passes)

    def rank(
        self,
        items: Iterable[ContentItem],
        query: str,
        now: Optional[datetime] = None,
    ) -> List[ScoredCandidate]:
        """Passing candidates, best first; equal scores keep input order."""
        terms = self.analyze(query)
        scored = [self.evaluate(item, query, terms=terms, now=now) for item in items]
        passing = [candidate for candidate in scored if candidate.passes_threshold]
        return sorted(passing, key=lambda candidate: candidate.relevance_score, reverse=True)

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def _title_score(self, title: str, patterns: dict) -> float:
        cfg = self.config
        lead_words = [w.strip("\"'.,:;!?()") for w in title.split()[: cfg.title_prominence_words]]
        score = 0.0
        for term, pattern in patterns.items():
            if pattern.search(title):
                score += cfg.title_match_weight
                if term in lead_words:
                    score += cfg.title_prominence_bonus
        return score

    def _content_score(self, content: str, patterns: dict) -> float:
        cfg = self.config
        score = 0.0
        for pattern in patterns.values():
            first = pattern.search(content)
            if first is None or first.start() >= cfg.content_window:
                continue

            term_score = float(min(len(pattern.findall(content)), cfg.frequency_cap))
            if first.start() < cfg.very_early_position:
                term_score *= cfg.very_early_multiplier
            elif first.start() < cfg.early_position:
                term_score *= cfg.early_multiplier
            score += min(term_score, cfg.content_term_cap)
        return score

    def _phrase_bonus(self, title: str, content: str, terms: QueryTerms) -> float:
        cfg = self.config
        bonus = 0.0
        phrase = terms.normalized
        if phrase and phrase in title:
            bonus += cfg.phrase_title_bonus
        elif phrase:
            position = content.find(phrase)
            if 0 <= position < cfg.phrase_content_window:
                bonus += cfg.phrase_content_bonus

        for first, second in zip(terms.terms, terms.terms[1:]):
            bigram = f"{first} {second}"
            if bigram in title:
                bonus += cfg.bigram_title_bonus
            else:
                position = content.find(bigram)
                if 0 <= position < cfg.bigram_content_window:
                    bonus += cfg.bigram_content_bonus

        return min(bonus, cfg.phrase_bonus_cap)

    def _entity_bonus(self, title: str, content: str, terms: QueryTerms) -> float:
        cfg = self.config
        bonus = 0.0
        for entity in terms.entities:
            pattern = _word_pattern(entity)
            if pattern.search(title):
                bonus += cfg.entity_title_bonus
            elif pattern.search(content):
                bonus += cfg.entity_content_bonus
        return min(bonus, cfg.entity_bonus_cap)

    def _source_type_bonus(self, item: ContentItem, terms: QueryTerms) -> float:
        words = set(terms.words)
        if item.is_transcript and words & VIDEO_HINT_WORDS:
            return self.config.source_type_bonus
        if not item.is_transcript and words & TEXT_HINT_WORDS:
            return self.config.source_type_bonus
        return 0.0

    def _recency_bonus(self, item: ContentItem, now: Optional[datetime]) -> float:
        if now is None or item.created_at is None:
            return 0.0
        age_days = (_as_utc(now) - _as_utc(item.created_at)).total_seconds() / 86400
        if 0 <= age_days < self.config.recency_days:
            return self.config.recency_bonus
        return 0.0
