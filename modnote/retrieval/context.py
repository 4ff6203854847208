"""
Context assembly for question answering over stored notes.

``ContextProcessor`` picks the candidates that clear the relevance bar,
chunks them, wraps every chunk in explicit source boundary markers and
packs whole chunks until the character budget is reached. The result is a
``ProcessedContext`` ready to hand to a generative model.
"""

import hashlib
import json
import re
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field, model_validator

from modnote.cache import TTLCache
from modnote.config import Settings, get_settings
from modnote.models import (
    CHUNK_SEPARATOR,
    ContentItem,
    ContextChunk,
    ProcessedContext,
    ScoredCandidate,
    SearchHit,
)
from modnote.retrieval.chunker import ParagraphChunker
from modnote.retrieval.scorer import RelevanceScorer, ScoringConfig
from modnote.retrieval.snippets import make_snippet
from modnote.retrieval.terms import normalize_query
from modnote.utils.logging import get_logger, log_performance

logger = get_logger(__name__)

MAX_TITLE_IN_MARKER = 120

EMPTY_CORPUS_SUMMARY = (
    "No notes were found to search. Add notes or import content before asking questions."
)

_MARKER_RE = re.compile(
    r'^=== SOURCE [^\n]+? (?:START \| [^\n]* \| "[^"\n]*" \| part \d+/\d+|END) ===(?:\n|$)',
    re.MULTILINE,
)

# Content lines that look like markers carry one extra leading backslash
_MARKER_LIKE_RE = re.compile(r"^([ \t]*)(\\*=+ *SOURCE\b)", re.MULTILINE | re.IGNORECASE)
_ESCAPED_MARKER_RE = re.compile(r"^([ \t]*)\\(\\*=+ *SOURCE\b)", re.MULTILINE | re.IGNORECASE)


class ContextConfig(BaseModel):
    """Budgets for context assembly."""

    max_sources: int = Field(4, ge=1)
    max_context_length: int = Field(3000, ge=1)
    chunk_size: int = Field(500, ge=1)
    min_query_length: int = Field(3, ge=1)

    @model_validator(mode="after")
    def _chunk_fits_budget(self) -> "ContextConfig":
        if self.chunk_size >= self.max_context_length:
            raise ValueError("chunk_size must be smaller than max_context_length")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContextConfig":
        return cls(
            max_sources=settings.max_sources,
            max_context_length=settings.max_context_length,
            chunk_size=settings.chunk_size,
        )


def source_header(item: ContentItem, part: int, total: int) -> str:
    title = " ".join(item.title.split())
    if len(title) > MAX_TITLE_IN_MARKER:
        title = title[: MAX_TITLE_IN_MARKER - 3] + "..."
    title = title.replace('"', "'")
    return f'=== SOURCE {item.id} START | {item.content_type} | "{title}" | part {part}/{total} ==='


def source_footer(item: ContentItem) -> str:
    return f"=== SOURCE {item.id} END ==="


def escape_marker_lines(text: str) -> str:
    """Neutralize content lines that could pass for a boundary marker."""
    return _MARKER_LIKE_RE.sub(r"\1\\\2", text)


def unescape_marker_lines(text: str) -> str:
    return _ESCAPED_MARKER_RE.sub(r"\1\2", text)


def wrap_chunk(item: ContentItem, text: str, part: int, total: int) -> str:
    """Surround a chunk with its source boundary markers."""
    body = escape_marker_lines(text)
    return f"{source_header(item, part, total)}\n{body}\n{source_footer(item)}"


def strip_isolation_markers(text: str) -> str:
    """Remove source boundary marker lines from assembled context, restoring escaped content."""
    return unescape_marker_lines(_MARKER_RE.sub("", text))


def compute_fingerprint(query: str, source_ids: Iterable[str]) -> str:
    """Deterministic id for a (query, selected sources) pair."""
    payload = json.dumps(
        {"query": normalize_query(query), "sources": sorted(set(source_ids))},
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ContextProcessor:
    """Select, chunk and isolate relevant content for a query."""

    def __init__(
        self,
        config: Optional[ContextConfig] = None,
        scorer: Optional[RelevanceScorer] = None,
        chunker: Optional[ParagraphChunker] = None,
        cache: Optional[TTLCache] = None,
    ) -> None:
        """
        Initialize the processor.

        Args:
            config: Source and length budgets
            scorer: Relevance scorer; defaults to the stock weights
            chunker: Chunker; defaults to one sized by ``config.chunk_size``
            cache: Optional cache for search results
        """
        self.config = config or ContextConfig()
        self.scorer = scorer or RelevanceScorer()
        self.chunker = chunker or ParagraphChunker(self.config.chunk_size)
        self.cache = cache

    def select(
        self,
        candidates: Sequence[ContentItem],
        query: str,
        now: Optional[datetime] = None,
    ) -> List[ScoredCandidate]:
        """Candidates that pass the threshold, best first, capped at ``max_sources``."""
        ranked = self.scorer.rank(candidates, query, now=now)
        if len(ranked) > self.config.max_sources:
            logger.debug(f"Keeping {self.config.max_sources} of {len(ranked)} passing sources")
        return ranked[: self.config.max_sources]

    @log_performance
    def process_for_query(
        self,
        candidates: Sequence[ContentItem],
        query: str,
        now: Optional[datetime] = None,
    ) -> ProcessedContext:
        """
        Build the context payload for ``query``.

        Zero passing candidates is a valid outcome: the result has no chunks
        and a summary explaining that no source met the bar.
        """
        if not candidates:
            return ProcessedContext(
                summary_text=EMPTY_CORPUS_SUMMARY,
                fingerprint=compute_fingerprint(query, []),
            )

        selected = self.select(candidates, query, now=now)
        if not selected:
            logger.info(f"No source passed the relevance threshold for query {query!r}")
            return ProcessedContext(
                summary_text=(
                    f'None of your {len(candidates)} notes is relevant enough to "{query.strip()}". '
                    "Try different keywords or import content on this topic."
                ),
                fingerprint=compute_fingerprint(query, []),
            )

        chunks: List[ContextChunk] = []
        sources: List[ContentItem] = []
        scores = {}
        total_length = 0
        budget_reached = False

        for candidate in selected:
            item = candidate.item
            if not item.text.strip():
                logger.debug(f"Skipping {item.id}: no text")
                continue

            pieces = self.chunker.chunk(item.text)
            for part, piece in enumerate(pieces, start=1):
                wrapped = wrap_chunk(item, piece, part, len(pieces))
                separator = len(CHUNK_SEPARATOR) if chunks else 0
                if total_length + separator + len(wrapped) > self.config.max_context_length:
                    logger.info(
                        f"Context budget reached at {total_length} chars "
                        f"(next chunk of {item.id} needs {len(wrapped)})"
                    )
                    budget_reached = True
                    break

                chunks.append(
                    ContextChunk(source_id=item.id, ordinal=part, text=wrapped, approx_length=len(wrapped))
                )
                total_length += separator + len(wrapped)
                if item.id not in scores:
                    sources.append(item)
                    scores[item.id] = candidate.relevance_score

            if budget_reached:
                break

        return ProcessedContext(
            chunks=chunks,
            sources=sources,
            total_length=total_length,
            summary_text=self._summary(query, sources, scores, budget_reached),
            fingerprint=compute_fingerprint(query, [s.id for s in sources]),
        )

    def search(
        self,
        candidates: Sequence[ContentItem],
        query: str,
        now: Optional[datetime] = None,
    ) -> List[SearchHit]:
        """Relevant candidates with a query-focused snippet each."""
        if len(query.strip()) < self.config.min_query_length or not candidates:
            return []

        cache_key = None
        if self.cache is not None:
            cache_key = self._search_cache_key(candidates, query, now)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Search cache hit for {query!r}")
                return cached

        hits = [
            SearchHit(
                id=candidate.item.id,
                title=candidate.item.title,
                relevance=candidate.relevance_score,
                snippet=make_snippet(candidate.item.text, query),
                source_type="video" if candidate.item.is_transcript else "note",
                source_url=candidate.item.source_url,
                created_at=candidate.item.created_at,
            )
            for candidate in self.select(candidates, query, now=now)
        ]

        if self.cache is not None:
            self.cache.set(cache_key, hits)
        logger.info(f"Search for {query!r} returned {len(hits)} hit(s)")
        return hits

    @staticmethod
    def _search_cache_key(candidates: Sequence[ContentItem], query: str, now: Optional[datetime]) -> str:
        """Cache key that changes whenever a candidate is edited."""
        payload = json.dumps(
            {
                "query": normalize_query(query),
                "now": now.isoformat() if now else None,
                "items": [item.model_dump(mode="json") for item in candidates],
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    @staticmethod
    def _summary(query: str, sources: List[ContentItem], scores: dict, budget_reached: bool) -> str:
        if not sources:
            return (
                f'Sources matched "{query.strip()}" but none had content that fits the context budget.'
            )
        listed = "; ".join(
            f'"{item.title}" ({item.content_type.lower()}, relevance {scores[item.id]:.2f})'
            for item in sources
        )
        summary = f'Found {len(sources)} relevant source(s) for "{query.strip()}": {listed}.'
        if budget_reached:
            summary += " Some content was left out to fit the context budget."
        return summary


def create_context_processor(settings: Optional[Settings] = None) -> ContextProcessor:
    """Create a context processor with settings."""
    settings = settings or get_settings()
    config = ContextConfig.from_settings(settings)
    return ContextProcessor(
        config=config,
        scorer=RelevanceScorer(ScoringConfig.from_settings(settings)),
        chunker=ParagraphChunker(config.chunk_size, use_nltk=settings.use_nltk_sentences),
        cache=TTLCache(ttl_seconds=settings.cache_ttl_seconds, max_entries=settings.cache_max_entries),
    )
