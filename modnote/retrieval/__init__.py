"""
Relevance scoring, chunking and source-isolated context assembly.
"""

from modnote.retrieval.chunker import ParagraphChunker, chunk_text
from modnote.retrieval.context import (
    ContextConfig,
    ContextProcessor,
    create_context_processor,
    strip_isolation_markers,
)
from modnote.retrieval.scorer import RelevanceScorer, ScoringConfig
from modnote.retrieval.terms import QueryTerms, analyze_query, extract_entities, extract_terms

__all__ = [
    "ContextConfig",
    "ContextProcessor",
    "ParagraphChunker",
    "QueryTerms",
    "RelevanceScorer",
    "ScoringConfig",
    "analyze_query",
    "chunk_text",
    "create_context_processor",
    "extract_entities",
    "extract_terms",
    "strip_isolation_markers",
]
