"""
Query term and entity extraction.

Terms drive scoring: a handful of lower-cased, stop-word filtered words.
Entities are read from the original-case query (capitalized words and
quoted phrases) and earn a separate bonus.
"""

import re
from dataclasses import dataclass, field
from typing import List

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
        "her", "was", "one", "our", "out", "day", "get", "has", "him", "his",
        "how", "man", "new", "now", "old", "see", "two", "way", "who", "boy",
        "did", "its", "let", "put", "say", "she", "too", "use", "may", "each",
        "which", "their", "time", "will", "about", "if", "up", "many", "then",
        "them", "these", "so", "some", "would", "make", "like", "into", "more",
        "go", "no", "do", "does", "what", "where", "when", "why", "video",
        "content", "note", "notes", "transcript", "watch", "youtube", "with",
        "from", "that", "this", "there", "have", "been", "were", "they",
        "your", "also", "just", "than", "only", "tell", "show", "find",
    }
)

_EDGE_PUNCTUATION = "\"'`.,;:!?()[]{}<>“”‘’«»"
_CAPITALIZED_RE = re.compile(r"\b[A-Z][a-z]+\b")
_ACRONYM_RE = re.compile(r"\b[A-Z]{2,}\b")
_QUOTED_RE = re.compile(r"[\"“]([^\"”]+)[\"”]")


@dataclass
class QueryTerms:
    """Analyzed form of a query."""

    query: str
    normalized: str
    terms: List[str] = field(default_factory=list)
    entities: List[str] = field(default_factory=list)
    words: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.terms


def normalize_query(query: str) -> str:
    """Trim, lower-case and collapse whitespace."""
    return " ".join(query.lower().split())


def tokenize(text: str) -> List[str]:
    """Lower-case whitespace tokens with edge punctuation stripped."""
    tokens = []
    for raw in text.lower().split():
        token = raw.strip(_EDGE_PUNCTUATION)
        if token:
            tokens.append(token)
    return tokens


def extract_terms(text: str, max_terms: int = 4, min_length: int = 4) -> List[str]:
    """
    Significant terms of a text, in order of first appearance.

    Args:
        text: Query or other free text
        max_terms: Keep at most this many terms
        min_length: Discard tokens shorter than this

    Returns:
        Ordered, de-duplicated list of lower-case terms
    """
    terms: List[str] = []
    for token in tokenize(text):
        if len(token) < min_length or token in STOP_WORDS or token in terms:
            continue
        terms.append(token)
        if len(terms) >= max_terms:
            break
    return terms


def extract_entities(text: str) -> List[str]:
    """
    Capitalized words, acronyms and quoted phrases from original-case text.

    Returned lower-cased, de-duplicated, quoted phrases first.
    """
    entities: List[str] = []

    def add(value: str) -> None:
        value = " ".join(value.lower().split())
        if value and value not in entities:
            entities.append(value)

    for phrase in _QUOTED_RE.findall(text):
        add(phrase)
    for match in _CAPITALIZED_RE.findall(text):
        if match.lower() not in STOP_WORDS:
            add(match)
    for match in _ACRONYM_RE.findall(text):
        add(match)
    return entities


def analyze_query(query: str, max_terms: int = 4, min_length: int = 4) -> QueryTerms:
    return QueryTerms(
        query=query,
        normalized=normalize_query(query),
        terms=extract_terms(query, max_terms=max_terms, min_length=min_length),
        entities=extract_entities(query),
        words=tokenize(query),
    )
