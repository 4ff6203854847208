"""
Query-focused snippets for search results.
"""

import re
from typing import Optional

from modnote.retrieval.terms import normalize_query

SNIPPET_SIZE = 150
SCAN_STEP = 20
NO_CONTENT = "No content available"


def make_snippet(content: Optional[str], query: str, size: int = SNIPPET_SIZE, step: int = SCAN_STEP) -> str:
    """
    Pick the window of ``content`` that best matches the query.

    Windows are scored by term density, number of distinct terms, an exact
    phrase match and an early-position bonus. Ellipses mark cut ends.
    """
    if not content:
        return NO_CONTENT

    phrase = normalize_query(query)
    terms = [t for t in phrase.split() if len(t) > 3]
    lowered = content.lower()

    best_index = -1
    best_score = 0
    for i in range(0, max(len(content) - size, 0), step):
        section = lowered[i : i + size]
        score = 0
        for term in terms:
            matches = section.count(term)
            score += matches * 3
            if matches:
                score += 2
        if phrase and phrase in section:
            score += 10
        if i < 200:
            score += 2
        if score > best_score:
            best_score = score
            best_index = i

    start = max(best_index, 0)
    snippet = content[start : start + size]
    snippet = re.sub(r"\s{2,}", " ", snippet.replace("\n", " ")).strip()

    if start > 0:
        snippet = "..." + snippet
    if start + size < len(content):
        snippet = snippet + "..."
    return snippet
