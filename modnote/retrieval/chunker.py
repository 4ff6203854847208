"""
Paragraph-first text chunking.

Splits text into pieces no longer than a character budget, preferring
paragraph boundaries, then sentence boundaries, then word boundaries. A
single word longer than the budget is the only thing ever cut.
"""

import re
from typing import Iterator, List, Tuple

import nltk
from nltk.tokenize import sent_tokenize

from modnote.utils.errors import ChunkingError
from modnote.utils.logging import get_logger

logger = get_logger(__name__)

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")

PARAGRAPH_SEPARATOR = "\n\n"


class ParagraphChunker:
    """
    Split text into chunks of at most ``budget`` characters.

    Whole paragraphs are packed together while they fit. An oversize
    paragraph is split into sentences, an oversize sentence into words.
    """

    def __init__(self, budget: int = 500, use_nltk: bool = False) -> None:
        """
        Initialize the chunker.

        Args:
            budget: Maximum chunk length in characters
            use_nltk: Use NLTK's punkt tokenizer for sentence splitting
        """
        if budget < 1:
            raise ChunkingError("budget must be at least 1", {"budget": budget})
        self.budget = budget
        self.use_nltk = use_nltk

        if self.use_nltk:
            self._ensure_nltk_data()

    def _ensure_nltk_data(self) -> None:
        """Download required NLTK data if not present."""
        # Recent NLTK releases load sentence models from punkt_tab
        for resource in ("punkt", "punkt_tab"):
            try:
                nltk.data.find(f"tokenizers/{resource}")
            except LookupError:
                logger.info(f"Downloading NLTK {resource} tokenizer...")
                nltk.download(resource, quiet=True)

    def chunk(self, text: str) -> List[str]:
        """Chunk ``text``; returns an empty list for blank input."""
        if not text or not text.strip():
            return []
        return list(self._pack(self._units(text)))

    def _units(self, text: str) -> Iterator[Tuple[str, str]]:
        """
        Yield (separator, piece) pairs, each piece within budget.

        The separator is what joins the piece to the one before it when both
        land in the same chunk.
        """
        first = True
        for paragraph in _PARAGRAPH_RE.split(text.strip()):
            paragraph = paragraph.strip()
            if not paragraph:
                continue

            separator = "" if first else PARAGRAPH_SEPARATOR
            first = False
            if len(paragraph) <= self.budget:
                yield separator, paragraph
                continue

            for index, piece in enumerate(self._split_paragraph(paragraph)):
                yield (separator if index == 0 else piece[0]), piece[1]

    def _split_paragraph(self, paragraph: str) -> Iterator[Tuple[str, str]]:
        for sentence in self._split_sentences(paragraph):
            if len(sentence) <= self.budget:
                yield " ", sentence
                continue
            for word in sentence.split():
                if len(word) <= self.budget:
                    yield " ", word
                    continue
                # Hard split; pieces rejoin without a space
                for offset in range(0, len(word), self.budget):
                    yield ("" if offset else " "), word[offset : offset + self.budget]

    def _split_sentences(self, paragraph: str) -> List[str]:
        if self.use_nltk:
            sentences = sent_tokenize(paragraph)
        else:
            sentences = _SENTENCE_RE.split(paragraph)
        return [s.strip() for s in sentences if s.strip()]

    def _pack(self, units: Iterator[Tuple[str, str]]) -> Iterator[str]:
        current = ""
        for separator, piece in units:
            if not current:
                current = piece
            elif len(current) + len(separator) + len(piece) <= self.budget:
                current += separator + piece
            else:
                yield current
                current = piece
        if current:
            yield current


def chunk_text(text: str, budget: int = 500) -> List[str]:
    """Chunk ``text`` with a default ``ParagraphChunker``."""
    return ParagraphChunker(budget).chunk(text)
