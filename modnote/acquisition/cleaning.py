"""
Text cleaning and significance checks for extracted content.

Every strategy runs its raw provider text through ``TextCleaner`` so the
orchestrator sees one normalized shape, and uses ``significant_length`` to
decide whether a result is worth keeping.
"""

import re
import unicodedata
from typing import Optional

from modnote.utils.logging import get_logger

logger = get_logger(__name__)

# Caption/OCR noise that carries no content
BOILERPLATE_PATTERNS = [
    r"\[(?:music|applause|laughter|laughs|silence|inaudible|noise|foreign|cheering)\]",
    r"\((?:music|applause|laughter|inaudible)\)",
    r"^\s*-{2,}\s*page\s+\d+\s*-{2,}\s*$",
    r"^\s*page\s+\d+(\s+of\s+\d+)?\s*$",
    r"♪+",
]
_BOILERPLATE_RE = re.compile("|".join(BOILERPLATE_PATTERNS), re.IGNORECASE | re.MULTILINE)

LIGATURE_FIXES = {
    "ﬁ": "fi",
    "ﬂ": "fl",
    "ﬀ": "ff",
    "ﬃ": "ffi",
    "ﬄ": "ffl",
}


class TextCleaner:
    """Clean and normalize text returned by extraction providers."""

    def __init__(
        self,
        join_hyphenated: bool = True,
        strip_page_markers: bool = True,
        max_blank_lines: int = 1,
    ) -> None:
        """
        Initialize the cleaner.

        Args:
            join_hyphenated: Rejoin words hyphenated across line breaks
            strip_page_markers: Remove "--- Page N ---" style separators
            max_blank_lines: Maximum consecutive blank lines kept
        """
        self.join_hyphenated = join_hyphenated
        self.strip_page_markers = strip_page_markers
        self.max_blank_lines = max_blank_lines

    def clean(self, text: Optional[str]) -> str:
        if not text:
            return ""

        text = unicodedata.normalize("NFKC", text)
        for old, new in LIGATURE_FIXES.items():
            text = text.replace(old, new)

        text = text.replace("\r\n", "\n").replace("\r", "\n")

        # Drop control characters except newlines and tabs
        text = "".join(
            char for char in text
            if char in "\n\t" or not unicodedata.category(char).startswith("C")
        )

        if self.strip_page_markers:
            text = re.sub(r"^\s*-{2,}\s*page\s+\d+\s*-{2,}\s*$", "", text, flags=re.IGNORECASE | re.MULTILINE)

        if self.join_hyphenated:
            text = re.sub(r"(\w)-[ \t]*\n[ \t]*(\w)", r"\1\2", text)

        text = text.replace("\t", " ")
        text = re.sub(r"[  ]+", " ", text)
        text = "\n".join(line.strip() for line in text.split("\n"))
        blank_run = "\n" * (self.max_blank_lines + 1)
        text = re.sub(r"\n{%d,}" % (self.max_blank_lines + 2), blank_run, text)

        return text.strip()


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def significant_length(text: Optional[str]) -> int:
    """Count non-whitespace characters left after removing boilerplate."""
    if not text:
        return 0
    stripped = _BOILERPLATE_RE.sub(" ", text)
    return len(re.sub(r"\s+", "", stripped))


def is_significant(text: Optional[str], min_chars: int) -> bool:
    """True when the text has more than ``min_chars`` meaningful characters."""
    return significant_length(text) > min_chars


default_cleaner = TextCleaner()
