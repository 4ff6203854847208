"""
Shared fixtures for the ModNote test suite.
"""

from datetime import datetime, timezone
from typing import Callable, List

import fitz  # PyMuPDF
import httpx
import pytest

from modnote.config import Settings, reset_settings
from modnote.models import ContentItem


@pytest.fixture(autouse=True)
def _isolated_settings():
    """Never leak a cached Settings instance between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> Settings:
    """Settings with fake provider keys and no .env file."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        supadata_api_key="sd-test",
        youtube_api_key=None,
        max_retries=2,
        base_delay_seconds=1.0,
        attempt_timeout_seconds=5.0,
        acquisition_deadline_seconds=60.0,
        max_total_attempts=8,
        metadata_timeout_seconds=1.0,
    )


@pytest.fixture
def make_pdf() -> Callable[[List[str]], bytes]:
    """Build a real PDF with one page per text."""

    def _make(pages: List[str]) -> bytes:
        doc = fitz.open()
        for text in pages:
            page = doc.new_page()
            if text:
                page.insert_textbox(fitz.Rect(72, 72, 540, 770), text, fontsize=11)
        data = doc.tobytes()
        doc.close()
        return data

    return _make


@pytest.fixture
def mock_http() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Wrap a request handler in an AsyncClient backed by MockTransport."""

    def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _client


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def notes_corpus(now) -> List[ContentItem]:
    """One note about Seth Godin plus nine unrelated notes."""
    unrelated = [
        ("Sourdough starter basics", "Feed the starter daily with equal parts flour and water."),
        ("Trip to Lisbon", "Tram 28 climbs through Alfama. Pastel de nata in Belem."),
        ("Quarterly budget", "Rent, utilities and groceries went up this quarter."),
        ("Garden planning", "Tomatoes need full sun; basil grows well beside them."),
        ("Python packaging", "Use pyproject.toml and build wheels with setuptools."),
        ("Running log", "Easy five kilometre run, heart rate stayed low."),
        ("Book list", "Currently reading a history of the Roman republic."),
        ("Meeting notes", "Discussed the hiring pipeline and onboarding checklist."),
        ("Guitar practice", "Worked on barre chords and a fingerpicking pattern."),
    ]
    items = [
        ContentItem(
            id="seth",
            title="Seth Godin on Marketing",
            text=(
                "Seth Godin argues that marketing is about serving the smallest viable audience. "
                "Marketing works when you make change happen for people who want it.\n\n"
                "He suggests building trust through consistent, generous work."
            ),
            created_at=now,
        )
    ]
    items.extend(
        ContentItem(id=f"note-{i}", title=title, text=text, created_at=now)
        for i, (title, text) in enumerate(unrelated)
    )
    return items
