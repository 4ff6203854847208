"""
Tests for the HTTP service.
"""

import pytest
from fastapi.testclient import TestClient

from modnote.api import create_app
from modnote.models import ExtractionResult, VideoMetadata
from modnote.retrieval import ContextProcessor

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


class FakeOrchestrator:
    strategy_names = ["caption-read", "page-scrape", "audio-transcription"]

    def __init__(self, result):
        self.result = result
        self.calls = []

    async def acquire(self, source, options=None, cancel_event=None):
        self.calls.append((source, options))
        return self.result


@pytest.fixture
def orchestrator():
    return FakeOrchestrator(
        ExtractionResult(
            success=True,
            text="Welcome back to the channel.",
            confidence=0.9,
            strategy_used="caption-read",
            processing_time_ms=120,
            metadata=VideoMetadata(video_id="dQw4w9WgXcQ", title="Compounding", duration="3:33"),
        )
    )


@pytest.fixture
def client(orchestrator):
    return TestClient(create_app(orchestrator=orchestrator, processor=ContextProcessor()))


@pytest.fixture
def candidates(notes_corpus):
    return [item.model_dump(mode="json") for item in notes_corpus]


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["strategies"] == FakeOrchestrator.strategy_names


class TestAcquire:
    def test_acquire(self, client, orchestrator):
        response = client.post("/acquire", json={"source": VIDEO_URL, "options": {"language": "en"}})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["strategy_used"] == "caption-read"
        assert body["metadata"]["video_id"] == "dQw4w9WgXcQ"
        assert body["metadata"]["duration"] == "3:33"
        source, options = orchestrator.calls[0]
        assert source.url == VIDEO_URL
        assert options.language == "en"

    def test_rejects_non_url_sources(self, client):
        response = client.post("/acquire", json={"source": "/etc/passwd"})

        assert response.status_code == 422

    def test_invalid_options(self, client):
        response = client.post("/acquire", json={"source": VIDEO_URL, "options": {"max_retries": -1}})

        assert response.status_code == 422


class TestContextAndSearch:
    def test_context(self, client, candidates):
        response = client.post(
            "/context",
            json={"query": "What does Seth Godin say about marketing?", "candidates": candidates},
        )

        assert response.status_code == 200
        body = response.json()
        assert [source["id"] for source in body["sources"]] == ["seth"]
        assert body["total_length"] == len("\n\n".join(chunk["text"] for chunk in body["chunks"]))
        assert len(body["fingerprint"]) == 64

    def test_context_requires_query(self, client, candidates):
        response = client.post("/context", json={"query": "", "candidates": candidates})

        assert response.status_code == 422

    def test_context_empty_corpus(self, client):
        response = client.post("/context", json={"query": "anything at all"})

        assert response.status_code == 200
        assert response.json()["chunks"] == []

    def test_search(self, client, candidates):
        response = client.post("/search", json={"query": "Seth Godin marketing", "candidates": candidates})

        assert response.status_code == 200
        hits = response.json()
        assert [hit["id"] for hit in hits] == ["seth"]
        assert hits[0]["source_type"] == "note"
