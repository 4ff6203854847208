"""Extraction strategies and their default priority per source kind."""

from typing import Dict, List, Optional

import httpx
from openai import AsyncOpenAI

from modnote.acquisition.strategies.base import ExtractionStrategy
from modnote.acquisition.strategies.documents import BasicOCR, TextLayerRead
from modnote.acquisition.strategies.openai_provider import SpeechToText, VisionOCR
from modnote.acquisition.strategies.video import AudioTranscription, CaptionRead, PageScrapeRead
from modnote.acquisition.strategies.web import WebPageScrape
from modnote.config import Settings, get_settings
from modnote.models import SourceKind

DEFAULT_PRIORITIES: Dict[SourceKind, List[str]] = {
    SourceKind.VIDEO_URL: ["caption-read", "page-scrape", "audio-transcription"],
    SourceKind.PDF: ["text-layer", "vision-ocr", "basic-ocr"],
    SourceKind.IMAGE: ["vision-ocr", "basic-ocr"],
    SourceKind.WEB_URL: ["web-scrape"],
    SourceKind.AUDIO: ["speech-to-text"],
}


def create_default_strategies(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    openai_client: Optional[AsyncOpenAI] = None,
) -> List[ExtractionStrategy]:
    """Create one instance of every built-in strategy."""
    settings = settings or get_settings()
    return [
        CaptionRead(settings=settings, http_client=http_client),
        PageScrapeRead(settings=settings, http_client=http_client),
        AudioTranscription(settings=settings, http_client=http_client),
        TextLayerRead(settings=settings, http_client=http_client),
        VisionOCR(settings=settings, client=openai_client, http_client=http_client),
        BasicOCR(settings=settings, http_client=http_client),
        WebPageScrape(settings=settings, http_client=http_client),
        SpeechToText(settings=settings, client=openai_client, http_client=http_client),
    ]


__all__ = [
    "DEFAULT_PRIORITIES",
    "AudioTranscription",
    "BasicOCR",
    "CaptionRead",
    "ExtractionStrategy",
    "PageScrapeRead",
    "SpeechToText",
    "TextLayerRead",
    "VisionOCR",
    "WebPageScrape",
    "create_default_strategies",
]
