"""
Strategies backed by the OpenAI API: vision OCR and speech-to-text.
"""

import asyncio
import base64
from typing import Any, Dict, List, Optional, Tuple

from openai import AsyncOpenAI

from modnote.acquisition.strategies.base import ExtractionStrategy
from modnote.acquisition.strategies.documents import render_pdf_pages
from modnote.config import Settings
from modnote.models import AcquisitionOptions, SourceKind, SourceRef, StrategyResult
from modnote.utils.errors import QuotaOrAuthError
from modnote.utils.logging import get_logger

logger = get_logger(__name__)

VISION_CONFIDENCE = 0.9
SPEECH_CONFIDENCE = 0.85
NO_TEXT_MARKER = "NO_TEXT_FOUND"

VISION_PROMPT = (
    "Extract all text from the provided image(s) exactly as written. "
    "Keep the reading order and paragraph breaks. Do not summarize, translate "
    "or add commentary. Return only the extracted text. "
    f"If there is no readable text, return {NO_TEXT_MARKER}."
)


class OpenAIStrategy(ExtractionStrategy):
    """Shared client handling for OpenAI-backed strategies."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[AsyncOpenAI] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(settings=settings, **kwargs)
        self._client = client

    def _ensure_client(self) -> AsyncOpenAI:
        """Return the client, creating it lazily from settings."""
        if self._client is None:
            if not self.settings.openai_api_key:
                raise QuotaOrAuthError("OpenAI API key is not configured")
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.attempt_timeout_seconds,
                max_retries=0,
            )
        return self._client


class VisionOCR(OpenAIStrategy):
    """Read text from images or scanned PDF pages with a vision model."""

    name = "vision-ocr"
    kinds = frozenset({SourceKind.PDF, SourceKind.IMAGE})

    async def _extract(self, source: SourceRef, options: AcquisitionOptions) -> StrategyResult:
        client = self._ensure_client()
        image_urls, page_count = await self._image_urls(source)

        content: List[Dict[str, Any]] = [{"type": "text", "text": VISION_PROMPT}]
        if options.language:
            content[0]["text"] += f" The text is likely in language '{options.language}'."
        content.extend(
            {"type": "image_url", "image_url": {"url": url, "detail": "high"}}
            for url in image_urls
        )

        response = await client.chat.completions.create(
            model=self.settings.vision_model,
            messages=[{"role": "user", "content": content}],
            temperature=0,
        )
        text = (response.choices[0].message.content or "").strip()
        if text == NO_TEXT_MARKER:
            text = ""
        return self._finish(
            text,
            VISION_CONFIDENCE,
            model=self.settings.vision_model,
            pages_processed=len(image_urls),
            page_count=page_count,
        )

    async def _image_urls(self, source: SourceRef) -> Tuple[List[str], int]:
        if source.kind is SourceKind.PDF:
            data = await self._load_bytes(source, self.settings.max_pdf_size_bytes)
            pages, page_count = await asyncio.to_thread(render_pdf_pages, data, self.settings.max_ocr_pages)
            return [_data_url(page, "image/png") for page in pages], page_count

        data = await self._load_bytes(source, self.settings.max_image_size_bytes)
        return [_data_url(data, source.effective_mime_type or "image/png")], 1


class SpeechToText(OpenAIStrategy):
    """Transcribe an uploaded audio file."""

    name = "speech-to-text"
    kinds = frozenset({SourceKind.AUDIO})

    # Transcription endpoint upload limit
    max_audio_bytes = 25 * 1024 * 1024

    async def _extract(self, source: SourceRef, options: AcquisitionOptions) -> StrategyResult:
        client = self._ensure_client()
        data = await self._load_bytes(source, self.max_audio_bytes)

        kwargs: Dict[str, Any] = {}
        if options.language:
            kwargs["language"] = options.language.split("-")[0]

        filename = source.filename or (source.path.name if source.path else "audio.mp3")
        transcription = await client.audio.transcriptions.create(
            model=self.settings.speech_model,
            file=(filename, data),
            **kwargs,
        )
        return self._finish(transcription.text, SPEECH_CONFIDENCE, model=self.settings.speech_model)


def _data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
