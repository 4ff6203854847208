"""
Video transcript strategies.

Three escalating techniques for hosted videos: the public caption endpoint,
caption tracks scraped from the watch page, and an external transcription
provider that works on the audio itself.
"""

import json
from typing import Any, Optional

from modnote.acquisition.adapters import extract_error, extract_text, normalize_confidence
from modnote.acquisition.parsers import (
    extract_caption_tracks,
    parse_captions,
    pick_caption_track,
    segments_to_text,
)
from modnote.acquisition.sources import extract_video_id, watch_url
from modnote.acquisition.strategies.base import BROWSER_HEADERS, ExtractionStrategy
from modnote.models import AcquisitionOptions, SourceKind, SourceRef, StrategyResult
from modnote.utils.errors import (
    EmptyResultError,
    MalformedInputError,
    NetworkOrTimeoutError,
    QuotaOrAuthError,
)
from modnote.utils.logging import get_logger

logger = get_logger(__name__)

TIMEDTEXT_URL = "https://www.youtube.com/api/timedtext"

CAPTION_CONFIDENCE = 0.9
PAGE_SCRAPE_CONFIDENCE = 0.85
TRANSCRIPTION_DEFAULT_CONFIDENCE = 0.8


class VideoStrategy(ExtractionStrategy):
    kinds = frozenset({SourceKind.VIDEO_URL})

    def _video_id(self, source: SourceRef) -> str:
        video_id = extract_video_id(source.url or "")
        if not video_id:
            raise MalformedInputError(f"No video id in {source.display_name}")
        return video_id

    def _captions_to_result(self, body: str, confidence: float, **metadata: Any) -> StrategyResult:
        segments = parse_captions(body)
        if not segments:
            raise EmptyResultError(f"{self.name} found no caption lines")
        return self._finish(segments_to_text(segments), confidence, segments=len(segments), **metadata)


class CaptionRead(VideoStrategy):
    """Fetch the caption track straight from the timed-text endpoint."""

    name = "caption-read"

    async def _extract(self, source: SourceRef, options: AcquisitionOptions) -> StrategyResult:
        video_id = self._video_id(source)
        language = options.language or "en"
        response = await self._get(
            TIMEDTEXT_URL,
            "caption endpoint",
            params={"v": video_id, "lang": language, "fmt": "vtt"},
            headers=BROWSER_HEADERS,
        )
        return self._captions_to_result(response.text, CAPTION_CONFIDENCE, language=language)


class PageScrapeRead(VideoStrategy):
    """Find caption tracks in the watch page and fetch the best one."""

    name = "page-scrape"

    async def _extract(self, source: SourceRef, options: AcquisitionOptions) -> StrategyResult:
        video_id = self._video_id(source)
        page = await self._get(watch_url(video_id), "watch page", headers=BROWSER_HEADERS)

        tracks = extract_caption_tracks(page.text)
        track = pick_caption_track(tracks, options.language)
        if track is None:
            raise EmptyResultError("Watch page lists no caption tracks", {"video_id": video_id})

        language = track.get("languageCode")
        response = await self._get(track["baseUrl"], "caption track", headers=BROWSER_HEADERS)
        return self._captions_to_result(
            response.text,
            PAGE_SCRAPE_CONFIDENCE,
            language=language,
            auto_generated=track.get("kind") == "asr",
        )


class AudioTranscription(VideoStrategy):
    """Ask an external transcription provider for the video's transcript."""

    name = "audio-transcription"

    async def _extract(self, source: SourceRef, options: AcquisitionOptions) -> StrategyResult:
        api_key = self.settings.supadata_api_key
        if not api_key:
            raise QuotaOrAuthError("Transcription provider API key is not configured")

        video_id = self._video_id(source)
        params = {"url": watch_url(video_id), "text": "true"}
        if options.language:
            params["lang"] = options.language

        response = await self._get(
            f"{self.settings.supadata_base_url.rstrip('/')}/youtube/transcript",
            "transcription provider",
            params=params,
            headers={"x-api-key": api_key},
        )
        if response.status_code == 202:
            # Long videos are transcribed as a background job
            raise NetworkOrTimeoutError("Transcription job still in progress", {"video_id": video_id})

        payload = self._json(response.text)
        text = extract_text(payload)
        if not text:
            message = extract_error(payload) or "Transcription provider returned no transcript"
            raise EmptyResultError(message, {"video_id": video_id})

        confidence = TRANSCRIPTION_DEFAULT_CONFIDENCE
        if isinstance(payload, dict):
            confidence = normalize_confidence(payload.get("confidence"), TRANSCRIPTION_DEFAULT_CONFIDENCE)
        language = payload.get("lang") if isinstance(payload, dict) else None
        return self._finish(text, confidence, provider="supadata", language=language)

    @staticmethod
    def _json(body: str) -> Optional[Any]:
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            # Some plans answer with plain text
            return body
