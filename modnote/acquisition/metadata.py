"""
Best-effort metadata lookup for sources.

``MetadataFetcher.fetch`` runs alongside extraction and never raises: every
provider failure is logged and the next fallback is tried, ending with
whatever can be derived from the source reference itself.
"""

import asyncio
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlparse

import fitz  # PyMuPDF
import httpx

from modnote.acquisition.parsers import parse_html_metadata
from modnote.acquisition.sources import extract_video_id, thumbnail_url, watch_url
from modnote.acquisition.strategies.base import BROWSER_HEADERS
from modnote.config import Settings, get_settings
from modnote.models import DocumentMetadata, SourceKind, SourceMetadata, SourceRef, VideoMetadata
from modnote.utils.logging import get_logger

logger = get_logger(__name__)

OEMBED_URL = "https://www.youtube.com/oembed"
YOUTUBE_VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"

_ISO_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def format_iso_duration(value: Optional[str]) -> Optional[str]:
    """
    Format an ISO-8601 duration as H:MM:SS or M:SS.

    Examples:
    - PT1H2M3S -> 1:02:03
    - PT4M5S -> 4:05
    - PT45S -> 0:45
    """
    if not value:
        return None
    match = _ISO_DURATION_RE.match(value)
    if not match:
        return None

    days, hours, minutes, seconds = (int(g or 0) for g in match.groups())
    hours += days * 24
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def parse_pdf_date(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse PDF date format: D:YYYYMMDDHHmmSS±HH'mm'

    Examples:
    - D:20250705111556+02'00'
    - D:20230101120000Z
    - D:20230101
    """
    if not date_str:
        return None

    try:
        if date_str.startswith("D:"):
            date_str = date_str[2:]

        match = re.match(r"(\d{4})(\d{2})?(\d{2})?(\d{2})?(\d{2})?(\d{2})?(.*)$", date_str)
        if not match:
            return None

        year = int(match.group(1))
        month = int(match.group(2) or 1)
        day = int(match.group(3) or 1)
        hour = int(match.group(4) or 0)
        minute = int(match.group(5) or 0)
        second = int(match.group(6) or 0)
        tz_str = match.group(7) or ""

        tz = timezone.utc
        tz_match = re.match(r"([+-])(\d{2})'?(\d{2})?'?", tz_str)
        if tz_match:
            sign = 1 if tz_match.group(1) == "+" else -1
            offset = timedelta(
                hours=sign * int(tz_match.group(2)),
                minutes=sign * int(tz_match.group(3) or 0),
            )
            tz = timezone(offset)

        return datetime(year, month, day, hour, minute, second, tzinfo=tz)

    except (ValueError, AttributeError):
        return None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class MetadataFetcher:
    """Look up title, author, thumbnail and similar fields for a source."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.http_client = http_client

    async def fetch(self, source: SourceRef) -> Optional[SourceMetadata]:
        """
        Fetch metadata for a source.

        Returns:
            Metadata, or None when nothing is known about the source
        """
        try:
            if source.kind is SourceKind.VIDEO_URL:
                return await self._video_metadata(source)
            if source.kind is SourceKind.PDF:
                return await self._pdf_metadata(source)
            if source.kind is SourceKind.WEB_URL:
                return await self._web_metadata(source)
            if source.kind in (SourceKind.IMAGE, SourceKind.AUDIO):
                return self._file_metadata(source)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Metadata lookup failed for {source.display_name}: {e}")
        return None

    # -------------------------------------------------------------------------
    # Video
    # -------------------------------------------------------------------------

    async def _video_metadata(self, source: SourceRef) -> Optional[VideoMetadata]:
        video_id = extract_video_id(source.url or "")
        if not video_id:
            return None

        if self.settings.youtube_api_key:
            try:
                metadata = await self._from_data_api(video_id)
                if metadata:
                    return metadata
            except (httpx.HTTPError, ValueError, KeyError) as e:
                logger.warning(f"Video data API lookup failed for {video_id}: {e}")

        try:
            metadata = await self._from_oembed(video_id)
            if metadata:
                return metadata
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"oEmbed lookup failed for {video_id}: {e}")

        return VideoMetadata(
            video_id=video_id,
            thumbnail_url=thumbnail_url(video_id),
            source_url=watch_url(video_id),
        )

    async def _from_data_api(self, video_id: str) -> Optional[VideoMetadata]:
        data = await self._get_json(
            YOUTUBE_VIDEOS_URL,
            params={
                "id": video_id,
                "part": "snippet,contentDetails,statistics",
                "key": self.settings.youtube_api_key,
            },
        )
        items = data.get("items") or []
        if not items:
            return None

        item = items[0]
        snippet = item.get("snippet", {})
        thumbnails: Dict[str, Any] = snippet.get("thumbnails", {})
        thumb = next(
            (thumbnails[q]["url"] for q in ("maxres", "high", "medium", "default") if q in thumbnails),
            thumbnail_url(video_id),
        )
        statistics = item.get("statistics", {})
        return VideoMetadata(
            video_id=video_id,
            title=snippet.get("title"),
            author=snippet.get("channelTitle"),
            description=snippet.get("description"),
            thumbnail_url=thumb,
            source_url=watch_url(video_id),
            published_at=_parse_timestamp(snippet.get("publishedAt")),
            duration=format_iso_duration(item.get("contentDetails", {}).get("duration")),
            tags=snippet.get("tags", []),
            extra={k: statistics[k] for k in ("viewCount", "likeCount") if k in statistics},
        )

    async def _from_oembed(self, video_id: str) -> Optional[VideoMetadata]:
        data = await self._get_json(
            OEMBED_URL,
            params={"url": watch_url(video_id), "format": "json"},
        )
        if not data.get("title"):
            return None
        return VideoMetadata(
            video_id=video_id,
            title=data["title"],
            author=data.get("author_name"),
            thumbnail_url=data.get("thumbnail_url") or thumbnail_url(video_id),
            source_url=watch_url(video_id),
        )

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    async def _pdf_metadata(self, source: SourceRef) -> DocumentMetadata:
        if source.is_url:
            return DocumentMetadata(filename=_url_filename(source.url), source_url=source.url)

        data = await asyncio.to_thread(source.read_bytes)
        return await asyncio.to_thread(self._read_pdf_info, data, source.filename or source.display_name)

    @staticmethod
    def _read_pdf_info(data: bytes, filename: str) -> DocumentMetadata:
        with fitz.open(stream=data, filetype="pdf") as doc:
            info = doc.metadata or {}
            keywords = [k.strip() for k in (info.get("keywords") or "").split(",") if k.strip()]
            return DocumentMetadata(
                filename=filename,
                title=info.get("title") or Path(filename).stem,
                author=info.get("author") or None,
                subject=info.get("subject") or None,
                keywords=keywords,
                published_at=parse_pdf_date(info.get("creationDate")),
                page_count=doc.page_count,
            )

    async def _web_metadata(self, source: SourceRef) -> DocumentMetadata:
        response = await self._get(source.url, headers=BROWSER_HEADERS)
        fields = parse_html_metadata(response.text)
        return DocumentMetadata(
            title=fields["title"],
            author=fields["author"],
            description=fields["description"],
            thumbnail_url=fields["image"],
            source_url=source.url,
        )

    @staticmethod
    def _file_metadata(source: SourceRef) -> Optional[DocumentMetadata]:
        name = source.filename or (source.path.name if source.path else None)
        if not name:
            return None
        return DocumentMetadata(filename=name, title=Path(name).stem)

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    async def _get(self, url: str, **kwargs: Any) -> httpx.Response:
        if self.http_client is not None:
            response = await self.http_client.get(url, **kwargs)
        else:
            async with httpx.AsyncClient(
                timeout=self.settings.http_timeout_seconds,
                follow_redirects=True,
            ) as client:
                response = await client.get(url, **kwargs)
        response.raise_for_status()
        return response

    async def _get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self._get(url, **kwargs)
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected response shape from {url}")
        return data


def _url_filename(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    name = Path(unquote(urlparse(url).path)).name
    return name or None


def create_metadata_fetcher(settings: Optional[Settings] = None) -> MetadataFetcher:
    """Create a metadata fetcher with settings."""
    return MetadataFetcher(settings=settings or get_settings())
