"""
Source reference construction and classification.

Builds ``SourceRef`` values from URLs, paths and uploads and decides which
``SourceKind`` they are, which in turn selects the strategy chain.
"""

import re
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

from modnote.models import SourceKind, SourceRef

VIDEO_ID_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?(?:[^#]*&)?v=|youtu\.be/|youtube\.com/embed/)([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/(?:shorts|live)/([A-Za-z0-9_-]{11})"),
]

PDF_SUFFIXES = {".pdf"}
IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tif", ".tiff", ".webp"}
AUDIO_SUFFIXES = {".mp3", ".wav", ".m4a", ".ogg", ".flac", ".webm", ".mp4", ".mpeg", ".mpga"}


def extract_video_id(url: str) -> Optional[str]:
    """Return the 11-character video id of a YouTube link, or None."""
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def thumbnail_url(video_id: str, quality: str = "maxres") -> str:
    names = {
        "default": "default.jpg",
        "medium": "mqdefault.jpg",
        "high": "hqdefault.jpg",
        "maxres": "maxresdefault.jpg",
    }
    return f"https://img.youtube.com/vi/{video_id}/{names.get(quality, 'maxresdefault.jpg')}"


def detect_kind(source: SourceRef) -> SourceKind:
    """Classify a source by URL pattern, MIME type, then file suffix."""
    if source.url is not None:
        if extract_video_id(source.url):
            return SourceKind.VIDEO_URL
        if is_http_url(source.url):
            path_suffix = Path(urlparse(source.url).path).suffix.lower()
            if path_suffix in PDF_SUFFIXES:
                return SourceKind.PDF
            return SourceKind.WEB_URL
        return SourceKind.UNKNOWN

    mime = source.effective_mime_type or ""
    if mime == "application/pdf":
        return SourceKind.PDF
    if mime.startswith("image/"):
        return SourceKind.IMAGE
    if mime.startswith("audio/") or mime.startswith("video/"):
        return SourceKind.AUDIO

    suffix = source.suffix
    if suffix in PDF_SUFFIXES:
        return SourceKind.PDF
    if suffix in IMAGE_SUFFIXES:
        return SourceKind.IMAGE
    if suffix in AUDIO_SUFFIXES:
        return SourceKind.AUDIO

    data = source.data
    if data is not None and data[:5] == b"%PDF-":
        return SourceKind.PDF
    return SourceKind.UNKNOWN


def classify(source: SourceRef) -> SourceRef:
    """Return the source with ``kind`` filled in when it was left unknown."""
    if source.kind is not SourceKind.UNKNOWN:
        return source
    return source.model_copy(update={"kind": detect_kind(source)})


def from_url(url: str) -> SourceRef:
    return classify(SourceRef(url=url.strip()))


def from_path(path: Union[str, Path], mime_type: Optional[str] = None) -> SourceRef:
    path = Path(path)
    return classify(SourceRef(path=path, filename=path.name, mime_type=mime_type))


def from_bytes(data: bytes, filename: str, mime_type: Optional[str] = None) -> SourceRef:
    return classify(SourceRef(data=data, filename=filename, mime_type=mime_type))


def from_input(value: str) -> SourceRef:
    """Build a source from CLI-style input: a URL or a local file path."""
    if is_http_url(value):
        return from_url(value)
    return from_path(value)
