"""
Parsers for caption files and HTML pages.

Caption tracks arrive as timedtext XML (``<text start dur>`` or srv3
``<p t d>``) or WebVTT; web pages arrive as raw HTML. Everything here is a
pure function over strings.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Comment

from modnote.acquisition.cleaning import collapse_whitespace

NON_CONTENT_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside", "iframe", "svg"]

_VTT_TIME_RE = re.compile(
    r"((?:\d{1,2}:)?\d{1,2}:\d{2}[.,]\d{3})\s*-->\s*((?:\d{1,2}:)?\d{1,2}:\d{2}[.,]\d{3})"
)
_VTT_TAG_RE = re.compile(r"<[^>]+>")
_CAPTIONS_BLOCK_RE = re.compile(r'"captions":(\{.*?\}),"videoDetails"', re.DOTALL)
_CAPTION_TRACKS_RE = re.compile(r'"captionTracks":(\[.*?\])', re.DOTALL)


@dataclass
class CaptionSegment:
    """A timed caption line."""

    start: float
    duration: float
    text: str


def _vtt_seconds(value: str) -> float:
    parts = value.replace(",", ".").split(":")
    seconds = float(parts[-1])
    minutes = int(parts[-2]) if len(parts) >= 2 else 0
    hours = int(parts[-3]) if len(parts) >= 3 else 0
    return hours * 3600 + minutes * 60 + seconds


def parse_webvtt(content: str) -> List[CaptionSegment]:
    segments: List[CaptionSegment] = []
    lines = content.splitlines()
    i = 0
    while i < len(lines):
        match = _VTT_TIME_RE.search(lines[i])
        i += 1
        if not match:
            continue

        text_lines = []
        while i < len(lines) and lines[i].strip() and "-->" not in lines[i]:
            text_lines.append(_VTT_TAG_RE.sub("", lines[i]))
            i += 1

        text = collapse_whitespace(" ".join(text_lines))
        if text:
            start = _vtt_seconds(match.group(1))
            end = _vtt_seconds(match.group(2))
            segments.append(CaptionSegment(start=start, duration=max(end - start, 0.0), text=text))
    return segments


def parse_timedtext_xml(content: str) -> List[CaptionSegment]:
    soup = BeautifulSoup(content, "html.parser")
    segments: List[CaptionSegment] = []

    for node in soup.find_all("text"):
        text = collapse_whitespace(node.get_text(" "))
        if text:
            segments.append(
                CaptionSegment(
                    start=float(node.get("start") or 0),
                    duration=float(node.get("dur") or 3),
                    text=text,
                )
            )
    if segments:
        return segments

    # srv3: <p t="ms" d="ms">...</p>
    for node in soup.find_all("p"):
        text = collapse_whitespace(node.get_text(" "))
        if text and node.get("t") is not None:
            segments.append(
                CaptionSegment(
                    start=float(node.get("t")) / 1000,
                    duration=float(node.get("d") or 0) / 1000,
                    text=text,
                )
            )
    return segments


def parse_captions(content: str) -> List[CaptionSegment]:
    """Parse a caption document of either supported format."""
    if not content:
        return []
    if content.lstrip().startswith("WEBVTT") or "-->" in content:
        return parse_webvtt(content)
    if "<text" in content or "<p " in content:
        return parse_timedtext_xml(content)
    return []


def segments_to_text(segments: List[CaptionSegment]) -> str:
    """Join caption lines into plain text, dropping rolled-over duplicates."""
    lines: List[str] = []
    for segment in segments:
        if lines and lines[-1] == segment.text:
            continue
        lines.append(segment.text)
    return " ".join(lines)


def extract_caption_tracks(html: str) -> List[Dict[str, Any]]:
    """Read caption track descriptors embedded in a video watch page."""
    match = _CAPTIONS_BLOCK_RE.search(html)
    if match:
        try:
            data = json.loads(match.group(1))
            tracks = data.get("playerCaptionsTracklistRenderer", {}).get("captionTracks", [])
            if tracks:
                return tracks
        except json.JSONDecodeError:
            pass

    match = _CAPTION_TRACKS_RE.search(html)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            return []
    return []


def pick_caption_track(tracks: List[Dict[str, Any]], language: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Prefer the requested language, then English, then the first track."""
    usable = [t for t in tracks if t.get("baseUrl")]
    if not usable:
        return None
    for wanted in filter(None, [language, "en"]):
        for track in usable:
            code = track.get("languageCode", "")
            if code == wanted or code.startswith(f"{wanted}-"):
                return track
    return usable[0]


def html_to_text(html: str, max_chars: Optional[int] = None) -> str:
    """Strip markup and non-content sections from a page."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(NON_CONTENT_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    root = soup.find("article") or soup.find("main") or soup.body or soup
    text = collapse_whitespace(root.get_text(" "))
    if max_chars and len(text) > max_chars:
        text = text[:max_chars].rsplit(" ", 1)[0] + "..."
    return text


def _meta(soup: BeautifulSoup, **attrs: str) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


def parse_html_metadata(html: str) -> Dict[str, Optional[str]]:
    """Title, author, description and preview image of a page."""
    soup = BeautifulSoup(html, "html.parser")
    title = _meta(soup, property="og:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip()
    return {
        "title": title,
        "author": _meta(soup, name="author"),
        "description": _meta(soup, name="description") or _meta(soup, property="og:description"),
        "image": _meta(soup, property="og:image"),
    }
