"""
Provider response adapters.

Transcription and OCR providers disagree on field names ("content",
"transcript", "text", nested "result", segment lists) and on how confidence
is expressed. These helpers fold every known shape into plain text plus a
0..1 confidence so strategies hand the orchestrator a single format.
"""

import re
from typing import Any, Iterable, Optional

TEXT_FIELDS = ("content", "transcript", "text", "ParsedText", "transcription")
NESTED_FIELDS = ("result", "data", "output")
SEGMENT_FIELDS = ("segments", "chunks", "ParsedResults")


def _join_segments(segments: Iterable[Any]) -> Optional[str]:
    parts = []
    for segment in segments:
        if isinstance(segment, str):
            parts.append(segment.strip())
        elif isinstance(segment, dict):
            value = extract_text(segment)
            if value:
                parts.append(value.strip())
    joined = " ".join(p for p in parts if p)
    return joined or None


def extract_text(payload: Any) -> Optional[str]:
    """
    Pull transcript text out of a provider payload.

    Accepts a bare string, a list of segments, or a dict using any of the
    known field names, possibly nested under "result"/"data"/"output".
    """
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload.strip() or None
    if isinstance(payload, list):
        return _join_segments(payload)
    if not isinstance(payload, dict):
        return None

    for field in TEXT_FIELDS:
        value = payload.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, list):
            joined = _join_segments(value)
            if joined:
                return joined

    for field in SEGMENT_FIELDS:
        value = payload.get(field)
        if isinstance(value, list):
            joined = _join_segments(value)
            if joined:
                return joined

    for field in NESTED_FIELDS:
        if field in payload:
            nested = extract_text(payload[field])
            if nested:
                return nested
    return None


def normalize_confidence(value: Any, default: float = 0.0) -> float:
    """
    Convert provider confidence to 0..1.

    Handles fractions (0.85), percentages (85 or "85%"), and strings.
    """
    if value is None:
        return default
    if isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value)
        if not match:
            return default
        number = float(match.group())
        if "%" in value:
            number /= 100
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        return default

    if number > 1:
        number /= 100
    return min(max(number, 0.0), 1.0)


def extract_error(payload: Any) -> Optional[str]:
    """Provider-reported error message, if any."""
    if not isinstance(payload, dict):
        return None
    for field in ("error", "message", "ErrorMessage", "detail"):
        value = payload.get(field)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, list) and value:
            return "; ".join(str(v) for v in value)
        if isinstance(value, dict):
            nested = value.get("message")
            if nested:
                return str(nested)
    return None
