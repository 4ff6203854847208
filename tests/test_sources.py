"""
Tests for source construction and classification.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from modnote.acquisition.sources import (
    classify,
    detect_kind,
    extract_video_id,
    from_bytes,
    from_input,
    from_path,
    from_url,
    thumbnail_url,
)
from modnote.models import SourceKind, SourceRef


class TestVideoIds:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        ],
    )
    def test_extracts_id_from_known_forms(self, url):
        assert extract_video_id(url) == "dQw4w9WgXcQ"

    def test_non_video_url(self):
        assert extract_video_id("https://example.com/watch?v=abc") is None

    def test_thumbnail_url(self):
        assert thumbnail_url("dQw4w9WgXcQ") == "https://img.youtube.com/vi/dQw4w9WgXcQ/maxresdefault.jpg"


class TestClassification:
    def test_video_url(self):
        assert from_url("https://youtu.be/dQw4w9WgXcQ").kind is SourceKind.VIDEO_URL

    def test_web_url(self):
        assert from_url("https://example.com/article").kind is SourceKind.WEB_URL

    def test_pdf_url(self):
        assert from_url("https://example.com/papers/report.PDF").kind is SourceKind.PDF

    def test_file_suffixes(self, tmp_path):
        assert from_path(tmp_path / "scan.pdf").kind is SourceKind.PDF
        assert from_path(tmp_path / "photo.JPG").kind is SourceKind.IMAGE
        assert from_path(tmp_path / "memo.m4a").kind is SourceKind.AUDIO

    def test_mime_type_wins_over_suffix(self):
        source = from_bytes(b"data", "upload.bin", mime_type="image/png")
        assert source.kind is SourceKind.IMAGE

    def test_pdf_magic_bytes(self):
        assert from_bytes(b"%PDF-1.7 ...", "upload").kind is SourceKind.PDF

    def test_unknown(self):
        assert from_bytes(b"hello", "notes.xyz").kind is SourceKind.UNKNOWN

    def test_explicit_kind_is_kept(self):
        source = SourceRef(url="https://example.com/a", kind=SourceKind.PDF)
        assert detect_kind(source) is SourceKind.WEB_URL
        assert classify(source).kind is SourceKind.PDF

    def test_from_input_dispatches(self, tmp_path):
        assert from_input("https://youtu.be/dQw4w9WgXcQ").is_url
        local = from_input(str(tmp_path / "doc.pdf"))
        assert local.path == Path(tmp_path / "doc.pdf")


class TestSourceRef:
    def test_requires_exactly_one_locator(self):
        with pytest.raises(ValidationError):
            SourceRef()
        with pytest.raises(ValidationError):
            SourceRef(url="https://example.com", data=b"x")

    def test_is_immutable(self):
        source = SourceRef(url="https://example.com")
        with pytest.raises(ValidationError):
            source.url = "https://other.example.com"

    def test_read_bytes(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_bytes(b"abc")

        assert SourceRef(path=path).read_bytes() == b"abc"
        assert SourceRef(data=b"xyz").read_bytes() == b"xyz"
        assert SourceRef(data=b"xyz").size_bytes() == 3
