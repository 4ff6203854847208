"""
Local document strategies: embedded text layer and Tesseract OCR.

Both run PyMuPDF / Tesseract in a worker thread so the event loop stays free
while a large PDF is parsed.
"""

import asyncio
import io
from typing import List, Tuple

import fitz  # PyMuPDF
import pytesseract
from PIL import Image, UnidentifiedImageError

from modnote.acquisition.cleaning import significant_length
from modnote.acquisition.strategies.base import ExtractionStrategy
from modnote.models import AcquisitionOptions, SourceKind, SourceRef, StrategyResult
from modnote.utils.errors import EmptyResultError, MalformedInputError
from modnote.utils.logging import get_logger

logger = get_logger(__name__)

TEXT_LAYER_CONFIDENCE = 0.95


def open_pdf(data: bytes) -> fitz.Document:
    try:
        return fitz.open(stream=data, filetype="pdf")
    except (fitz.FileDataError, RuntimeError, ValueError) as e:
        raise MalformedInputError(f"Invalid or corrupted PDF: {e}")


def render_pdf_pages(data: bytes, max_pages: int, zoom: float = 2.0) -> Tuple[List[bytes], int]:
    """
    Render the first ``max_pages`` pages to PNG bytes.

    Returns:
        Tuple of (page images, total page count of the document)
    """
    images = []
    with open_pdf(data) as doc:
        page_count = doc.page_count
        if page_count > max_pages:
            logger.warning(f"PDF has {page_count} pages; only the first {max_pages} will be OCR'd")
        matrix = fitz.Matrix(zoom, zoom)  # 2x zoom for better OCR
        for page_num in range(min(page_count, max_pages)):
            pix = doc[page_num].get_pixmap(matrix=matrix)
            images.append(pix.tobytes("png"))
    return images, page_count


class TextLayerRead(ExtractionStrategy):
    """Read the text layer embedded in a PDF. No external call."""

    name = "text-layer"
    kinds = frozenset({SourceKind.PDF})

    async def _extract(self, source: SourceRef, options: AcquisitionOptions) -> StrategyResult:
        data = await self._load_bytes(source, self.settings.max_pdf_size_bytes)
        text, page_count = await asyncio.to_thread(self._read_text_layer, data)

        if significant_length(text) < self.settings.min_text_layer_chars:
            # Scanned PDFs carry an empty or near-empty layer; re-reading won't change that
            raise EmptyResultError(
                "PDF text layer is empty or near-empty",
                {"page_count": page_count, "chars": significant_length(text)},
                retryable=False,
            )
        return self._finish(text, TEXT_LAYER_CONFIDENCE, page_count=page_count)

    def _read_text_layer(self, data: bytes) -> Tuple[str, int]:
        with open_pdf(data) as doc:
            if doc.needs_pass:
                raise MalformedInputError("PDF is password protected")
            pages = [page.get_text() for page in doc]
            return "\n\n".join(p.strip() for p in pages if p.strip()), doc.page_count


class BasicOCR(ExtractionStrategy):
    """Tesseract OCR over an image or the rendered pages of a PDF."""

    name = "basic-ocr"
    kinds = frozenset({SourceKind.PDF, SourceKind.IMAGE})

    async def _extract(self, source: SourceRef, options: AcquisitionOptions) -> StrategyResult:
        if source.kind is SourceKind.PDF:
            data = await self._load_bytes(source, self.settings.max_pdf_size_bytes)
            images, page_count = await asyncio.to_thread(render_pdf_pages, data, self.settings.max_ocr_pages)
        else:
            images = [await self._load_bytes(source, self.settings.max_image_size_bytes)]
            page_count = 1

        texts, confidences = [], []
        for image_bytes in images:
            text, confidence = await asyncio.to_thread(self._perform_ocr, image_bytes)
            if text:
                texts.append(text)
                confidences.append(confidence)

        avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return self._finish(
            "\n\n".join(texts),
            avg_confidence,
            pages_processed=len(images),
            page_count=page_count,
        )

    def _perform_ocr(self, image_bytes: bytes) -> Tuple[str, float]:
        """
        Perform OCR on one image.

        Returns:
            Tuple of (extracted text, confidence score in 0..1)
        """
        try:
            image = Image.open(io.BytesIO(image_bytes))
        except UnidentifiedImageError as e:
            raise MalformedInputError(f"Unreadable image: {e}")

        try:
            ocr_data = pytesseract.image_to_data(
                image,
                lang=self.settings.ocr_language,
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractNotFoundError:
            raise MalformedInputError("Tesseract is not installed on this host")
        except pytesseract.TesseractError as e:
            raise MalformedInputError(f"Tesseract failed: {e}")

        # Rebuild lines so paragraph structure survives
        lines: dict = {}
        confidences = []
        for i, conf in enumerate(ocr_data["conf"]):
            if float(conf) > 0:  # -1 means no confidence
                word = ocr_data["text"][i].strip()
                if word:
                    key = (ocr_data["block_num"][i], ocr_data["par_num"][i], ocr_data["line_num"][i])
                    lines.setdefault(key, []).append(word)
                    confidences.append(float(conf))

        text_lines = []
        previous_block = None
        for (block, par, _), words in lines.items():
            if previous_block is not None and (block, par) != previous_block:
                text_lines.append("")
            text_lines.append(" ".join(words))
            previous_block = (block, par)

        avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0
        return "\n".join(text_lines), avg_confidence / 100.0
