"""
Base extraction strategy class.

Every concrete technique inherits from ``ExtractionStrategy``. Subclasses
implement ``_extract`` and raise the typed errors from
``modnote.utils.errors``; ``extract`` turns those into structured failed
results so expected failures never cross the orchestrator boundary.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, ClassVar, FrozenSet, Optional

import httpx

from modnote.acquisition.cleaning import TextCleaner, default_cleaner, significant_length
from modnote.config import Settings, get_settings
from modnote.models import AcquisitionOptions, SourceKind, SourceRef, StrategyResult
from modnote.utils.errors import (
    EmptyResultError,
    ExtractionError,
    MalformedInputError,
    classify_exception,
    error_for_kind,
    raise_for_provider_status,
)
from modnote.utils.logging import get_logger

logger = get_logger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}


class ExtractionStrategy(ABC):
    """Abstract base class for extraction strategies."""

    name: ClassVar[str] = ""
    kinds: ClassVar[FrozenSet[SourceKind]] = frozenset()

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        cleaner: Optional[TextCleaner] = None,
    ) -> None:
        """
        Initialize the strategy.

        Args:
            settings: Settings to read provider keys and limits from
            http_client: Shared HTTP client; a short-lived one is opened per call otherwise
            cleaner: Text cleaner applied to provider output
        """
        self.settings = settings or get_settings()
        self.http_client = http_client
        self.cleaner = cleaner or default_cleaner

    def applies_to(self, source: SourceRef) -> bool:
        """Whether this strategy can handle the source at all."""
        return source.kind in self.kinds

    async def extract(
        self,
        source: SourceRef,
        options: Optional[AcquisitionOptions] = None,
    ) -> StrategyResult:
        """
        Run one extraction attempt.

        Typed extraction errors and recognised provider exceptions come back
        as failed results; anything else propagates.
        """
        options = options or AcquisitionOptions()
        if not self.applies_to(source):
            return StrategyResult.failed(
                MalformedInputError.kind.value,
                f"{self.name} does not apply to {source.kind.value} sources",
                retryable=False,
            )

        try:
            return await self._extract(source, options)
        except ExtractionError as e:
            logger.debug(f"{self.name} failed: {e}")
            return StrategyResult.failed(e.kind.value, str(e), retryable=e.retryable)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            kind = classify_exception(e)
            if kind is None:
                raise
            error = error_for_kind(kind, f"{type(e).__name__}: {e}")
            logger.debug(f"{self.name} provider error: {error}")
            return StrategyResult.failed(kind.value, str(error), retryable=error.retryable)

    @abstractmethod
    async def _extract(self, source: SourceRef, options: AcquisitionOptions) -> StrategyResult:
        """Perform the single external call (or local read) for this technique."""
        pass

    def _finish(self, raw_text: Optional[str], confidence: float, **metadata) -> StrategyResult:
        """Clean provider text and wrap it, failing on empty output."""
        text = self.cleaner.clean(raw_text)
        if significant_length(text) == 0:
            raise EmptyResultError(f"{self.name} returned no text")
        return StrategyResult.ok(text, confidence, **metadata)

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http_client is not None:
            yield self.http_client
            return
        async with httpx.AsyncClient(
            timeout=self.settings.http_timeout_seconds,
            follow_redirects=True,
        ) as client:
            yield client

    async def _get(self, url: str, provider: str, **kwargs) -> httpx.Response:
        """GET a URL and raise the typed error for a failed status."""
        async with self._http() as client:
            response = await client.get(url, **kwargs)
        raise_for_provider_status(response, provider)
        return response

    async def _load_bytes(self, source: SourceRef, max_bytes: int) -> bytes:
        """Local bytes for path/data sources, or a download for URL sources."""
        if source.is_url:
            response = await self._get(source.url, "download", headers=BROWSER_HEADERS)
            data = response.content
        else:
            try:
                data = await asyncio.to_thread(source.read_bytes)
            except OSError as e:
                raise MalformedInputError(f"Cannot read {source.display_name}: {e}")

        if not data:
            raise MalformedInputError(f"{source.display_name} is empty")
        if len(data) > max_bytes:
            raise MalformedInputError(
                f"{source.display_name} is too large",
                {"size_bytes": len(data), "max_bytes": max_bytes},
            )
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
