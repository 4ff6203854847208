"""
Raw web page scrape.
"""

from modnote.acquisition.parsers import html_to_text, parse_html_metadata
from modnote.acquisition.strategies.base import BROWSER_HEADERS, ExtractionStrategy
from modnote.models import AcquisitionOptions, SourceKind, SourceRef, StrategyResult
from modnote.utils.errors import MalformedInputError

WEB_SCRAPE_CONFIDENCE = 0.6


class WebPageScrape(ExtractionStrategy):
    """Fetch an HTML page and keep its readable text."""

    name = "web-scrape"
    kinds = frozenset({SourceKind.WEB_URL})

    async def _extract(self, source: SourceRef, options: AcquisitionOptions) -> StrategyResult:
        response = await self._get(source.url, "web page", headers=BROWSER_HEADERS)

        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type and not content_type.startswith("text/"):
            raise MalformedInputError(
                f"Unsupported content type {content_type!r}",
                {"url": source.url},
            )

        html = response.text
        text = html_to_text(html, max_chars=self.settings.web_scrape_max_chars)
        title = parse_html_metadata(html).get("title")
        return self._finish(text, WEB_SCRAPE_CONFIDENCE, title=title, final_url=str(response.url))
