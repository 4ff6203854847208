"""
HTTP service exposing acquisition and context assembly.

Endpoints:
- POST /acquire  {source, options}      -> ExtractionResult
- POST /context  {query, candidates}    -> ProcessedContext
- POST /search   {query, candidates}    -> list of SearchHit
- GET  /health
"""

from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from modnote import __version__
from modnote.acquisition import AcquisitionOrchestrator, create_orchestrator
from modnote.acquisition.sources import from_url, is_http_url
from modnote.models import (
    AcquisitionOptions,
    ContentItem,
    ExtractionResult,
    ProcessedContext,
    SearchHit,
)
from modnote.retrieval import ContextProcessor, create_context_processor
from modnote.utils.logging import get_logger

logger = get_logger(__name__)


class AcquireRequest(BaseModel):
    """Acquisition request for a remote source."""

    source: str = Field(..., description="Video or web page URL, or a URL to a PDF")
    options: AcquisitionOptions = Field(default_factory=AcquisitionOptions)


class ContextRequest(BaseModel):
    """Context or search request over a candidate snapshot."""

    query: str = Field(..., min_length=1)
    candidates: List[ContentItem] = Field(default_factory=list)
    now: Optional[datetime] = Field(None, description="Reference time for recency scoring")


class HealthResponse(BaseModel):
    status: str
    version: str
    strategies: List[str]


def create_app(
    orchestrator: Optional[AcquisitionOrchestrator] = None,
    processor: Optional[ContextProcessor] = None,
) -> FastAPI:
    """Build the FastAPI app; components are created from settings when omitted."""
    app = FastAPI(title="ModNote Content Core", version=__version__)
    app.state.orchestrator = orchestrator
    app.state.processor = processor

    def get_orchestrator(request: Request) -> AcquisitionOrchestrator:
        if request.app.state.orchestrator is None:
            request.app.state.orchestrator = create_orchestrator()
        return request.app.state.orchestrator

    def get_processor(request: Request) -> ContextProcessor:
        if request.app.state.processor is None:
            request.app.state.processor = create_context_processor()
        return request.app.state.processor

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        return HealthResponse(
            status="ok",
            version=__version__,
            strategies=get_orchestrator(request).strategy_names,
        )

    @app.post("/acquire", response_model=ExtractionResult)
    async def acquire(body: AcquireRequest, request: Request) -> ExtractionResult:
        if not is_http_url(body.source):
            raise HTTPException(status_code=422, detail="source must be an http(s) URL")

        result = await get_orchestrator(request).acquire(from_url(body.source), body.options)
        logger.info(
            f"Acquired {body.source}: success={result.success} strategy={result.strategy_used}"
        )
        return result

    @app.post("/context", response_model=ProcessedContext)
    async def context(body: ContextRequest, request: Request) -> ProcessedContext:
        return get_processor(request).process_for_query(body.candidates, body.query, now=body.now)

    @app.post("/search", response_model=List[SearchHit])
    async def search(body: ContextRequest, request: Request) -> List[SearchHit]:
        return get_processor(request).search(body.candidates, body.query, now=body.now)

    return app


app = create_app()
