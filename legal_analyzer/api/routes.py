"""
API Routes - Endpoint definitions for the Legal Text Analyzer.
"""

import logging

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse
from opentelemetry import trace

from legal_analyzer.api.dependencies import (
    CacheDep,
    QueueDep,
    SentimentServiceDep,
    StoreDep,
    SubmissionServiceDep,
    WorkerDep,
)
from legal_analyzer.core.exceptions import AnalysisNotFoundError, TextValidationError
from legal_analyzer.schemas.models import (
    AnalysisAcceptedResponse,
    AnalysisCompletedResponse,
    AnalysisStatusResponse,
    AnalyzeTextRequest,
    HealthResponse,
    SearchHistoryItem,
    SearchHistoryResponse,
    SearchMatch,
    SearchResponse,
    StatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(
    queue: QueueDep,
    cache: CacheDep,
    sentiment_service: SentimentServiceDep,
    worker: WorkerDep,
):
    """
    Health check endpoint for load balancers and monitoring.

    Returns 503 when the queue backend cannot report its counters.
    """
    components = {
        "cache": cache.get_stats().model_dump(),
        "sentiment": {"enabled": sentiment_service.enabled},
        "worker": {"isRunning": worker.is_running, "activeJobs": worker.active_jobs},
    }
    try:
        components["queue"] = {"status": "healthy", **(await queue.get_stats()).model_dump()}
    except Exception as e:
        logger.error(f"Queue health check failed: {e}")
        components["queue"] = {"status": "unhealthy", "error": str(e)}
        body = HealthResponse(status="unhealthy", components=components)
        return JSONResponse(status_code=503, content=body.model_dump())

    return HealthResponse(components=components)


@router.post(
    "/api/v1/analyze-text",
    response_model=AnalysisCompletedResponse | AnalysisAcceptedResponse,
    tags=["Analysis"],
)
async def analyze_text(
    request: AnalyzeTextRequest,
    submission_service: SubmissionServiceDep,
):
    """
    Analyze a legal text.

    Texts below the async threshold are analyzed inline (200). Larger texts
    are queued (202); poll GET /api/v1/analysis/{analysisId}/status for the
    outcome.
    """
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute("analysis.text_length", len(request.text))

    try:
        response = await submission_service.accept_text(request.text)
    except TextValidationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())

    if isinstance(response, AnalysisAcceptedResponse):
        return JSONResponse(status_code=202, content=response.model_dump(mode="json"))
    return response


@router.get(
    "/api/v1/analysis/{analysis_id}/status",
    response_model=AnalysisStatusResponse,
    tags=["Analysis"],
)
async def analysis_status(
    analysis_id: str,
    submission_service: SubmissionServiceDep,
) -> AnalysisStatusResponse:
    """
    Poll an analysis. Includes the result once completed and the error once
    failed. Returns 404 if the analysis is unknown.
    """
    try:
        return await submission_service.get_status(analysis_id)
    except AnalysisNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.to_dict())


@router.get("/api/v1/search-term", response_model=SearchResponse, tags=["Search"])
async def search_term(
    store: StoreDep,
    term: str = Query(..., min_length=2, max_length=100),
) -> SearchResponse:
    """Find completed analyses whose stored text contains the term."""
    logger.info(f"Searching for term: {term}")
    records, occurrences = await store.search_term(term)
    return SearchResponse(
        term=term,
        found=bool(records),
        analyses=[
            SearchMatch(id=record.id, text=record.text, createdAt=record.created_at)
            for record in records
        ],
        totalOccurrences=occurrences,
    )


@router.get("/api/v1/search-history", response_model=SearchHistoryResponse, tags=["Search"])
async def search_history(
    store: StoreDep,
    limit: int = Query(100, ge=1, le=1000),
) -> SearchHistoryResponse:
    """Recent term searches, newest first."""
    entries = await store.get_search_history(limit)
    return SearchHistoryResponse(
        searches=[
            SearchHistoryItem(
                term=entry.term,
                found=entry.found,
                searchedAt=entry.searched_at,
                analysisId=entry.analysis_id,
            )
            for entry in entries
        ],
        total=len(entries),
    )


@router.get("/api/v1/stats", response_model=StatsResponse, tags=["Health"])
async def get_stats(
    store: StoreDep,
    queue: QueueDep,
    cache: CacheDep,
    sentiment_service: SentimentServiceDep,
    worker: WorkerDep,
) -> StatsResponse:
    """Counters from every pipeline component."""
    return StatsResponse(
        database=await store.get_stats(),
        queue=await queue.get_stats(),
        cache=cache.get_stats(),
        sentiment=sentiment_service.get_stats(),
        worker=worker.get_stats(),
    )
