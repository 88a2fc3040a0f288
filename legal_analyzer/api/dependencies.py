"""
API Dependencies - Dependency injection for the pipeline components.
"""

from typing import Annotated

from fastapi import Depends, Request

from legal_analyzer.services.cache import ResultCache
from legal_analyzer.services.job_queue import JobQueue
from legal_analyzer.services.job_store import AnalysisStore
from legal_analyzer.services.sentiment import SentimentService
from legal_analyzer.services.submission import SubmissionService
from legal_analyzer.services.worker import AnalysisWorker


def get_submission_service(request: Request) -> SubmissionService:
    """Get the submission service from app state."""
    return request.app.state.submission_service


def get_store(request: Request) -> AnalysisStore:
    """Get the analysis record store from app state."""
    return request.app.state.store


def get_queue(request: Request) -> JobQueue:
    """Get the job queue from app state."""
    return request.app.state.queue


def get_cache(request: Request) -> ResultCache:
    """Get the result cache from app state."""
    return request.app.state.cache


def get_sentiment_service(request: Request) -> SentimentService:
    """Get the sentiment provider from app state."""
    return request.app.state.sentiment_service


def get_worker(request: Request) -> AnalysisWorker:
    """Get the analysis worker from app state."""
    return request.app.state.worker


# Type aliases for service dependencies
SubmissionServiceDep = Annotated[SubmissionService, Depends(get_submission_service)]
StoreDep = Annotated[AnalysisStore, Depends(get_store)]
QueueDep = Annotated[JobQueue, Depends(get_queue)]
CacheDep = Annotated[ResultCache, Depends(get_cache)]
SentimentServiceDep = Annotated[SentimentService, Depends(get_sentiment_service)]
WorkerDep = Annotated[AnalysisWorker, Depends(get_worker)]
