"""
Legal Text Analyzer - Main Application Entrypoint

Word statistics, legal-term extraction, structure metrics and sentiment for
legal documents, with queued chunked analysis for large texts.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from legal_analyzer.api.routes import router
from legal_analyzer.core.config import get_settings
from legal_analyzer.core.telemetry import setup_telemetry, shutdown_telemetry
from legal_analyzer.services.analysis import LegalTextAnalysisService
from legal_analyzer.services.cache import ResultCache
from legal_analyzer.services.job_queue import create_job_queue
from legal_analyzer.services.job_store import AnalysisStore
from legal_analyzer.services.sentiment import SentimentService
from legal_analyzer.services.submission import SubmissionService
from legal_analyzer.services.worker import AnalysisWorker

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the pipeline components and starts the worker on startup,
    drains the worker and closes the queue, store and cache on shutdown.
    """
    logger.info("Starting Legal Text Analyzer...")

    cache = ResultCache(
        default_ttl=settings.cache_ttl_seconds,
        check_period=settings.cache_check_period_seconds,
    )
    cache.start()

    sentiment_service = SentimentService(
        api_key=settings.google_api_key,
        model=settings.sentiment_model,
        timeout=settings.sentiment_timeout_seconds,
        min_interval=settings.sentiment_min_interval_seconds,
    )
    analysis_service = LegalTextAnalysisService(
        cache,
        sentiment_service,
        chunk_size=settings.chunk_size,
        min_chunk_size=settings.min_chunk_size,
        batch_size=settings.chunk_batch_size,
        sentiment_chunk_limit=settings.sentiment_chunk_limit,
        max_text_size=settings.max_text_size,
    )
    store = AnalysisStore()
    store.start(
        days_to_keep=settings.record_retention_days,
        interval=settings.record_cleanup_interval_seconds,
    )
    queue = await create_job_queue(settings)
    worker = AnalysisWorker(
        queue,
        analysis_service,
        store,
        concurrency=settings.queue_concurrency,
        poll_interval=settings.worker_poll_interval_seconds,
    )
    submission_service = SubmissionService(
        analysis_service,
        queue,
        store,
        async_threshold=settings.async_threshold,
        text_preview=settings.stored_text_preview,
    )

    # Store in app state for dependency injection
    app.state.cache = cache
    app.state.sentiment_service = sentiment_service
    app.state.analysis_service = analysis_service
    app.state.store = store
    app.state.queue = queue
    app.state.worker = worker
    app.state.submission_service = submission_service

    worker.start()
    logger.info(f"Legal Text Analyzer started successfully (queue backend={queue.backend})")

    yield

    # Cleanup on shutdown
    logger.info("Shutting down Legal Text Analyzer...")
    await worker.stop()
    await queue.close()
    await store.close()
    await cache.close()
    shutdown_telemetry()
    logger.info("Legal Text Analyzer shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Legal Text Analyzer",
    description="Statistics, legal terms, structure and sentiment for legal documents",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.cors_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)

# OpenTelemetry instrumentation (after app is fully configured)
setup_telemetry(app, settings)
