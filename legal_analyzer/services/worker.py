"""
Analysis Worker - runs queued analyses under a concurrency bound.

With the memory queue the worker drives a polling loop that claims jobs
while fewer than `concurrency` are active. With Redis the queue's consumer
calls process_job() itself. Either way, process_job() persists every
status transition of the analysis record.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from opentelemetry import trace

from legal_analyzer.core.exceptions import RetryableJobError
from legal_analyzer.schemas.models import AnalysisJob, AnalysisResult, ProgressUpdate
from legal_analyzer.services.analysis import LegalTextAnalysisService
from legal_analyzer.services.job_queue import JobQueue, MemoryJobQueue
from legal_analyzer.services.job_store import AnalysisStore

logger = logging.getLogger(__name__)


class AnalysisWorker:
    """Processes analysis jobs pulled from a JobQueue."""

    def __init__(
        self,
        queue: JobQueue,
        analysis_service: LegalTextAnalysisService,
        store: AnalysisStore,
        concurrency: int = 2,
        poll_interval: float = 1.0,
    ):
        self.queue = queue
        self.analysis_service = analysis_service
        self.store = store
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self._running = False
        self._active: set[str] = set()
        self._consumer: asyncio.Task | None = None
        self._started_at: float | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_jobs(self) -> int:
        return len(self._active)

    def start(self) -> None:
        """Start consuming jobs. Requires a running event loop."""
        if self._running:
            logger.warning("Worker is already running")
            return

        self._running = True
        self._started_at = time.monotonic()
        logger.info(f"Starting analysis worker with concurrency: {self.concurrency}")
        self._consumer = self.queue.start_consumer(self)

    async def stop(self) -> None:
        """Stop claiming new jobs and wait for the active ones to finish."""
        if not self._running:
            return
        self._running = False
        logger.info("Stopping analysis worker")
        if self._consumer is not None:
            await self._consumer
            self._consumer = None

    async def run_memory_loop(self, queue: MemoryJobQueue) -> None:
        """Claim jobs from the memory queue while below the concurrency bound."""
        logger.info("Starting job processing loop")
        in_flight: set[asyncio.Task] = set()

        while self._running:
            if len(self._active) < self.concurrency:
                job = queue.get_next_job()
                if job is not None:
                    self._active.add(job.analysisId)
                    task = asyncio.create_task(self._run_memory_job(queue, job))
                    in_flight.add(task)
                    task.add_done_callback(in_flight.discard)
                    continue
            await queue.wait_for_job(self.poll_interval)

        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("Job processing loop stopped")

    async def _run_memory_job(self, queue: MemoryJobQueue, job: AnalysisJob) -> None:
        try:
            await self.process_job(job)
        except Exception as e:
            if not queue.fail_job(job.analysisId, e):
                logger.error(f"Job {job.analysisId} permanently failed")
        else:
            queue.complete_job(job.analysisId)

    async def process_job(self, job: AnalysisJob) -> AnalysisResult:
        """
        Run one analysis and persist its outcome.

        Raises:
            RetryableJobError: If the analysis failed. The record has already
                been marked "failed"; the queue decides whether to retry.
        """
        analysis_id = job.analysisId
        self._active.add(analysis_id)
        tracer = trace.get_tracer(__name__)
        try:
            with tracer.start_as_current_span(
                "worker.process_job",
                attributes={
                    "analysis.id": analysis_id,
                    "analysis.text_length": len(job.text),
                    "analysis.attempts": job.attempts,
                    "analysis.priority": job.priority,
                },
            ):
                logger.info(f"Processing job: {analysis_id}")
                await self.store.update_analysis(
                    analysis_id, status="processing", progress=0, clear_error=True
                )

                last_progress = 0

                async def report_progress(update: ProgressUpdate) -> None:
                    nonlocal last_progress
                    # Chunks in a batch finish in any order; never move backwards.
                    if update.percentage <= last_progress:
                        return
                    last_progress = update.percentage
                    await self.store.update_analysis(analysis_id, progress=update.percentage)
                    logger.debug(f"Job progress updated: {analysis_id} - {update.percentage}%")

                try:
                    result = await self.analysis_service.analyze_text(
                        job.text, on_progress=report_progress
                    )
                except Exception as e:
                    logger.error(f"Analysis failed for job {analysis_id}: {e}", exc_info=True)
                    await self.store.update_analysis(
                        analysis_id,
                        status="failed",
                        error=str(e) or e.__class__.__name__,
                        failed_at=datetime.now(timezone.utc),
                    )
                    raise RetryableJobError(analysis_id, job.attempts + 1, e) from e

                await self.store.update_analysis(
                    analysis_id,
                    status="completed",
                    progress=100,
                    result=result,
                    processing_time=result.processingTime,
                    chunks_processed=result.chunksProcessed,
                    completed_at=datetime.now(timezone.utc),
                    clear_error=True,
                )
                logger.info(f"Analysis completed: {analysis_id} ({result.processingTime}ms)")
                return result
        finally:
            self._active.discard(analysis_id)

    def get_stats(self) -> dict:
        uptime = time.monotonic() - self._started_at if self._started_at is not None else 0.0
        return {
            "isRunning": self._running,
            "concurrency": self.concurrency,
            "activeJobs": len(self._active),
            "backend": self.queue.backend,
            "uptime": round(uptime, 1),
        }
