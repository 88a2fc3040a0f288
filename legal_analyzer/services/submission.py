"""
Submission Service - accepts texts for analysis.

Small texts are analyzed inline and returned with the result. Large texts
are recorded as "processing", queued, and acknowledged immediately; their
outcome is only observable by polling the analysis record.
"""

import logging
import math
import uuid
from datetime import datetime, timezone

from opentelemetry import trace

from legal_analyzer.core.exceptions import AnalysisNotFoundError
from legal_analyzer.schemas.models import (
    AnalysisAcceptedResponse,
    AnalysisCompletedResponse,
    AnalysisJob,
    AnalysisStatusResponse,
)
from legal_analyzer.services.analysis import LegalTextAnalysisService, validate_text
from legal_analyzer.services.job_queue import JobQueue, calculate_priority
from legal_analyzer.services.job_store import AnalysisStore
from legal_analyzer.services.text_analysis import is_legal_text

logger = logging.getLogger(__name__)

# Rough throughput used for time estimates: 1000 characters per second
CHARS_PER_SECOND = 1000


class SubmissionService:
    """Routes texts to inline analysis or to the job queue."""

    def __init__(
        self,
        analysis_service: LegalTextAnalysisService,
        queue: JobQueue,
        store: AnalysisStore,
        *,
        async_threshold: int = 50_000,
        text_preview: int = 5000,
    ):
        self.analysis_service = analysis_service
        self.queue = queue
        self.store = store
        self.async_threshold = async_threshold
        self.text_preview = text_preview

    async def accept_text(
        self,
        text: str,
        *,
        source_type: str = "text",
        original_filename: str | None = None,
        file_size: int | None = None,
    ) -> AnalysisCompletedResponse | AnalysisAcceptedResponse:
        """
        Validate and analyze or enqueue a text.

        Raises:
            TextValidationError: Before anything is recorded or queued.
        """
        validate_text(text, self.analysis_service.max_text_size)
        analysis_id = str(uuid.uuid4())

        await self.store.create_analysis(
            analysis_id,
            text[: self.text_preview],
            len(text),
            analysis_type="legal" if is_legal_text(text) else "general",
            source_type=source_type,
            original_filename=original_filename,
            file_size=file_size,
        )

        if len(text) < self.async_threshold:
            logger.info(f"Processing text synchronously ({len(text)} chars)")
            return await self._analyze_inline(analysis_id, text)

        logger.info(f"Queueing text for async processing ({len(text)} chars)")
        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("analysis.id", analysis_id)
            span.set_attribute("analysis.text_length", len(text))

        await self.queue.add_job(
            AnalysisJob(
                analysisId=analysis_id,
                text=text,
                priority=calculate_priority(len(text)),
                attempts=0,
                sourceType=source_type,
                originalFilename=original_filename,
                fileSize=file_size,
            )
        )
        return AnalysisAcceptedResponse(
            analysisId=analysis_id,
            estimatedTime=math.ceil(len(text) / CHARS_PER_SECOND),
        )

    async def get_status(self, analysis_id: str) -> AnalysisStatusResponse:
        """
        Raises:
            AnalysisNotFoundError: If no record exists for the ID.
        """
        record = await self.store.get_analysis(analysis_id)
        if record is None:
            raise AnalysisNotFoundError(analysis_id)

        estimated_time = None
        if record.status == "processing":
            remaining = 1 - record.progress / 100
            estimated_time = math.ceil(record.text_length / CHARS_PER_SECOND * remaining)

        return AnalysisStatusResponse(
            analysisId=record.id,
            status=record.status,
            progress=record.progress,
            sourceType=record.source_type,
            originalFilename=record.original_filename,
            result=record.result if record.status == "completed" else None,
            error=record.error,
            processingTime=record.processing_time,
            completedAt=record.completed_at,
            estimatedTime=estimated_time,
        )

    async def _analyze_inline(self, analysis_id: str, text: str) -> AnalysisCompletedResponse:
        try:
            result = await self.analysis_service.analyze_text(text)
        except Exception as e:
            await self.store.update_analysis(
                analysis_id,
                status="failed",
                error=str(e),
                failed_at=datetime.now(timezone.utc),
            )
            raise

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
        return AnalysisCompletedResponse(analysisId=analysis_id, result=result)
