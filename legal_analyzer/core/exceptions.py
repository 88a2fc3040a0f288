"""
Error taxonomy for the analysis pipeline.

Validation errors surface synchronously to the caller. Everything raised
while a queued job runs is only observable through the analysis record.
"""

from typing import Any


class AnalysisError(Exception):
    """Base exception for all analysis errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "ANALYSIS_ERROR"
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for logging and API responses."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class TextValidationError(AnalysisError):
    """Input text is empty, not a string, or too large."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, error_code="VALIDATION_ERROR", context=context)


class AnalysisNotFoundError(AnalysisError):
    """No analysis record exists for the given ID."""

    def __init__(self, analysis_id: str):
        super().__init__(
            "Análise não encontrada",
            error_code="ANALYSIS_NOT_FOUND",
            context={"analysis_id": analysis_id},
        )


class ChunkProcessingError(AnalysisError):
    """Analysis of a single chunk failed. Never fatal to the job."""

    def __init__(self, chunk_index: int, original_error: Exception):
        super().__init__(
            f"Falha ao analisar chunk {chunk_index}: {original_error}",
            error_code="CHUNK_PROCESSING_ERROR",
            context={"chunk_index": chunk_index, "original_error": str(original_error)},
        )
        self.chunk_index = chunk_index


class RetryableJobError(AnalysisError):
    """Transient job failure; the queue backend decides whether to retry."""

    def __init__(self, analysis_id: str, attempts: int, original_error: Exception):
        super().__init__(
            str(original_error) or original_error.__class__.__name__,
            error_code="JOB_FAILED",
            context={"analysis_id": analysis_id, "attempts": attempts},
        )
        self.analysis_id = analysis_id
        self.attempts = attempts


class TerminalJobError(AnalysisError):
    """Retry budget exhausted; the job is dropped from the queue."""

    def __init__(self, analysis_id: str, attempts: int, last_error: str):
        super().__init__(
            f"Job {analysis_id} failed after {attempts} attempts: {last_error}",
            error_code="JOB_PERMANENTLY_FAILED",
            context={"analysis_id": analysis_id, "attempts": attempts},
        )
        self.analysis_id = analysis_id
        self.attempts = attempts
