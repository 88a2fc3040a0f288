from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

SentimentLabel = Literal["positivo", "negativo", "neutro"]


# =============================================================================
# Analysis Result Models
# =============================================================================


class WordCount(BaseModel):
    """A word and its number of occurrences."""

    word: str
    count: int


class LegalTermCount(BaseModel):
    """A legal vocabulary term and its number of occurrences."""

    term: str
    count: int


class SentimentResult(BaseModel):
    """Sentiment as returned by the provider, or consolidated across chunks."""

    overall: SentimentLabel
    score: float = Field(..., description="From -1 (very negative) to 1 (very positive)")
    analysis: str | None = None

    @field_validator("overall", mode="before")
    @classmethod
    def normalize_overall(cls, value: Any) -> Any:
        # Accept "Positivo" or " neutro " from the provider
        return value.strip().lower() if isinstance(value, str) else value


class TextStructure(BaseModel):
    """Structural metrics computed over the original text."""

    paragraphs: int
    articles: int
    sections: int


class ChunkResult(BaseModel):
    """Partial result for a single chunk; only consumed by the aggregator."""

    chunkIndex: int
    wordCount: int
    topWords: list[WordCount] = Field(default_factory=list)
    legalTerms: list[LegalTermCount] = Field(default_factory=list)
    sentiment: SentimentLabel | None = None
    error: str | None = None

    @field_validator("sentiment", mode="before")
    @classmethod
    def normalize_sentiment(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class AnalysisResult(BaseModel):
    """Consolidated analysis of a whole document."""

    wordCount: int
    characterCount: int
    topWords: list[WordCount]
    legalTerms: list[LegalTermCount]
    sentiment: SentimentResult | None = None
    structure: TextStructure
    chunksProcessed: int = 1
    processingTime: float = Field(default=0.0, description="Milliseconds")


class ProgressUpdate(BaseModel):
    """Emitted once per completed chunk."""

    current: int
    total: int
    percentage: int


# =============================================================================
# Queue Models
# =============================================================================


class AnalysisJob(BaseModel):
    """A queued analysis of a large text."""

    analysisId: str
    text: str
    priority: int = 0
    attempts: int = 0
    sourceType: str | None = "text"
    originalFilename: str | None = None
    fileSize: int | None = None


class QueueStats(BaseModel):
    """Aggregate queue counters."""

    backend: Literal["memory", "redis"]
    pendingJobs: int
    activeJobs: int
    completedJobs: int
    failedJobs: int


# =============================================================================
# Analyze Endpoint Models
# =============================================================================


class AnalyzeTextRequest(BaseModel):
    """Request body for the /api/v1/analyze-text endpoint."""

    text: str = Field(..., description="Text to analyze")


class AnalysisAcceptedResponse(BaseModel):
    """Response for texts queued for async processing (202)."""

    analysisId: str
    status: Literal["processing"] = "processing"
    progress: int = 0
    estimatedTime: int = Field(..., description="Rough estimate in seconds")


class AnalysisCompletedResponse(BaseModel):
    """Response for texts analyzed inline (200)."""

    analysisId: str
    status: Literal["completed"] = "completed"
    result: AnalysisResult


class AnalysisStatusResponse(BaseModel):
    """Response body for the /api/v1/analysis/{id}/status endpoint."""

    analysisId: str
    status: Literal["processing", "completed", "failed"]
    progress: int
    sourceType: str | None = None
    originalFilename: str | None = None
    result: AnalysisResult | None = None
    error: str | None = None
    processingTime: float | None = None
    completedAt: datetime | None = None
    estimatedTime: int | None = None


class ErrorResponse(BaseModel):
    """Error body returned by the API."""

    success: bool = False
    error: str
    code: str
    details: dict[str, Any] | None = None


# =============================================================================
# Search Models
# =============================================================================


class SearchMatch(BaseModel):
    """A completed analysis whose stored text contains the searched term."""

    id: str
    text: str
    createdAt: datetime


class SearchResponse(BaseModel):
    """Response body for the /api/v1/search-term endpoint."""

    term: str
    found: bool
    analyses: list[SearchMatch]
    totalOccurrences: int


class SearchHistoryItem(BaseModel):
    """One recorded term search."""

    term: str
    found: bool
    searchedAt: datetime
    analysisId: str | None = None


class SearchHistoryResponse(BaseModel):
    """Response body for the /api/v1/search-history endpoint."""

    searches: list[SearchHistoryItem]
    total: int


# =============================================================================
# Health & Stats Models
# =============================================================================


class CacheStats(BaseModel):
    """Result cache counters."""

    size: int
    hits: int
    misses: int
    hitRate: float
    memoryUsage: int = Field(..., description="Approximate bytes held by cached values")


class HealthResponse(BaseModel):
    """Response body for the /health endpoint."""

    status: str = "ok"
    service: str = "legal-text-analyzer"
    components: dict[str, Any] = Field(default_factory=dict)


class StatsResponse(BaseModel):
    """Response body for the /api/v1/stats endpoint."""

    database: dict[str, Any]
    queue: QueueStats
    cache: CacheStats
    sentiment: dict[str, Any]
    worker: dict[str, Any]
