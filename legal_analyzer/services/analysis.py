"""
Legal Text Analysis Service - runs the full analysis of one document.

Small documents are analyzed in one pass. Documents longer than twice the
chunk size are split by the chunk planner, analyzed in bounded parallel
batches, and consolidated. Results are cached by content fingerprint.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

from opentelemetry import trace

from legal_analyzer.core.exceptions import ChunkProcessingError, TextValidationError
from legal_analyzer.schemas.models import (
    AnalysisResult,
    ChunkResult,
    ProgressUpdate,
    SentimentResult,
)
from legal_analyzer.services.aggregation import consolidate_chunk_results
from legal_analyzer.services.cache import ResultCache, generate_key
from legal_analyzer.services.chunking import create_chunks, needs_chunking
from legal_analyzer.services.text_analysis import (
    TOP_WORDS_CHUNK,
    basic_analysis,
    extract_legal_terms,
    extract_words,
    top_words,
    word_frequency,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressUpdate], Awaitable[None]]

CHUNK_FAILED_MARKER = "Falha ao analisar chunk"


class SentimentProvider(Protocol):
    async def analyze_sentiment(self, text: str) -> SentimentResult: ...


def validate_text(text: object, max_text_size: int) -> str:
    """Reject non-string, blank or oversized input before any work is queued."""
    if not isinstance(text, str):
        raise TextValidationError("Texto inválido", context={"type": type(text).__name__})

    if not text.strip():
        raise TextValidationError("Texto não pode estar vazio")

    if len(text) > max_text_size:
        raise TextValidationError(
            f"Texto muito grande (máximo {max_text_size} caracteres)",
            context={"length": len(text), "max_text_size": max_text_size},
        )

    return text


class LegalTextAnalysisService:
    """Analyzes legal text with caching, chunking and bounded parallelism."""

    def __init__(
        self,
        cache: ResultCache,
        sentiment: SentimentProvider,
        *,
        chunk_size: int = 3000,
        min_chunk_size: int = 500,
        batch_size: int = 5,
        sentiment_chunk_limit: int = 3,
        max_text_size: int = 2_000_000,
    ):
        self.cache = cache
        self.sentiment = sentiment
        self.chunk_size = chunk_size
        self.min_chunk_size = min_chunk_size
        self.batch_size = batch_size
        self.sentiment_chunk_limit = sentiment_chunk_limit
        self.max_text_size = max_text_size

    async def analyze_text(
        self, text: str, on_progress: ProgressCallback | None = None
    ) -> AnalysisResult:
        """
        Analyze a document, returning the cached result when the exact same
        text was analyzed within the cache TTL.

        Args:
            text: The document text.
            on_progress: Awaited once per finished chunk when chunking is used.

        Raises:
            TextValidationError: If the text is empty, not a string, or too large.
        """
        validate_text(text, self.max_text_size)

        cache_key = generate_key(text)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info("Returning cached analysis result")
            return cached

        start_time = time.perf_counter()
        if needs_chunking(text, self.chunk_size):
            result = await self._analyze_with_chunking(text, on_progress)
        else:
            result = await self._analyze_directly(text)
        result.processingTime = round((time.perf_counter() - start_time) * 1000, 1)

        try:
            self.cache.set(cache_key, result)
        except Exception as e:
            logger.warning(f"Failed to cache analysis result: {e}")

        return result

    async def _analyze_directly(self, text: str) -> AnalysisResult:
        sentiment = await self.sentiment.analyze_sentiment(text)
        return AnalysisResult(**basic_analysis(text), sentiment=sentiment, chunksProcessed=1)

    async def _analyze_with_chunking(
        self, text: str, on_progress: ProgressCallback | None
    ) -> AnalysisResult:
        chunks = create_chunks(text, self.chunk_size, self.min_chunk_size)
        total = len(chunks)
        logger.info(f"Analyzing text in {total} chunks")

        finished = 0
        chunk_results: list[ChunkResult] = []

        async def run_chunk(chunk: str, index: int) -> ChunkResult:
            nonlocal finished
            try:
                result = await self._analyze_chunk(chunk, index)
            except Exception as e:
                error = ChunkProcessingError(index, e)
                logger.error(error.message, exc_info=True)
                result = ChunkResult(chunkIndex=index, wordCount=0, error=CHUNK_FAILED_MARKER)

            finished += 1
            if on_progress is not None:
                update = ProgressUpdate(
                    current=finished,
                    total=total,
                    percentage=round(finished / total * 100),
                )
                try:
                    await on_progress(update)
                except Exception as e:
                    logger.error(f"Progress callback failed: {e}")
            return result

        for offset in range(0, total, self.batch_size):
            batch = chunks[offset : offset + self.batch_size]
            chunk_results.extend(
                await asyncio.gather(
                    *(run_chunk(chunk, offset + i) for i, chunk in enumerate(batch))
                )
            )

        succeeded = sum(1 for chunk in chunk_results if chunk.error is None)
        return AnalysisResult(
            **consolidate_chunk_results(chunk_results, text),
            chunksProcessed=succeeded,
        )

    async def _analyze_chunk(self, chunk: str, index: int) -> ChunkResult:
        tracer = trace.get_tracer(__name__)
        with tracer.start_as_current_span(
            "analysis.chunk",
            attributes={"analysis.chunk_index": index, "analysis.chunk_length": len(chunk)},
        ):
            words = extract_words(chunk)
            sentiment = None
            if index < self.sentiment_chunk_limit:
                sentiment = (await self.sentiment.analyze_sentiment(chunk)).overall

            return ChunkResult(
                chunkIndex=index,
                wordCount=len(words),
                topWords=top_words(word_frequency(words), TOP_WORDS_CHUNK),
                legalTerms=extract_legal_terms(words),
                sentiment=sentiment,
            )
