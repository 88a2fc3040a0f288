"""
In-memory analysis record store.

Records hold a text preview and lightweight status. Results are stored as
serialized JSON and parsed back into models on read. Every term search is
appended to a search history, and finished records past the retention
window are removed by a periodic sweep.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Literal

from legal_analyzer.schemas.models import AnalysisResult

logger = logging.getLogger(__name__)

AnalysisStatus = Literal["processing", "completed", "failed"]

SEARCH_LIMIT = 20
SEARCH_HISTORY_LIMIT = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AnalysisRecord:
    """Persisted state of one analysis."""

    id: str
    text: str
    text_length: int
    status: AnalysisStatus = "processing"
    progress: int = 0
    analysis_type: str = "legal"
    source_type: str = "text"
    original_filename: str | None = None
    file_size: int | None = None
    result: AnalysisResult | None = None
    error: str | None = None
    processing_time: float | None = None
    chunks_processed: int | None = None
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None
    failed_at: datetime | None = None


@dataclass
class SearchHistoryEntry:
    """One term search and where it was first found."""

    term: str
    found: bool
    analysis_id: str | None = None
    searched_at: datetime = field(default_factory=_utcnow)


@dataclass
class _StoredRecord:
    record: AnalysisRecord
    result_json: str | None = None


class AnalysisStore:
    """Async record store for analyses, keyed by analysis ID."""

    def __init__(self) -> None:
        self._records: dict[str, _StoredRecord] = {}
        self._searches: list[SearchHistoryEntry] = []
        self._sweeper: asyncio.Task | None = None

    async def create_analysis(
        self,
        analysis_id: str,
        text: str,
        text_length: int,
        *,
        analysis_type: str = "legal",
        source_type: str | None = None,
        original_filename: str | None = None,
        file_size: int | None = None,
    ) -> AnalysisRecord:
        """Create a record in "processing" state. Returns the existing one on duplicates."""
        if existing := self._records.get(analysis_id):
            return self._load(existing)

        record = AnalysisRecord(
            id=analysis_id,
            text=text,
            text_length=text_length,
            analysis_type=analysis_type,
            source_type=source_type or "text",
            original_filename=original_filename,
            file_size=file_size,
        )
        self._records[analysis_id] = _StoredRecord(record=record)
        return self._load(self._records[analysis_id])

    async def update_analysis(
        self,
        analysis_id: str,
        *,
        status: AnalysisStatus | None = None,
        progress: int | None = None,
        result: AnalysisResult | None = None,
        error: str | None = None,
        processing_time: float | None = None,
        chunks_processed: int | None = None,
        completed_at: datetime | None = None,
        failed_at: datetime | None = None,
        clear_error: bool = False,
    ) -> AnalysisRecord | None:
        """
        Apply the given fields. Returns None if the record does not exist.

        Fields left as None are not touched. Pass clear_error=True to reset
        the error and failed_at left by an earlier failed attempt.
        """
        stored = self._records.get(analysis_id)
        if stored is None:
            logger.warning(f"Update for unknown analysis {analysis_id}")
            return None

        record = stored.record
        if clear_error:
            record.error = None
            record.failed_at = None
        if status is not None:
            record.status = status
        if progress is not None:
            record.progress = progress
        if error is not None:
            record.error = error
        if processing_time is not None:
            record.processing_time = processing_time
        if chunks_processed is not None:
            record.chunks_processed = chunks_processed
        if completed_at is not None:
            record.completed_at = completed_at
        if failed_at is not None:
            record.failed_at = failed_at
        if result is not None:
            stored.result_json = result.model_dump_json()

        return self._load(stored)

    async def get_analysis(self, analysis_id: str) -> AnalysisRecord | None:
        stored = self._records.get(analysis_id)
        return self._load(stored) if stored else None

    async def search_term(self, term: str) -> tuple[list[AnalysisRecord], int]:
        """
        Find completed analyses whose stored text contains the term.

        Returns the newest matches and the total number of occurrences.
        The search is recorded in the history with the newest match.
        """
        needle = term.lower()
        matches = [
            s
            for s in self._records.values()
            if s.record.status == "completed" and needle in s.record.text.lower()
        ]
        matches.sort(key=lambda s: s.record.created_at, reverse=True)
        matches = matches[:SEARCH_LIMIT]

        occurrences = sum(s.record.text.lower().count(needle) for s in matches)
        self._record_search(term, matches[0].record.id if matches else None)
        return [self._load(s) for s in matches], occurrences

    async def get_search_history(self, limit: int = 100) -> list[SearchHistoryEntry]:
        """Most recent searches first."""
        return [replace(entry) for entry in reversed(self._searches[-limit:])]

    async def get_stats(self) -> dict:
        records = [s.record for s in self._records.values()]
        times = [r.processing_time for r in records if r.processing_time is not None]
        return {
            "totalAnalyses": len(records),
            "completedAnalyses": sum(1 for r in records if r.status == "completed"),
            "failedAnalyses": sum(1 for r in records if r.status == "failed"),
            "avgProcessingTime": sum(times) / len(times) if times else 0.0,
            "totalSearches": len(self._searches),
        }

    async def cleanup_old_records(self, days_to_keep: int = 30) -> int:
        """Remove finished records older than the cutoff. Returns the number removed."""
        cutoff = _utcnow() - timedelta(days=days_to_keep)
        stale = [
            analysis_id
            for analysis_id, s in self._records.items()
            if s.record.created_at < cutoff and s.record.status in ("completed", "failed")
        ]
        for analysis_id in stale:
            del self._records[analysis_id]
        logger.info(f"Cleaned up {len(stale)} old analysis records")
        return len(stale)

    def start(self, days_to_keep: int = 30, interval: float = 86400.0) -> None:
        """Start the periodic retention sweep. Requires a running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(
                self._sweep_loop(days_to_keep, interval), name="record-sweeper"
            )

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    async def _sweep_loop(self, days_to_keep: int, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.cleanup_old_records(days_to_keep)

    def _record_search(self, term: str, analysis_id: str | None) -> None:
        self._searches.append(
            SearchHistoryEntry(term=term, found=analysis_id is not None, analysis_id=analysis_id)
        )
        if len(self._searches) > SEARCH_HISTORY_LIMIT:
            del self._searches[:-SEARCH_HISTORY_LIMIT]

    @staticmethod
    def _load(stored: _StoredRecord) -> AnalysisRecord:
        result = None
        if stored.result_json is not None:
            result = AnalysisResult.model_validate_json(stored.result_json)
        return replace(stored.record, result=result)
