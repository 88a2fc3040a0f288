"""
Result cache keyed by content fingerprint.

Entries expire lazily on access and are also swept by a background task.
Nothing is persisted across restarts.
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass

from legal_analyzer.schemas.models import AnalysisResult, CacheStats

logger = logging.getLogger(__name__)


def generate_key(text: str) -> str:
    """SHA-256 hex digest of the UTF-8 bytes of the text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: AnalysisResult
    expires_at: float
    size_bytes: int

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.monotonic()) > self.expires_at


class ResultCache:
    """In-memory TTL cache of consolidated analysis results."""

    def __init__(self, default_ttl: float = 7200.0, check_period: float = 600.0):
        self.default_ttl = default_ttl
        self.check_period = check_period
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._sweeper: asyncio.Task | None = None

    def get(self, key: str) -> AnalysisResult | None:
        """Return a copy of the cached result, or None if missing or expired."""
        entry = self._entries.get(key)

        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired():
            del self._entries[key]
            self._misses += 1
            return None

        self._hits += 1
        logger.debug(f"Cache hit for key: {key[:8]}...")
        return entry.value.model_copy(deep=True)

    def set(self, key: str, value: AnalysisResult, ttl: float | None = None) -> None:
        """Store a result, replacing any previous entry for the key."""
        ttl = self.default_ttl if ttl is None else ttl
        snapshot = value.model_copy(deep=True)
        self._entries[key] = CacheEntry(
            key=key,
            value=snapshot,
            expires_at=time.monotonic() + ttl,
            size_bytes=len(snapshot.model_dump_json()),
        )
        logger.debug(f"Cache set for key: {key[:8]}...")

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Cache cleared")

    def cleanup(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = time.monotonic()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            logger.debug(f"Cache cleanup: removed {len(expired)} expired entries")
        return len(expired)

    def get_stats(self) -> CacheStats:
        total = self._hits + self._misses
        return CacheStats(
            size=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            hitRate=self._hits / total if total else 0.0,
            memoryUsage=sum(entry.size_bytes for entry in self._entries.values()),
        )

    def start(self) -> None:
        """Start the periodic expiry sweep. Requires a running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="cache-sweeper")

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        self._entries.clear()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_period)
            self.cleanup()
