import asyncio

import pytest

from legal_analyzer.schemas.models import AnalysisResult, TextStructure
from legal_analyzer.services.cache import ResultCache, generate_key


def _result(word_count: int = 3) -> AnalysisResult:
    return AnalysisResult(
        wordCount=word_count,
        characterCount=20,
        topWords=[],
        legalTerms=[],
        structure=TextStructure(paragraphs=1, articles=0, sections=0),
    )


def test_generate_key_is_a_sha256_fingerprint():
    key = generate_key("contrato de locação")

    assert len(key) == 64
    assert key == generate_key("contrato de locação")
    assert key != generate_key("contrato de locação ")


def test_get_returns_stored_value(cache):
    cache.set("k", _result(7))

    assert cache.get("k").wordCount == 7


def test_get_returns_a_copy(cache):
    cache.set("k", _result(7))

    cache.get("k").wordCount = 99

    assert cache.get("k").wordCount == 7


def test_set_overwrites(cache):
    cache.set("k", _result(1))
    cache.set("k", _result(2))

    assert cache.get("k").wordCount == 2
    assert cache.get_stats().size == 1


def test_delete_and_clear(cache):
    cache.set("a", _result())
    cache.set("b", _result())

    assert cache.delete("a")
    assert not cache.delete("a")
    assert cache.get("a") is None

    cache.clear()
    assert cache.get("b") is None


def test_expired_entries_are_not_returned(cache):
    cache.set("k", _result(), ttl=-1)

    assert cache.get("k") is None
    assert cache.get_stats().size == 0


def test_cleanup_removes_only_expired(cache):
    cache.set("old", _result(), ttl=-1)
    cache.set("fresh", _result())

    assert cache.cleanup() == 1
    assert cache.get("fresh") is not None


def test_stats_track_hits_and_misses(cache):
    cache.set("k", _result())
    cache.get("k")
    cache.get("k")
    cache.get("missing")

    stats = cache.get_stats()

    assert stats.hits == 2
    assert stats.misses == 1
    assert stats.hitRate == pytest.approx(2 / 3)
    assert stats.memoryUsage > 0


def test_empty_stats():
    stats = ResultCache().get_stats()

    assert (stats.size, stats.hits, stats.misses, stats.hitRate) == (0, 0, 0, 0.0)


async def test_background_sweep_removes_expired_entries():
    cache = ResultCache(default_ttl=60.0, check_period=0.01)
    cache.set("old", _result(), ttl=-1)
    cache.set("fresh", _result())

    cache.start()
    await asyncio.sleep(0.05)

    assert cache.get_stats().size == 1
    await cache.close()
    assert cache.get_stats().size == 0
