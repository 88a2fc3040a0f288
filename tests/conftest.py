import asyncio

import pytest
from redis.exceptions import WatchError

from legal_analyzer.schemas.models import SentimentResult
from legal_analyzer.services.analysis import LegalTextAnalysisService
from legal_analyzer.services.cache import ResultCache
from legal_analyzer.services.job_store import AnalysisStore


class StubSentiment:
    """Sentiment provider double that records the texts it was asked about."""

    def __init__(self, label: str = "neutro", fail_on: str | None = None):
        self.label = label
        self.fail_on = fail_on
        self.calls: list[str] = []

    async def analyze_sentiment(self, text: str) -> SentimentResult:
        self.calls.append(text)
        await asyncio.sleep(0)
        if self.fail_on is not None and self.fail_on in text:
            raise RuntimeError("provider unavailable")
        return SentimentResult(overall=self.label, score=0.0, analysis="stub")


class FakeAsyncRedis:
    """
    The subset of redis.asyncio.Redis used by RedisJobQueue, kept in dicts.

    Every command yields to the event loop first, so concurrent callers
    interleave between commands the way they would against a server.
    Writes bump a per-key version that WATCH checks at EXEC time.
    """

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.lists: dict[str, list[str]] = {}
        self.strings: dict[str, str] = {}
        self.versions: dict[str, int] = {}
        self.closed = False
        self._in_exec = False

    async def _step(self):
        if not self._in_exec:
            await asyncio.sleep(0)

    def _touch(self, key):
        self.versions[key] = self.versions.get(key, 0) + 1

    def pipeline(self, transaction: bool = True):
        return FakePipeline(self)

    async def ping(self):
        await self._step()
        return True

    async def hset(self, key, field, value):
        await self._step()
        self.hashes.setdefault(key, {})[field] = value
        self._touch(key)
        return 1

    async def hget(self, key, field):
        await self._step()
        return self.hashes.get(key, {}).get(field)

    async def hdel(self, key, field):
        await self._step()
        self._touch(key)
        return 1 if self.hashes.get(key, {}).pop(field, None) is not None else 0

    async def zadd(self, key, mapping, xx=False):
        await self._step()
        zset = self.zsets.setdefault(key, {})
        changed = {m: s for m, s in mapping.items() if not xx or m in zset}
        zset.update(changed)
        if changed:
            self._touch(key)
        return 0 if xx else len(changed)

    async def zrevrange(self, key, start, end):
        await self._step()
        zset = self.zsets.get(key, {})
        ordered = sorted(zset, key=lambda m: (zset[m], m), reverse=True)
        return ordered[start : end + 1]

    async def zscore(self, key, member):
        await self._step()
        return self.zsets.get(key, {}).get(member)

    async def zcard(self, key):
        await self._step()
        return len(self.zsets.get(key, {}))

    async def zrangebyscore(self, key, low, high):
        await self._step()
        zset = self.zsets.get(key, {})
        low = float(low) if low != "-inf" else float("-inf")
        return [m for m, s in sorted(zset.items(), key=lambda i: i[1]) if low <= s <= float(high)]

    async def zrem(self, key, member):
        await self._step()
        removed = self.zsets.get(key, {}).pop(member, None) is not None
        if removed:
            self._touch(key)
        return int(removed)

    async def get(self, key):
        await self._step()
        return self.strings.get(key)

    async def incr(self, key):
        await self._step()
        self.strings[key] = str(int(self.strings.get(key, "0")) + 1)
        self._touch(key)
        return int(self.strings[key])

    async def lpush(self, key, value):
        await self._step()
        self.lists.setdefault(key, []).insert(0, value)
        self._touch(key)
        return len(self.lists[key])

    async def ltrim(self, key, start, end):
        await self._step()
        self.lists[key] = self.lists.get(key, [])[start : end + 1]
        self._touch(key)
        return True

    async def aclose(self):
        self.closed = True


class FakePipeline:
    """
    MULTI/EXEC pipeline with optimistic WATCH.

    After watch() commands run immediately until multi(); queued commands
    run back to back in execute(), which raises WatchError if a watched
    key was written in between.
    """

    def __init__(self, redis: FakeAsyncRedis):
        self._redis = redis
        self._watched: dict[str, int] = {}
        self._queued: list = []
        self._explicit_multi = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.reset()

    async def reset(self):
        self._watched = {}
        self._queued = []
        self._explicit_multi = False

    async def watch(self, *keys):
        await self._redis._step()
        for key in keys:
            self._watched[key] = self._redis.versions.get(key, 0)

    def multi(self):
        self._explicit_multi = True

    def __getattr__(self, name):
        command = getattr(self._redis, name)
        if self._watched and not self._explicit_multi:
            return command

        def queue(*args, **kwargs):
            self._queued.append((command, args, kwargs))
            return self

        return queue

    async def execute(self):
        await self._redis._step()
        try:
            for key, version in self._watched.items():
                if self._redis.versions.get(key, 0) != version:
                    raise WatchError("Watched variable changed.")
            self._redis._in_exec = True
            try:
                return [await command(*args, **kwargs) for command, args, kwargs in self._queued]
            finally:
                self._redis._in_exec = False
        finally:
            await self.reset()


@pytest.fixture
def sentiment():
    return StubSentiment()


@pytest.fixture
def cache():
    return ResultCache(default_ttl=60.0, check_period=60.0)


@pytest.fixture
def store():
    return AnalysisStore()


@pytest.fixture
def analysis_service(cache, sentiment):
    return LegalTextAnalysisService(
        cache,
        sentiment,
        chunk_size=3000,
        min_chunk_size=500,
        batch_size=5,
        sentiment_chunk_limit=3,
        max_text_size=2_000_000,
    )


@pytest.fixture
def fake_redis():
    return FakeAsyncRedis()


def make_large_text(articles: int = 12) -> str:
    """A multi-article contract several chunks long."""
    clause = (
        "O locatário obriga-se ao pagamento do aluguel no prazo ajustado, "
        "sob pena de multa e rescisão do contrato, respondendo o fiador "
        "solidariamente pela obrigação assumida perante o locador. "
    )
    return "\n".join(f"Art. {n}º {clause * 4}" for n in range(1, articles + 1))


@pytest.fixture
def large_text():
    return make_large_text()
