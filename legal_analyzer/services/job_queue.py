"""
Job Queue - priority queue of analysis jobs with two interchangeable backends.

MemoryJobQueue keeps jobs in process and is driven by the worker's polling
loop. RedisJobQueue keeps every job in Redis, which acts as the broker:
dispatch, retry/backoff, stalled-job recovery and completion counters are
transactions on Redis keys, and its consumer calls the worker's per-job
routine. The backend is chosen once at startup by create_job_queue().
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from legal_analyzer.core.config import Settings
from legal_analyzer.core.exceptions import TerminalJobError
from legal_analyzer.schemas.models import AnalysisJob, QueueStats

if TYPE_CHECKING:
    from legal_analyzer.services.worker import AnalysisWorker

logger = logging.getLogger(__name__)

# Waiting-set scores are priority * PRIORITY_SCALE plus a component that
# decreases with enqueue time, so the highest score is the oldest job of
# the top tier.
PRIORITY_SCALE = 10**13

# Finished job IDs kept for inspection
HISTORY_LIMIT = 50


def calculate_priority(text_length: int) -> int:
    """Larger texts get higher priority."""
    if text_length > 100_000:
        return 3
    if text_length > 50_000:
        return 2
    if text_length > 10_000:
        return 1
    return 0


def backoff_delay(attempts: int, base_seconds: float) -> float:
    return (2**attempts) * base_seconds


class JobQueue(ABC):
    """Contract shared by both queue backends."""

    backend: str

    @abstractmethod
    async def add_job(self, job: AnalysisJob) -> None:
        """Enqueue a job; its priority is recomputed from the text length."""

    @abstractmethod
    async def get_stats(self) -> QueueStats: ...

    @abstractmethod
    def start_consumer(self, worker: "AnalysisWorker") -> asyncio.Task:
        """Start dispatching jobs to the worker. Returns the dispatch task."""

    async def close(self) -> None:
        return None


class MemoryJobQueue(JobQueue):
    """Process-local queue. Jobs are lost on restart."""

    backend = "memory"

    def __init__(self, max_retries: int = 3, backoff_seconds: float = 1.0):
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._jobs: list[AnalysisJob] = []
        # Jobs handed to the worker
        self._claimed: set[str] = set()
        # Failed jobs waiting out their backoff
        self._delayed: set[str] = set()
        self._job_event = asyncio.Event()
        self._retry_tasks: set[asyncio.Task] = set()
        self._completed = 0
        self._failed = 0

    async def add_job(self, job: AnalysisJob) -> None:
        job = job.model_copy(update={"priority": calculate_priority(len(job.text))})
        self._jobs.append(job)
        # list.sort is stable: equal priorities keep insertion order
        self._jobs.sort(key=lambda j: j.priority, reverse=True)
        logger.info(f"Job {job.analysisId} added to memory queue with priority {job.priority}")
        self._job_event.set()

    def get_next_job(self) -> AnalysisJob | None:
        """Claim the highest-priority job that is neither claimed nor backing off."""
        for job in self._jobs:
            if job.analysisId not in self._claimed and job.analysisId not in self._delayed:
                self._claimed.add(job.analysisId)
                return job
        return None

    def complete_job(self, analysis_id: str) -> None:
        self._claimed.discard(analysis_id)
        self._jobs = [j for j in self._jobs if j.analysisId != analysis_id]
        self._completed += 1
        logger.info(f"Job {analysis_id} completed and removed from memory queue")
        self._job_event.set()

    def fail_job(self, analysis_id: str, error: Exception) -> bool:
        """
        Record a failed attempt.

        Returns True if the job was scheduled for retry, False if it was
        dropped after exhausting its attempts.
        """
        self._claimed.discard(analysis_id)
        job = next((j for j in self._jobs if j.analysisId == analysis_id), None)
        if job is None:
            return False

        job.attempts += 1
        if job.attempts >= self.max_retries:
            self._jobs = [j for j in self._jobs if j.analysisId != analysis_id]
            self._failed += 1
            terminal = TerminalJobError(analysis_id, job.attempts, str(error))
            logger.error(terminal.message)
            self._job_event.set()
            return False

        delay = backoff_delay(job.attempts, self.backoff_seconds)
        logger.warning(
            f"Job {analysis_id} failed, retrying in {delay:.1f}s (attempt {job.attempts})"
        )
        self._delayed.add(analysis_id)
        task = asyncio.create_task(self._release_after(analysis_id, delay))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)
        return True

    async def wait_for_job(self, timeout: float) -> None:
        """Wait until a job is added or released, or the timeout elapses."""
        try:
            await asyncio.wait_for(self._job_event.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        finally:
            self._job_event.clear()

    async def get_stats(self) -> QueueStats:
        return QueueStats(
            backend="memory",
            pendingJobs=len(self._jobs) - len(self._claimed),
            activeJobs=len(self._claimed),
            completedJobs=self._completed,
            failedJobs=self._failed,
        )

    def start_consumer(self, worker: "AnalysisWorker") -> asyncio.Task:
        return asyncio.create_task(worker.run_memory_loop(self), name="memory-queue-loop")

    async def close(self) -> None:
        for task in list(self._retry_tasks):
            task.cancel()
        self._retry_tasks.clear()

    async def _release_after(self, analysis_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self._delayed.discard(analysis_id)
        self._job_event.set()


class RedisJobQueue(JobQueue):
    """
    Durable queue on Redis.

    All queue state lives in Redis, so jobs survive a restart of the
    service. Every state change runs as a MULTI/EXEC transaction, and a
    claim watches the waiting set so two consumers never take the same job.
    A claimed job holds a lease in the active set that is renewed while it
    runs; jobs whose lease expired (their consumer died) go back to waiting.

    Keys (prefixed by the queue name):
        :jobs       hash of job ID -> job JSON
        :waiting    sorted set of dispatchable job IDs
        :delayed    sorted set of job IDs scored by retry time
        :active     sorted set of claimed job IDs scored by lease expiry
        :completed / :failed           lists of recent finished IDs
        :stats:completed / :stats:failed   counters
    """

    backend = "redis"

    def __init__(
        self,
        client: aioredis.Redis,
        name: str = "legal-analysis",
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        poll_interval: float = 1.0,
        lease_seconds: float = 30.0,
    ):
        self._redis = client
        self.name = name
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.poll_interval = poll_interval
        self.lease_seconds = lease_seconds

    def _key(self, suffix: str) -> str:
        return f"{self.name}:{suffix}"

    async def add_job(self, job: AnalysisJob) -> None:
        job = job.model_copy(update={"priority": calculate_priority(len(job.text))})
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hset(self._key("jobs"), job.analysisId, job.model_dump_json())
            pipe.zadd(self._key("waiting"), {job.analysisId: self._score(job.priority)})
            await pipe.execute()
        logger.info(f"Job {job.analysisId} added to Redis queue with priority {job.priority}")

    async def get_stats(self) -> QueueStats:
        start = time.perf_counter()
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zcard(self._key("waiting"))
            pipe.zcard(self._key("delayed"))
            pipe.zcard(self._key("active"))
            pipe.get(self._key("stats:completed"))
            pipe.get(self._key("stats:failed"))
            waiting, delayed, active, completed, failed = await pipe.execute()
        logger.debug(f"Queue stats retrieved in {(time.perf_counter() - start) * 1000:.0f}ms")

        return QueueStats(
            backend="redis",
            pendingJobs=waiting + delayed,
            activeJobs=active,
            completedJobs=int(completed or 0),
            failedJobs=int(failed or 0),
        )

    def start_consumer(self, worker: "AnalysisWorker") -> asyncio.Task:
        logger.info(f"Setting up Redis queue processing with concurrency: {worker.concurrency}")
        return asyncio.create_task(self.consume(worker), name="redis-queue-consumer")

    async def consume(self, worker: "AnalysisWorker") -> None:
        """Dispatch jobs to the worker while it runs, at most worker.concurrency at a time."""
        semaphore = asyncio.Semaphore(worker.concurrency)
        in_flight: set[asyncio.Task] = set()

        while worker.is_running:
            await semaphore.acquire()
            if not worker.is_running:
                semaphore.release()
                break
            try:
                await self.recover_stalled()
                await self.promote_delayed()
                job = await self.claim_next()
            except RedisError as e:
                semaphore.release()
                logger.error(f"Redis queue error: {e}")
                await asyncio.sleep(self.poll_interval)
                continue

            if job is None:
                semaphore.release()
                await asyncio.sleep(self.poll_interval)
                continue

            task = asyncio.create_task(self._run(worker, job, semaphore))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("Redis queue consumer stopped")

    async def claim_next(self) -> AnalysisJob | None:
        """Atomically move the highest-priority waiting job to the active set."""
        waiting = self._key("waiting")
        while True:
            async with self._redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(waiting)
                    top = await pipe.zrevrange(waiting, 0, 0)
                    if not top:
                        return None
                    analysis_id = _decode(top[0])
                    pipe.multi()
                    pipe.zrem(waiting, analysis_id)
                    pipe.zadd(self._key("active"), {analysis_id: self._lease_expiry()})
                    pipe.hget(self._key("jobs"), analysis_id)
                    _, _, payload = await pipe.execute()
                except WatchError:
                    # Another consumer changed the waiting set first
                    continue

            if payload is None:
                logger.warning(f"Job {analysis_id} has no payload, skipping")
                await self._redis.zrem(self._key("active"), analysis_id)
                continue
            return AnalysisJob.model_validate_json(payload)

    async def promote_delayed(self) -> int:
        """Move jobs whose backoff has elapsed back to the waiting set."""
        return await self._requeue_due(self._key("delayed"))

    async def recover_stalled(self) -> int:
        """Return claimed jobs whose lease expired to the waiting set."""
        recovered = await self._requeue_due(self._key("active"))
        if recovered:
            logger.warning(f"Recovered {recovered} stalled job(s) on queue {self.name}")
        return recovered

    async def close(self) -> None:
        await self._redis.aclose()

    async def _requeue_due(self, source: str) -> int:
        due = await self._redis.zrangebyscore(source, "-inf", time.time())
        moved = 0
        for member in due:
            if await self._move_to_waiting(source, _decode(member)):
                moved += 1
        return moved

    async def _move_to_waiting(self, source: str, analysis_id: str) -> bool:
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(source)
                deadline = await pipe.zscore(source, analysis_id)
                if deadline is None or deadline > time.time():
                    return False
                payload = await pipe.hget(self._key("jobs"), analysis_id)
                pipe.multi()
                pipe.zrem(source, analysis_id)
                if payload is not None:
                    job = AnalysisJob.model_validate_json(payload)
                    pipe.zadd(self._key("waiting"), {analysis_id: self._score(job.priority)})
                await pipe.execute()
            except WatchError:
                # Picked up on the next pass
                return False
        return payload is not None

    async def _run(
        self, worker: "AnalysisWorker", job: AnalysisJob, semaphore: asyncio.Semaphore
    ) -> None:
        heartbeat = asyncio.create_task(self._keep_lease(job.analysisId))
        try:
            await worker.process_job(job)
        except Exception as e:
            heartbeat.cancel()
            await self._on_failure(job, e)
        else:
            heartbeat.cancel()
            await self._on_success(job)
        finally:
            heartbeat.cancel()
            semaphore.release()

    async def _keep_lease(self, analysis_id: str) -> None:
        while True:
            await asyncio.sleep(self.lease_seconds / 3)
            try:
                await self._redis.zadd(
                    self._key("active"), {analysis_id: self._lease_expiry()}, xx=True
                )
            except RedisError as e:
                logger.warning(f"Failed to renew lease of job {analysis_id}: {e}")

    async def _on_success(self, job: AnalysisJob) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zrem(self._key("active"), job.analysisId)
                pipe.hdel(self._key("jobs"), job.analysisId)
                self._record_finished(pipe, "completed", job.analysisId)
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Failed to record completion of job {job.analysisId}: {e}")

    async def _on_failure(self, job: AnalysisJob, error: Exception) -> None:
        job.attempts += 1
        terminal = job.attempts >= self.max_retries
        delay = backoff_delay(job.attempts, self.backoff_seconds)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zrem(self._key("active"), job.analysisId)
                if terminal:
                    pipe.hdel(self._key("jobs"), job.analysisId)
                    self._record_finished(pipe, "failed", job.analysisId)
                else:
                    pipe.hset(self._key("jobs"), job.analysisId, job.model_dump_json())
                    pipe.zadd(self._key("delayed"), {job.analysisId: time.time() + delay})
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Failed to record failure of job {job.analysisId}: {e}")
            return

        if terminal:
            logger.error(TerminalJobError(job.analysisId, job.attempts, str(error)).message)
        else:
            logger.warning(
                f"Job {job.analysisId} failed, retrying in {delay:.1f}s (attempt {job.attempts})"
            )

    def _record_finished(self, pipe, outcome: str, analysis_id: str) -> None:
        pipe.incr(self._key(f"stats:{outcome}"))
        pipe.lpush(self._key(outcome), analysis_id)
        pipe.ltrim(self._key(outcome), 0, HISTORY_LIMIT - 1)

    def _lease_expiry(self) -> float:
        return time.time() + self.lease_seconds

    @staticmethod
    def _score(priority: int) -> float:
        return priority * PRIORITY_SCALE + (PRIORITY_SCALE - int(time.time() * 1000))


def _decode(value: str | bytes) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


async def create_job_queue(settings: Settings) -> JobQueue:
    """Pick the queue backend once, at startup."""
    if settings.redis_url:
        client = aioredis.from_url(settings.redis_url, decode_responses=True)
        try:
            await client.ping()
        except RedisError as e:
            logger.warning(f"Redis not available ({e}), falling back to memory queue")
            await client.aclose()
        else:
            logger.info("Queue service initialized with Redis")
            return RedisJobQueue(
                client,
                name=settings.queue_name,
                max_retries=settings.queue_max_retries,
                backoff_seconds=settings.queue_backoff_seconds,
                poll_interval=settings.worker_poll_interval_seconds,
                lease_seconds=settings.queue_stalled_timeout_seconds,
            )

    logger.info("Queue service initialized with memory queue")
    return MemoryJobQueue(
        max_retries=settings.queue_max_retries,
        backoff_seconds=settings.queue_backoff_seconds,
    )
