"""
Job Store - durable job records in Redis.

Layout: one key per job (`job:<id>`) holding the full Job document as JSON.
Every mutation is an optimistic WATCH/MULTI read-modify-write on that key,
so concurrent writers to the same job never lose each other's updates.

Lifecycle: queued → processing → completed | failed. Terminal jobs are
immutable; repeated terminal transitions are no-ops.
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any, Callable

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError, WatchError

from site_audit.core.config import get_settings
from site_audit.core.exceptions import DuplicateJobError, NotFoundError
from site_audit.jobs.models import Job, JobStatus, utcnow

logger = structlog.get_logger(__name__)
settings = get_settings()

Mutation = Callable[[Job], "Job | None"]

UPDATABLE_FIELDS = {"status", "progress", "params", "cancel_requested", "error"}


class JobStore:

    def __init__(
        self,
        redis: aioredis.Redis,
        prefix: str = settings.JOB_KEY_PREFIX,
        ttl_seconds: int = settings.JOB_TTL_SECONDS,
    ):
        self.redis = redis
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def _key(self, job_id: str) -> str:
        return f"{self.prefix}{job_id}"

    # ─────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────

    async def get(self, job_id: str) -> Job | None:
        raw = await self.redis.get(self._key(job_id))
        return Job.model_validate_json(raw) if raw is not None else None

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as exc:
            logger.warning("Job store unreachable", error=str(exc))
            return False

    async def iter_jobs(self):
        async for key in self.redis.scan_iter(match=f"{self.prefix}*", count=500):
            raw = await self.redis.get(key)
            if raw is not None:
                yield Job.model_validate_json(raw)

    async def queue_stats(self) -> dict[str, int]:
        """Counts of jobs by status."""
        counts = {status.value: 0 for status in JobStatus}
        async for key in self.redis.scan_iter(match=f"{self.prefix}*", count=500):
            raw = await self.redis.get(key)
            if raw is None:
                continue
            status = json.loads(raw).get("status")
            if status in counts:
                counts[status] += 1
        counts["total"] = sum(counts.values())
        return counts

    # ─────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────

    async def create(self, job: Job) -> Job:
        created = await self.redis.set(
            self._key(job.id),
            job.model_dump_json(),
            nx=True,
            ex=self.ttl_seconds or None,
        )
        if not created:
            raise DuplicateJobError(job.id)
        logger.info("Job created", job_id=job.id, type=job.type.value, url=job.params.url)
        return job

    async def update(self, job_id: str, **fields: Any) -> Job:
        """
        Merge fields into a non-terminal job.

        Progress never decreases. Terminal jobs are returned unchanged;
        use complete() / fail() to enter a terminal state.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
        status = fields.get("status")
        if status is not None and JobStatus(status).is_terminal:
            raise ValueError("Use complete() or fail() for terminal transitions")

        def merge(job: Job) -> Job | None:
            if job.is_terminal:
                return None
            changes = dict(fields)
            if "progress" in changes:
                changes["progress"] = max(job.progress, min(100, int(changes["progress"])))
            return job.model_copy(update=changes)

        return await self._mutate(job_id, merge)

    async def start(self, job_id: str) -> Job | None:
        """queued → processing. Returns None if the job was not queued."""
        started: list[Job] = []

        def claim(job: Job) -> Job | None:
            if job.status != JobStatus.QUEUED:
                return None
            updated = job.model_copy(update={"status": JobStatus.PROCESSING})
            started.append(updated)
            return updated

        job = await self._mutate(job_id, claim)
        return job if started else None

    async def complete(self, job_id: str, results: dict[str, Any]) -> Job:
        def finish(job: Job) -> Job | None:
            if job.is_terminal:
                return None
            return job.model_copy(update={
                "status": JobStatus.COMPLETED,
                "progress": 100,
                "results": results,
                "error": None,
            })

        job = await self._mutate(job_id, finish)
        logger.info("Job completed", job_id=job_id, status=job.status.value)
        return job

    async def fail(self, job_id: str, error: str, results: dict[str, Any] | None = None) -> Job:
        def finish(job: Job) -> Job | None:
            if job.is_terminal:
                return None
            return job.model_copy(update={
                "status": JobStatus.FAILED,
                "error": error,
                "results": results,
            })

        job = await self._mutate(job_id, finish)
        logger.info("Job failed", job_id=job_id, status=job.status.value, error=error)
        return job

    async def request_cancel(self, job_id: str) -> Job:
        def flag(job: Job) -> Job | None:
            if job.is_terminal or job.cancel_requested:
                return None
            return job.model_copy(update={"cancel_requested": True})

        return await self._mutate(job_id, flag)

    async def fail_stalled(
        self,
        timeout_seconds: float = settings.JOB_STALL_TIMEOUT,
        queued_timeout_seconds: float = settings.JOB_QUEUE_TIMEOUT,
    ) -> list[str]:
        """
        Fail processing jobs idle for timeout_seconds and queued jobs never
        picked up within queued_timeout_seconds.

        Staleness is re-checked on the watched record, so a job that moves
        after the scan is left alone.
        """
        now = utcnow()
        cutoffs = {
            JobStatus.PROCESSING: now - timedelta(seconds=timeout_seconds),
            JobStatus.QUEUED: now - timedelta(seconds=queued_timeout_seconds),
        }
        failed: list[str] = []
        expired: list[str] = []

        def expire(job: Job) -> Job | None:
            expired.clear()
            cutoff = cutoffs.get(job.status)
            if cutoff is None or job.updated_at >= cutoff:
                return None
            expired.append(job.id)
            reason = "never started" if job.status == JobStatus.QUEUED else "no progress"
            return job.model_copy(update={
                "status": JobStatus.FAILED,
                "error": f"Job stalled: {reason} since {job.updated_at.isoformat()}",
            })

        async for job in self.iter_jobs():
            cutoff = cutoffs.get(job.status)
            if cutoff is not None and job.updated_at < cutoff:
                try:
                    await self._mutate(job.id, expire)
                except NotFoundError:
                    logger.debug("Stalled job expired before reaping", job_id=job.id)
                    continue
                failed.extend(expired)
        if failed:
            logger.warning("Stalled jobs failed", count=len(failed), job_ids=failed)
        return failed

    async def _mutate(self, job_id: str, mutation: Mutation) -> Job:
        key = self._key(job_id)
        async with self.redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        raise NotFoundError(job_id)
                    job = Job.model_validate_json(raw)

                    updated = mutation(job)
                    if updated is None:
                        await pipe.reset()
                        return job

                    updated.updated_at = utcnow()
                    pipe.multi()
                    pipe.set(key, updated.model_dump_json(), keepttl=True)
                    await pipe.execute()
                    return updated
                except WatchError:
                    logger.debug("Concurrent job update, retrying", job_id=job_id)
                    continue
