"""
Audit Tasks - Celery task definitions.

Flow:
1. API creates the job record (`queued`) and dispatches process_audit_job
2. process_audit_job runs the JobProcessor, which owns every status
   transition and writes results back to the job store
3. reap_stalled_jobs (beat) fails `processing` jobs left behind by dead workers

Failures are never retried automatically: the job store records them as
`failed` with a readable error.
"""

from __future__ import annotations

import asyncio

import structlog
from celery.exceptions import SoftTimeLimitExceeded

from site_audit.core.config import get_settings
from site_audit.core.redis import create_redis_client
from site_audit.jobs.processor import JobProcessor
from site_audit.jobs.store import JobStore
from site_audit.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
settings = get_settings()


def run_async(coro):
    """Run an async coroutine in a Celery (sync) task context."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ─────────────────────────────────────────────
# Task: Process Audit Job
# ─────────────────────────────────────────────

@celery_app.task(
    name="site_audit.workers.audit_tasks.process_audit_job",
    bind=True,
    queue="audit_queue",
    acks_late=True,
)
def process_audit_job(self, job_id: str) -> dict:
    """Crawl, analyze and score one job."""
    logger.info("Audit task received", job_id=job_id, task_id=self.request.id)

    try:
        job = run_async(_process(job_id))
    except SoftTimeLimitExceeded:
        logger.error("Audit task timed out", job_id=job_id)
        run_async(_fail(job_id, "Job exceeded the task time limit"))
        raise

    return {"job_id": job.id, "status": job.status.value}


async def _process(job_id: str):
    redis = create_redis_client()
    try:
        processor = JobProcessor(JobStore(redis), max_concurrency=1)
        return await processor.process(job_id)
    finally:
        await redis.aclose()


async def _fail(job_id: str, error: str) -> None:
    redis = create_redis_client()
    try:
        await JobStore(redis).fail(job_id, error)
    finally:
        await redis.aclose()


# ─────────────────────────────────────────────
# Task: Reap Stalled Jobs
# ─────────────────────────────────────────────

@celery_app.task(name="site_audit.workers.audit_tasks.reap_stalled_jobs", queue="maintenance")
def reap_stalled_jobs() -> dict:
    failed = run_async(_reap())
    return {"failed": failed}


async def _reap() -> list[str]:
    redis = create_redis_client()
    try:
        return await JobStore(redis).fail_stalled(settings.JOB_STALL_TIMEOUT, settings.JOB_QUEUE_TIMEOUT)
    finally:
        await redis.aclose()


def dispatch_job(job_id: str) -> str:
    """Queue a job for a worker; the Celery task id is the job id."""
    result = process_audit_job.apply_async(args=[job_id], task_id=job_id)
    return result.id
