"""
Tests for the Celery task wrappers. Tasks are called in-process; each one
opens its own Redis client, patched here to a shared fakeredis server.
"""

from datetime import timedelta

import fakeredis
import pytest
from fakeredis import aioredis as fake_aioredis

from site_audit.jobs.models import Job, JobParams, JobStatus, utcnow
from site_audit.workers import audit_tasks


@pytest.fixture
def server(monkeypatch):
    server = fakeredis.FakeServer()
    monkeypatch.setattr(
        audit_tasks,
        "create_redis_client",
        lambda: fake_aioredis.FakeRedis(server=server, decode_responses=True),
    )
    return server


def seed_job(server, **fields) -> Job:
    job = Job(params=JobParams(url="https://example.com"), **fields)
    fakeredis.FakeRedis(server=server).set(f"job:{job.id}", job.model_dump_json())
    return job


def load_job(server, job_id: str) -> Job:
    return Job.model_validate_json(fakeredis.FakeRedis(server=server).get(f"job:{job_id}"))


class TestAuditTasks:

    def test_run_async_returns_coroutine_result(self):
        async def answer():
            return 42

        assert audit_tasks.run_async(answer()) == 42

    def test_process_skips_finished_job(self, server):
        job = seed_job(server, status=JobStatus.COMPLETED, progress=100, results={"score": 75.0})
        assert audit_tasks.process_audit_job(job.id) == {"job_id": job.id, "status": "completed"}
        assert load_job(server, job.id).results == {"score": 75.0}

    def test_reap_fails_stalled_jobs(self, server):
        stale = seed_job(server, status=JobStatus.PROCESSING, updated_at=utcnow() - timedelta(hours=2))
        live = seed_job(server, status=JobStatus.PROCESSING)

        result = audit_tasks.reap_stalled_jobs()

        assert result == {"failed": [stale.id]}
        assert load_job(server, stale.id).status == JobStatus.FAILED
        assert load_job(server, live.id).status == JobStatus.PROCESSING

    def test_dispatch_uses_job_id_as_task_id(self, monkeypatch):
        calls = []

        class FakeResult:
            id = "job-1"

        def apply_async(args, task_id):
            calls.append((args, task_id))
            return FakeResult()

        monkeypatch.setattr(audit_tasks.process_audit_job, "apply_async", apply_async)
        assert audit_tasks.dispatch_job("job-1") == "job-1"
        assert calls == [(["job-1"], "job-1")]
