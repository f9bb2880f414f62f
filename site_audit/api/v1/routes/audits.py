"""
Audit API Routes

No business logic lives here.
Routes validate input, call the job store, return responses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from site_audit.core.config import get_settings
from site_audit.core.exceptions import DuplicateJobError, NotFoundError
from site_audit.core.redis import RedisClient
from site_audit.jobs.models import Job, JobParams, JobStatus, JobType
from site_audit.jobs.store import JobStore
from site_audit.workers.audit_tasks import dispatch_job

logger = structlog.get_logger(__name__)
settings = get_settings()
router = APIRouter()


async def get_job_store(redis: RedisClient) -> JobStore:
    return JobStore(redis)


JobStoreDep = Annotated[JobStore, Depends(get_job_store)]


# ─────────────────────────────────────────────
# Request / Response Schemas
# ─────────────────────────────────────────────

class CreateAuditRequest(BaseModel):
    url: str
    type: JobType = JobType.SITE_AUDIT
    max_pages: int = Field(settings.CRAWLER_DEFAULT_MAX_PAGES, ge=1, le=settings.CRAWLER_MAX_PAGES_LIMIT)
    max_depth: int = Field(settings.CRAWLER_DEFAULT_MAX_DEPTH, ge=0, le=50)
    respect_robots: bool = True
    include_subdomains: bool = False
    delay_ms: int = Field(settings.CRAWLER_DELAY_MS, ge=0, le=60_000)


class AuditResponse(BaseModel):
    job_id: str
    status: JobStatus
    message: str = ""


class AuditStatusResponse(BaseModel):
    job_id: str
    type: JobType
    status: JobStatus
    progress: int
    cancel_requested: bool
    created_at: datetime
    updated_at: datetime
    error: str | None
    has_results: bool

    @classmethod
    def from_job(cls, job: Job) -> AuditStatusResponse:
        return cls(
            job_id=job.id,
            type=job.type,
            status=job.status,
            progress=job.progress,
            cancel_requested=job.cancel_requested,
            created_at=job.created_at,
            updated_at=job.updated_at,
            error=job.error,
            has_results=job.results is not None,
        )


class QueueStatsResponse(BaseModel):
    queued: int
    processing: int
    completed: int
    failed: int
    total: int


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────

@router.post(
    "",
    response_model=AuditResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a page or site audit",
    description="Queues an asynchronous audit for the given URL. Returns immediately with the job ID.",
)
async def create_audit(request: CreateAuditRequest, store: JobStoreDep) -> AuditResponse:
    try:
        params = JobParams(**request.model_dump(exclude={"type"}))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    job = Job(type=request.type, params=params)
    try:
        await store.create(job)
    except DuplicateJobError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))

    try:
        dispatch_job(job.id)
    except Exception as exc:
        logger.error("Audit dispatch failed", job_id=job.id, error=str(exc))
        await store.fail(job.id, f"Could not queue job: {exc}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Audit queue unavailable, try again later",
        ) from exc

    logger.info("Audit submitted", job_id=job.id, type=job.type.value, url=params.url)

    return AuditResponse(
        job_id=job.id,
        status=job.status,
        message="Audit queued. Poll /api/v1/audits/{job_id} for status.",
    )


@router.get("/stats", response_model=QueueStatsResponse, summary="Job counts by status")
async def get_queue_stats(store: JobStoreDep) -> QueueStatsResponse:
    return QueueStatsResponse(**await store.queue_stats())


@router.get("/{job_id}", response_model=AuditStatusResponse, summary="Get audit status")
async def get_audit(job_id: str, store: JobStoreDep) -> AuditStatusResponse:
    job = await store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Audit not found")
    return AuditStatusResponse.from_job(job)


@router.get("/{job_id}/results", summary="Get the site report of a completed audit")
async def get_audit_results(job_id: str, store: JobStoreDep) -> dict[str, Any]:
    job = await store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Audit not found")

    if job.status != JobStatus.COMPLETED:
        raise HTTPException(status_code=409, detail=f"Audit is not complete yet (status: {job.status.value})")

    if job.results is None:
        raise HTTPException(status_code=404, detail="No results stored for this audit")

    return job.results


@router.post(
    "/{job_id}/cancel",
    response_model=AuditStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request cancellation; partial results are kept",
)
async def cancel_audit(job_id: str, store: JobStoreDep) -> AuditStatusResponse:
    try:
        job = await store.request_cancel(job_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Audit not found")

    logger.info("Audit cancellation requested", job_id=job_id, status=job.status.value)
    return AuditStatusResponse.from_job(job)
