"""Health endpoints: process stats plus job store connectivity."""

import os
import time

import psutil
from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from site_audit.core.config import get_settings
from site_audit.core.redis import RedisClient
from site_audit.jobs.store import JobStore

router = APIRouter()

STARTED_AT = time.monotonic()


class MemoryStats(BaseModel):
    rss_bytes: int
    vms_bytes: int
    percent: float


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    memory: MemoryStats
    checks: dict[str, str]


def _memory_stats() -> MemoryStats:
    process = psutil.Process(os.getpid())
    info = process.memory_info()
    return MemoryStats(
        rss_bytes=info.rss,
        vms_bytes=info.vms,
        percent=round(process.memory_percent(), 2),
    )


@router.get("", response_model=HealthResponse)
async def health_check(redis: RedisClient) -> HealthResponse:
    store_ok = await JobStore(redis).ping()
    checks = {"redis": "healthy" if store_ok else "unhealthy"}

    return HealthResponse(
        status="healthy" if store_ok else "degraded",
        version=get_settings().APP_VERSION,
        uptime_seconds=round(time.monotonic() - STARTED_AT, 2),
        memory=_memory_stats(),
        checks=checks,
    )


@router.get("/ready", include_in_schema=False)
async def readiness(redis: RedisClient, response: Response) -> dict:
    """Ready once the job store answers."""
    ready = await JobStore(redis).ping()
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"ready": ready}


@router.get("/live", include_in_schema=False)
async def liveness() -> dict:
    return {"alive": True}
