"""
Job records persisted in the key-value store, one document per job.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, field_validator

from site_audit.core.config import get_settings

settings = get_settings()
_http_url = TypeAdapter(HttpUrl)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobType(str, Enum):
    PAGE_AUDIT = "page_audit"
    SITE_AUDIT = "site_audit"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobParams(BaseModel):
    url: str
    max_pages: int = Field(settings.CRAWLER_DEFAULT_MAX_PAGES, ge=1, le=settings.CRAWLER_MAX_PAGES_LIMIT)
    max_depth: int = Field(settings.CRAWLER_DEFAULT_MAX_DEPTH, ge=0, le=50)
    respect_robots: bool = True
    include_subdomains: bool = False
    delay_ms: int = Field(settings.CRAWLER_DELAY_MS, ge=0, le=60_000)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return str(_http_url.validate_python(v))


class Job(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: JobType = JobType.SITE_AUDIT
    params: JobParams
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(0, ge=0, le=100)
    cancel_requested: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    results: dict[str, Any] | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
