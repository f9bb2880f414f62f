"""
Error taxonomy for the crawl and analysis pipeline.

Page-level errors (TransportError, PolicyError, AnalysisError) never fail a
job. Job-level errors (JobStoreError, CrawlAbortedError, JobStalledError) do.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from site_audit.engines.base import FetchedPage


class SiteAuditError(Exception):
    """Root of all pipeline errors."""


class TransportError(SiteAuditError):
    """DNS failure, refused connection, timeout, too many redirects."""

    def __init__(self, url: str, reason: str, kind: str = "transport"):
        super().__init__(f"{kind} error fetching {url}: {reason}")
        self.url = url
        self.reason = reason
        self.kind = kind   # timeout | connect | redirect | protocol | transport


class PolicyError(SiteAuditError):
    """robots.txt could not be fetched or parsed."""


class AnalysisError(SiteAuditError):
    """An analyzer failed on a single page."""

    def __init__(self, analyzer: str, url: str, reason: str):
        super().__init__(f"{analyzer} analyzer failed on {url}: {reason}")
        self.analyzer = analyzer
        self.url = url
        self.reason = reason


class JobStoreError(SiteAuditError):
    """Base for job store failures. Propagated to callers verbatim."""


class DuplicateJobError(JobStoreError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} already exists")
        self.job_id = job_id


class NotFoundError(JobStoreError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class CrawlAbortedError(SiteAuditError):
    """Too many consecutive transport failures; carries the pages fetched so far."""

    def __init__(self, failures: int, pages: list[FetchedPage] | None = None, stats: dict[str, Any] | None = None):
        super().__init__(f"Crawl aborted after {failures} consecutive fetch failures")
        self.failures = failures
        self.pages = pages or []
        self.stats = stats or {}


class JobStalledError(SiteAuditError):
    def __init__(self, job_id: str, idle_seconds: float):
        super().__init__(f"Job {job_id} stalled: no progress for {idle_seconds:.0f}s")
        self.job_id = job_id
        self.idle_seconds = idle_seconds
