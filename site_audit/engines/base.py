"""
Base class and type contracts for the crawl and analysis pipeline.
Every page analyzer MUST inherit from PageAnalyzer and implement run().

Design principles:
- Analyzers are pure: no I/O, no state kept on self between calls
- Analyzers are independent: no analyzer imports another
- Analyzers return a standardized AnalyzerResult
- Analyzer failures are contained to the page being analyzed
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog
from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field

from site_audit.core.exceptions import AnalysisError

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class Severity(str, Enum):
    CRITICAL = "critical"   # Blocking issue - fix immediately
    WARNING = "warning"     # Hurts rankings or CTR - fix soon
    INFO = "info"           # Informational - fix when convenient

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK: dict[Severity, int] = {
    Severity.CRITICAL: 3,
    Severity.WARNING: 2,
    Severity.INFO: 1,
}


class IssueCategory(str, Enum):
    META = "meta"
    CONTENT = "content"
    TECHNICAL = "technical"


# ─────────────────────────────────────────────
# Crawl data types
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class CrawlTarget:
    """URL in the crawl frontier at a link-distance from the seed."""
    url: str
    depth: int
    parent_url: str | None = None


class FetchedPage(BaseModel):
    """A single fetch outcome. status_code is 0 when the fetch never got a response."""
    model_config = ConfigDict(frozen=True)

    url: str
    final_url: str
    status_code: int = 0
    html: str = ""
    content_type: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    elapsed_ms: float = 0.0
    depth: int = 0
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status_code < 300

    @property
    def redirected(self) -> bool:
        return self.final_url != self.url

    @property
    def is_html(self) -> bool:
        if not self.html:
            return False
        return not self.content_type or "html" in self.content_type.lower()


# ─────────────────────────────────────────────
# Analysis data types
# ─────────────────────────────────────────────

class Issue(BaseModel):
    """A single SEO finding on one page."""

    type: str
    severity: Severity
    category: IssueCategory
    message: str = ""
    recommendation: str = ""
    affected_url: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class AnalyzerResult(BaseModel):
    """Standardized output from every analyzer."""
    analyzer: str
    category: IssueCategory
    score: float = Field(ge=0.0, le=100.0, default=100.0)
    issues: list[Issue] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)
    skipped: bool = False
    error_message: str | None = None
    execution_time_ms: float = 0.0


class PageAnalysis(BaseModel):
    """Merged analyzer output for one page."""
    url: str
    final_url: str
    status_code: int
    depth: int = 0
    meta_score: float = 0.0
    content_score: float = 0.0
    technical_score: float = 0.0
    score: float = 0.0
    issues: list[Issue] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class CommonIssue(BaseModel):
    """An issue type aggregated across the pages of one site."""
    type: str
    severity: Severity
    category: IssueCategory
    frequency: int
    affected_urls: list[str] = Field(default_factory=list)
    recommendation: str = ""


class SiteReport(BaseModel):
    """Final artifact of one crawl."""
    model_config = ConfigDict(frozen=True)

    base_url: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    pages: list[PageAnalysis] = Field(default_factory=list)
    score: float = 0.0
    grade: str = "F"
    category_scores: dict[str, float] = Field(default_factory=dict)
    common_issues: list[CommonIssue] = Field(default_factory=list)
    issue_summary: dict[str, int] = Field(default_factory=dict)
    crawl_stats: dict[str, Any] = Field(default_factory=dict)


# ─────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────

def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def calculate_grade(score: float) -> str:
    """Convert numeric score to letter grade."""
    if score >= 90:
        return "A"
    elif score >= 80:
        return "B"
    elif score >= 65:
        return "C"
    elif score >= 50:
        return "D"
    return "F"


# ─────────────────────────────────────────────
# Base Analyzer
# ─────────────────────────────────────────────

class PageAnalyzer(ABC):
    """
    Abstract base class for page analyzers.

    Scoring: start at 100, subtract a fixed penalty per issue by severity,
    floor at 0. The same page always yields the same score.
    """

    NAME: str = "base"
    CATEGORY: IssueCategory = IssueCategory.TECHNICAL
    REQUIRES_HTML: bool = True

    SEVERITY_PENALTIES: dict[Severity, float] = {
        Severity.CRITICAL: 20.0,
        Severity.WARNING: 10.0,
        Severity.INFO: 2.0,
    }

    def __init__(self):
        self.logger = structlog.get_logger(self.__class__.__name__)

    @abstractmethod
    def run(self, page: FetchedPage, soup: BeautifulSoup) -> AnalyzerResult:
        """
        Analyze one fetched page.

        Args:
            page: The fetcher's output
            soup: The page's parsed DOM

        Returns:
            AnalyzerResult with score, issues and metrics
        """
        ...

    def analyze(self, page: FetchedPage, soup: BeautifulSoup | None = None) -> AnalyzerResult:
        """
        Wrapper around run() that adds timing, logging, and error handling.
        Call this instead of run() directly.
        """
        if self.REQUIRES_HTML and (page.error or not page.is_html):
            return AnalyzerResult(analyzer=self.NAME, category=self.CATEGORY, score=0.0, skipped=True)

        start = time.perf_counter()
        try:
            result = self.run(page, soup if soup is not None else parse_html(page.html))
        except Exception as exc:
            elapsed = (time.perf_counter() - start) * 1000
            failure = AnalysisError(self.NAME, page.url, str(exc))
            self.logger.error("Analyzer failed", analyzer=self.NAME, url=page.url, error=str(exc), exc_info=True)
            return AnalyzerResult(
                analyzer=self.NAME,
                category=self.CATEGORY,
                score=0.0,
                issues=[self.issue(
                    "analysis_error",
                    Severity.WARNING,
                    page,
                    str(failure),
                    "Re-run the audit; if the failure persists the page markup may be malformed.",
                )],
                error_message=str(exc),
                execution_time_ms=elapsed,
            )

        result.execution_time_ms = (time.perf_counter() - start) * 1000
        self.logger.debug(
            "Analyzer complete",
            analyzer=self.NAME,
            url=page.url,
            score=result.score,
            issue_count=len(result.issues),
        )
        return result

    def issue(
        self,
        issue_type: str,
        severity: Severity,
        page: FetchedPage,
        message: str,
        recommendation: str,
        **metadata: Any,
    ) -> Issue:
        return Issue(
            type=issue_type,
            severity=severity,
            category=self.CATEGORY,
            message=message,
            recommendation=recommendation,
            affected_url=page.url,
            metadata=metadata,
        )

    def result(self, issues: list[Issue], metrics: dict[str, Any]) -> AnalyzerResult:
        return AnalyzerResult(
            analyzer=self.NAME,
            category=self.CATEGORY,
            score=self.score_issues(issues),
            issues=issues,
            metrics=metrics,
        )

    @classmethod
    def score_issues(cls, issues: list[Issue]) -> float:
        penalty = sum(cls.SEVERITY_PENALTIES.get(i.severity, 0.0) for i in issues)
        return max(0.0, round(100.0 - penalty, 2))
