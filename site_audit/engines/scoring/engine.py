"""
Score Aggregator - rolls analyzer results up into page and site scores.

Scoring Model:
- Page score = weighted mean of the meta, content and technical scores
- Site score = mean of page scores
- Common issues = page issues grouped by type, ranked by
  frequency, then severity, then type name
"""

from __future__ import annotations

from collections import Counter
from typing import Any

import structlog

from site_audit.core.config import get_settings
from site_audit.engines.base import (
    AnalyzerResult,
    CommonIssue,
    FetchedPage,
    IssueCategory,
    PageAnalysis,
    Severity,
    SiteReport,
    calculate_grade,
)

logger = structlog.get_logger(__name__)
settings = get_settings()


def default_weights() -> dict[IssueCategory, float]:
    return {
        IssueCategory.META: settings.WEIGHT_META,
        IssueCategory.CONTENT: settings.WEIGHT_CONTENT,
        IssueCategory.TECHNICAL: settings.WEIGHT_TECHNICAL,
    }


class ScoreAggregator:
    """Combines analyzer output into PageAnalysis records and a SiteReport."""

    def __init__(self, weights: dict[IssueCategory, float] | None = None):
        self.weights = weights or default_weights()
        if sum(self.weights.values()) <= 0:
            raise ValueError("At least one score weight must be positive")

    # ── Page level ────────────────────────────────

    def page_score(self, scores: dict[IssueCategory, float]) -> float:
        total_weight = sum(self.weights.get(c, 0.0) for c in scores)
        if total_weight <= 0:
            return 0.0
        weighted = sum(score * self.weights.get(c, 0.0) for c, score in scores.items())
        return round(weighted / total_weight, 2)

    def merge_page(self, page: FetchedPage, results: list[AnalyzerResult]) -> PageAnalysis:
        scores = {IssueCategory.META: 0.0, IssueCategory.CONTENT: 0.0, IssueCategory.TECHNICAL: 0.0}
        issues = []
        metrics: dict[str, Any] = {}
        for result in results:
            scores[result.category] = result.score
            issues.extend(result.issues)
            metrics[result.analyzer] = result.metrics

        return PageAnalysis(
            url=page.url,
            final_url=page.final_url,
            status_code=page.status_code,
            depth=page.depth,
            meta_score=scores[IssueCategory.META],
            content_score=scores[IssueCategory.CONTENT],
            technical_score=scores[IssueCategory.TECHNICAL],
            score=self.page_score(scores),
            issues=issues,
            metrics=metrics,
            error=page.error,
        )

    # ── Site level ────────────────────────────────

    def aggregate(
        self,
        pages: list[PageAnalysis],
        base_url: str,
        crawl_stats: dict[str, Any] | None = None,
        min_frequency: int = 2,
    ) -> SiteReport:
        """
        Build the site report.

        min_frequency is the smallest number of pages an issue type must
        appear on to be reported as common.
        """
        if pages:
            site_score = round(sum(p.score for p in pages) / len(pages), 2)
            category_scores = {
                "meta": round(sum(p.meta_score for p in pages) / len(pages), 2),
                "content": round(sum(p.content_score for p in pages) / len(pages), 2),
                "technical": round(sum(p.technical_score for p in pages) / len(pages), 2),
            }
        else:
            site_score = 0.0
            category_scores = {"meta": 0.0, "content": 0.0, "technical": 0.0}

        severity_counts = Counter(issue.severity for page in pages for issue in page.issues)
        issue_summary = {
            "total": sum(severity_counts.values()),
            **{severity.value: severity_counts.get(severity, 0) for severity in Severity},
        }

        report = SiteReport(
            base_url=base_url,
            pages=pages,
            score=site_score,
            grade=calculate_grade(site_score),
            category_scores=category_scores,
            common_issues=self.common_issues(pages, min_frequency),
            issue_summary=issue_summary,
            crawl_stats={"pages_analyzed": len(pages), **(crawl_stats or {})},
        )

        logger.info(
            "Site report aggregated",
            base_url=base_url,
            pages=len(pages),
            score=site_score,
            common_issues=len(report.common_issues),
        )
        return report

    @staticmethod
    def common_issues(pages: list[PageAnalysis], min_frequency: int = 2) -> list[CommonIssue]:
        groups: dict[str, CommonIssue] = {}
        for page in pages:
            for issue in page.issues:
                group = groups.get(issue.type)
                if group is None:
                    group = groups[issue.type] = CommonIssue(
                        type=issue.type,
                        severity=issue.severity,
                        category=issue.category,
                        frequency=0,
                        recommendation=issue.recommendation,
                    )
                elif issue.severity.rank > group.severity.rank:
                    group.severity = issue.severity
                # Frequency counts pages, not occurrences
                if page.url not in group.affected_urls:
                    group.affected_urls.append(page.url)
                    group.frequency += 1

        kept = [g for g in groups.values() if g.frequency >= min_frequency]
        return sorted(kept, key=lambda g: (-g.frequency, -g.severity.rank, g.type))
