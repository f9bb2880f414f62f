"""
Content Analyzer

Analyzes the page body:
- H1 heading count
- Word count (thin content)
- Image alt attributes, one issue per image missing alt
"""

from __future__ import annotations

import copy

from bs4 import BeautifulSoup

from site_audit.engines.base import (
    AnalyzerResult,
    FetchedPage,
    Issue,
    IssueCategory,
    PageAnalyzer,
    Severity,
)

NON_CONTENT_TAGS = ["script", "style", "noscript", "template"]


def visible_text(soup: BeautifulSoup) -> str:
    """Body text with scripts and styles removed; the input soup is left untouched."""
    body = soup.body or soup
    body = copy.copy(body)
    for tag in body(NON_CONTENT_TAGS):
        tag.decompose()
    return " ".join(body.get_text(separator=" ").split())


class ContentAnalyzer(PageAnalyzer):

    NAME = "content"
    CATEGORY = IssueCategory.CONTENT

    MIN_WORD_COUNT = 300

    def run(self, page: FetchedPage, soup: BeautifulSoup) -> AnalyzerResult:
        issues: list[Issue] = []

        # ── Headings ──────────────────────────────
        h1_tags = soup.find_all("h1")
        if not h1_tags:
            issues.append(self.issue(
                "missing_h1",
                Severity.CRITICAL,
                page,
                "Page has no H1 heading",
                "Add a single, descriptive H1 heading to the page.",
            ))
        elif len(h1_tags) > 1:
            issues.append(self.issue(
                "multiple_h1",
                Severity.WARNING,
                page,
                f"Page has {len(h1_tags)} H1 headings",
                "Use only one H1 per page. Use H2-H6 for subheadings.",
                count=len(h1_tags),
            ))

        # ── Word count ────────────────────────────
        word_count = len(visible_text(soup).split())
        if word_count < self.MIN_WORD_COUNT:
            issues.append(self.issue(
                "thin_content",
                Severity.WARNING,
                page,
                f"Page has only {word_count} words",
                f"Expand content to at least {self.MIN_WORD_COUNT} words. Focus on depth and value.",
                word_count=word_count,
            ))

        # ── Images ────────────────────────────────
        images = soup.find_all("img")
        missing_alt = [img for img in images if img.get("alt") is None]
        for img in missing_alt:
            issues.append(self.issue(
                "images_missing_alt",
                Severity.WARNING,
                page,
                "Image is missing an alt attribute",
                "Add descriptive alt text to meaningful images. Use empty alt='' for decorative images.",
                src=img.get("src", ""),
            ))

        headings = {f"h{level}": len(soup.find_all(f"h{level}")) for level in range(1, 7)}

        return self.result(issues, {
            "word_count": word_count,
            "paragraph_count": len(soup.find_all("p")),
            "headings": headings,
            "h1_count": headings["h1"],
            "image_count": len(images),
            "images_missing_alt": len(missing_alt),
        })
