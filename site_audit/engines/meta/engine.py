"""
Meta Analyzer

Analyzes the page's head metadata:
- Title tag (presence, length)
- Meta description (presence, length)
- Robots meta directives (noindex / nofollow)
- Open Graph and Twitter card tags
"""

from __future__ import annotations

from bs4 import BeautifulSoup

from site_audit.engines.base import (
    AnalyzerResult,
    FetchedPage,
    Issue,
    IssueCategory,
    PageAnalyzer,
    Severity,
)


def _meta_content(soup: BeautifulSoup, *, name: str | None = None, prop: str | None = None) -> str | None:
    """Content of the first matching meta tag; None if the tag is absent."""
    for tag in soup.find_all("meta"):
        if name and (tag.get("name") or "").lower() == name:
            return (tag.get("content") or "").strip()
        if prop and (tag.get("property") or "").lower() == prop:
            return (tag.get("content") or "").strip()
    return None


class MetaAnalyzer(PageAnalyzer):

    NAME = "meta"
    CATEGORY = IssueCategory.META

    # Thresholds
    TITLE_MIN_LENGTH = 30
    TITLE_MAX_LENGTH = 60
    META_DESC_MIN_LENGTH = 50
    META_DESC_MAX_LENGTH = 160

    OPEN_GRAPH_TAGS = ("title", "description", "image")
    TWITTER_TAGS = ("card", "title", "description", "image")

    def run(self, page: FetchedPage, soup: BeautifulSoup) -> AnalyzerResult:
        issues: list[Issue] = []

        # ── Title ──────────────────────────────────
        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""
        if not title:
            issues.append(self.issue(
                "missing_title",
                Severity.CRITICAL,
                page,
                "Page is missing a title tag",
                f"Add a unique, descriptive title tag ({self.TITLE_MIN_LENGTH}-{self.TITLE_MAX_LENGTH} chars).",
            ))
        elif len(title) < self.TITLE_MIN_LENGTH:
            issues.append(self.issue(
                "short_title",
                Severity.WARNING,
                page,
                f"Page title is too short ({len(title)} characters)",
                f"Expand the title to {self.TITLE_MIN_LENGTH}-{self.TITLE_MAX_LENGTH} characters.",
                length=len(title),
                title=title,
            ))
        elif len(title) > self.TITLE_MAX_LENGTH:
            issues.append(self.issue(
                "long_title",
                Severity.WARNING,
                page,
                f"Page title is too long ({len(title)} characters)",
                f"Trim the title to under {self.TITLE_MAX_LENGTH} characters so it is not truncated.",
                length=len(title),
                title=title,
            ))

        # ── Meta Description ───────────────────────
        description = _meta_content(soup, name="description")
        if not description:
            issues.append(self.issue(
                "missing_meta_description",
                Severity.CRITICAL,
                page,
                "Page is missing a meta description",
                f"Write a compelling meta description ({self.META_DESC_MIN_LENGTH}-{self.META_DESC_MAX_LENGTH} chars).",
            ))
        elif len(description) < self.META_DESC_MIN_LENGTH:
            issues.append(self.issue(
                "short_meta_description",
                Severity.INFO,
                page,
                f"Meta description is too short ({len(description)} characters)",
                f"Make the meta description longer than {self.META_DESC_MIN_LENGTH} characters.",
                length=len(description),
            ))
        elif len(description) > self.META_DESC_MAX_LENGTH:
            issues.append(self.issue(
                "long_meta_description",
                Severity.INFO,
                page,
                f"Meta description is too long ({len(description)} characters)",
                f"Make the meta description shorter than {self.META_DESC_MAX_LENGTH} characters.",
                length=len(description),
            ))

        # ── Robots meta ────────────────────────────
        robots = (_meta_content(soup, name="robots") or "").lower()
        if "noindex" in robots:
            issues.append(self.issue(
                "noindex",
                Severity.CRITICAL,
                page,
                "Page has a noindex directive",
                "Remove the noindex directive if the page should appear in search results.",
                robots=robots,
            ))
        if "nofollow" in robots:
            issues.append(self.issue(
                "nofollow",
                Severity.WARNING,
                page,
                "Page has a nofollow directive",
                "Remove nofollow so search engines follow and credit the page's links.",
                robots=robots,
            ))

        # ── Social tags ────────────────────────────
        og = {tag: _meta_content(soup, prop=f"og:{tag}") for tag in self.OPEN_GRAPH_TAGS}
        if not any(og.values()):
            issues.append(self.issue(
                "missing_open_graph",
                Severity.INFO,
                page,
                "Page has no Open Graph tags",
                "Add og:title, og:description and og:image for better link previews.",
            ))
        else:
            for tag, content in og.items():
                if not content:
                    issues.append(self.issue(
                        f"missing_og_{tag}",
                        Severity.INFO,
                        page,
                        f"Page is missing the og:{tag} tag",
                        f"Add an og:{tag} meta tag so shared links show the right {tag}.",
                    ))

        twitter = {tag: _meta_content(soup, name=f"twitter:{tag}") for tag in self.TWITTER_TAGS}
        if not any(twitter.values()):
            issues.append(self.issue(
                "missing_twitter_card",
                Severity.INFO,
                page,
                "Page has no Twitter card tags",
                "Add a twitter:card meta tag (e.g. summary_large_image).",
            ))
        else:
            for tag, content in twitter.items():
                if not content:
                    issues.append(self.issue(
                        f"missing_twitter_{tag}",
                        Severity.INFO,
                        page,
                        f"Page is missing the twitter:{tag} tag",
                        f"Add a twitter:{tag} meta tag to complete the card.",
                    ))

        return self.result(issues, {
            "title": title,
            "title_length": len(title),
            "meta_description_length": len(description or ""),
            "robots": robots,
            "has_open_graph": any(og.values()),
            "has_twitter_card": bool(twitter["card"]),
        })
