"""
Technical SEO Analyzer

Analyzes:
- Fetch outcome (transport failure, HTTP error status, redirects)
- HTTPS usage
- Canonical link element (presence, target)
- URL hygiene (query parameters, non-ASCII characters)
- Viewport meta (mobile friendliness)
- Server response time
- Internal vs external link ratio (informational metric only)
"""

from __future__ import annotations

from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from site_audit.engines.base import (
    AnalyzerResult,
    FetchedPage,
    Issue,
    IssueCategory,
    PageAnalyzer,
    Severity,
)
from site_audit.engines.crawler.links import URLNormalizer


class TechnicalAnalyzer(PageAnalyzer):
    """
    Technical SEO analyzer.
    Evaluates protocol-level and markup-level factors of one page.
    """

    NAME = "technical"
    CATEGORY = IssueCategory.TECHNICAL
    REQUIRES_HTML = False

    SLOW_RESPONSE_MS = 3000
    MODERATE_RESPONSE_MS = 1000

    def run(self, page: FetchedPage, soup: BeautifulSoup) -> AnalyzerResult:
        issues: list[Issue] = []

        # ── Fetch outcome ──────────────────────────
        if page.error:
            issues.append(self.issue(
                "fetch_failed",
                Severity.CRITICAL,
                page,
                f"Page could not be fetched: {page.error}",
                "Check that the server is reachable and responds within the timeout.",
            ))
            return AnalyzerResult(
                analyzer=self.NAME,
                category=self.CATEGORY,
                score=0.0,
                issues=issues,
                metrics={"fetch_error": page.error},
            )

        if page.status_code >= 400:
            issues.append(self.issue(
                "http_error",
                Severity.CRITICAL,
                page,
                f"Page returned HTTP error code {page.status_code}",
                "Fix the page or 301-redirect it to a working URL, and update internal links.",
                status_code=page.status_code,
            ))

        if page.redirected:
            issues.append(self.issue(
                "http_redirect",
                Severity.INFO,
                page,
                f"Page redirects to {page.final_url}",
                "Point internal links directly at the final URL to avoid redirect hops.",
                final_url=page.final_url,
            ))

        # ── URL ────────────────────────────────────
        parsed = urlparse(page.final_url)
        if parsed.scheme == "http":
            issues.append(self.issue(
                "insecure_http",
                Severity.WARNING,
                page,
                "Page is served over insecure HTTP",
                "Serve the site over HTTPS and 301-redirect HTTP to HTTPS.",
            ))

        if parsed.query:
            issues.append(self.issue(
                "query_parameters",
                Severity.INFO,
                page,
                "URL contains query parameters",
                "Prefer clean, parameter-free URLs for indexable pages.",
            ))

        if not page.url.isascii():
            issues.append(self.issue(
                "non_ascii_url",
                Severity.INFO,
                page,
                "URL contains non-ASCII characters",
                "Use percent-encoded or ASCII-only URLs.",
            ))

        # ── Response time ──────────────────────────
        if page.elapsed_ms > self.SLOW_RESPONSE_MS:
            issues.append(self.issue(
                "slow_response",
                Severity.WARNING,
                page,
                f"Server response is slow ({page.elapsed_ms:.0f}ms)",
                "Optimize server response time. Target < 200ms TTFB.",
                elapsed_ms=page.elapsed_ms,
            ))
        elif page.elapsed_ms > self.MODERATE_RESPONSE_MS:
            issues.append(self.issue(
                "moderate_response",
                Severity.INFO,
                page,
                f"Server response is moderate ({page.elapsed_ms:.0f}ms)",
                "Improve server response time.",
                elapsed_ms=page.elapsed_ms,
            ))

        metrics = {
            "status_code": page.status_code,
            "response_time_ms": page.elapsed_ms,
            "redirected": page.redirected,
        }

        if page.is_html:
            issues.extend(self._check_markup(page, soup))
            metrics.update(self._link_metrics(page, soup))

        return self.result(issues, metrics)

    def _check_markup(self, page: FetchedPage, soup: BeautifulSoup) -> list[Issue]:
        issues: list[Issue] = []

        canonical = None
        for link in soup.find_all("link", href=True):
            rel = link.get("rel") or []
            if "canonical" in [r.lower() for r in rel]:
                canonical = link["href"].strip()
                break

        if not canonical:
            issues.append(self.issue(
                "missing_canonical",
                Severity.INFO,
                page,
                "Page is missing a canonical tag",
                "Add a self-referencing canonical link element.",
            ))
        else:
            target = URLNormalizer.normalize(canonical, page.final_url)
            if target and target != URLNormalizer.normalize(page.final_url):
                issues.append(self.issue(
                    "canonical_mismatch",
                    Severity.INFO,
                    page,
                    f"Canonical tag points to {target}",
                    "Make sure the canonical tag matches the page URL or link to the canonical version.",
                    canonical=target,
                ))

        if not soup.find("meta", attrs={"name": "viewport"}):
            issues.append(self.issue(
                "missing_viewport",
                Severity.WARNING,
                page,
                "Page is missing a viewport meta tag",
                'Add <meta name="viewport" content="width=device-width, initial-scale=1">.',
            ))

        return issues

    @staticmethod
    def _link_metrics(page: FetchedPage, soup: BeautifulSoup) -> dict[str, float | int]:
        root = URLNormalizer.site_root(page.final_url)
        internal = external = 0
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.startswith("#"):
                continue
            try:
                absolute = urljoin(page.final_url, href)
            except ValueError:
                continue
            if urlparse(absolute).scheme not in ("http", "https"):
                continue
            if URLNormalizer.is_same_site(absolute, root, include_subdomains=True):
                internal += 1
            else:
                external += 1

        return {
            "internal_links": internal,
            "external_links": external,
            "internal_external_ratio": round(internal / external, 2) if external else float(internal),
        }
