"""
URL normalization and same-site link extraction.
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

import structlog
from bs4 import BeautifulSoup

from site_audit.engines.base import parse_html

logger = structlog.get_logger(__name__)

SKIPPED_SCHEMES = ("mailto:", "tel:", "javascript:", "data:", "ftp:")


class URLNormalizer:
    """Normalizes URLs for deduplication and comparison."""

    IGNORED_PARAMS = {"utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term", "ref", "fbclid", "gclid"}
    IGNORED_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico", ".css", ".js", ".woff", ".woff2", ".ttf", ".zip", ".tar", ".gz", ".mp4", ".mp3", ".wav", ".xml"}
    DEFAULT_PORTS = {"http": 80, "https": 443}

    @classmethod
    def normalize(cls, url: str, base_url: str | None = None) -> str | None:
        """
        Normalize a URL, resolving it against base_url when given.
        Returns None if the URL is malformed or should not be crawled.
        """
        try:
            url = url.strip()
            if base_url:
                url = urljoin(base_url, url)
            parsed = urlparse(url)
            port = parsed.port
        except ValueError:
            return None

        if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
            return None

        path_lower = parsed.path.lower()
        if any(path_lower.endswith(ext) for ext in cls.IGNORED_EXTENSIONS):
            return None

        scheme = parsed.scheme.lower()
        netloc = parsed.hostname.lower()
        if port and port != cls.DEFAULT_PORTS.get(scheme):
            netloc = f"{netloc}:{port}"

        query = ""
        if parsed.query:
            params = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k not in cls.IGNORED_PARAMS]
            query = urlencode(params, doseq=True)

        # Trailing slash only kept for the root path
        path = parsed.path or "/"
        if path != "/" and path.endswith("/"):
            path = path.rstrip("/")

        return urlunparse((scheme, netloc, path, parsed.params, query, ""))

    @staticmethod
    def site_root(url: str) -> str:
        """Host of url without a leading www."""
        host = (urlparse(url).hostname or "").lower()
        return host[4:] if host.startswith("www.") else host

    @classmethod
    def is_same_site(cls, url: str, root_domain: str, include_subdomains: bool = False) -> bool:
        """Check if url belongs to root_domain, optionally counting its subdomains."""
        host = cls.site_root(url)
        if host == root_domain:
            return True
        return include_subdomains and host.endswith(f".{root_domain}")


class LinkExtractor:
    """
    Pulls same-site links out of a page.

    Output is de-duplicated, fragment-free, absolute and in document order so
    that breadth-first traversal is deterministic.
    """

    def __init__(self, seed_url: str, include_subdomains: bool = False):
        self.root_domain = URLNormalizer.site_root(seed_url)
        self.include_subdomains = include_subdomains

    def extract(self, html: str, page_url: str, soup: BeautifulSoup | None = None) -> list[str]:
        soup = soup if soup is not None else parse_html(html)

        base_url = page_url
        base_tag = soup.find("base", href=True)
        if base_tag:
            try:
                base_url = urljoin(page_url, base_tag["href"].strip())
            except ValueError:
                logger.debug("Ignoring malformed base href", href=base_tag["href"], page=page_url)

        links: dict[str, None] = {}
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.startswith("#") or href.lower().startswith(SKIPPED_SCHEMES):
                continue

            normalized = URLNormalizer.normalize(href, base_url)
            if normalized is None:
                logger.debug("Skipping unusable href", href=href, page=page_url)
                continue
            if not URLNormalizer.is_same_site(normalized, self.root_domain, self.include_subdomains):
                continue
            links.setdefault(normalized, None)

        return list(links)
