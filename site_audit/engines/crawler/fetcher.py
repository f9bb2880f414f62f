"""
Page Fetcher - retrieves one URL over HTTP.

HTTP error statuses are successful fetches; only transport failures
(DNS, refused connection, timeout, redirect loops) produce an Err.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Union

import httpx
import structlog

from site_audit.core.config import get_settings
from site_audit.core.exceptions import TransportError
from site_audit.engines.base import FetchedPage

logger = structlog.get_logger(__name__)
settings = get_settings()

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


# ─────────────────────────────────────────────
# Result type
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class FetchOk:
    page: FetchedPage


@dataclass(frozen=True)
class FetchErr:
    error: TransportError

    def to_page(self, depth: int = 0) -> FetchedPage:
        """Record the failure as a page so the crawl can report it."""
        return FetchedPage(
            url=self.error.url,
            final_url=self.error.url,
            status_code=0,
            depth=depth,
            error=str(self.error),
        )


FetchResult = Union[FetchOk, FetchErr]


# ─────────────────────────────────────────────
# Fetcher
# ─────────────────────────────────────────────

def build_client(
    user_agent: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """HTTP client carrying the crawler's identifiable user agent."""
    headers = {"User-Agent": user_agent or settings.CRAWLER_USER_AGENT, **DEFAULT_HEADERS}
    return httpx.AsyncClient(
        headers=headers,
        follow_redirects=True,
        max_redirects=10,
        transport=transport,
        limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
    )


class PageFetcher:
    """Fetches individual pages via plain HTTP."""

    def __init__(self, client: httpx.AsyncClient, timeout: float | None = None):
        self.client = client
        self.timeout = timeout if timeout is not None else settings.CRAWLER_REQUEST_TIMEOUT

    @property
    def user_agent(self) -> str:
        return self.client.headers.get("User-Agent", settings.CRAWLER_USER_AGENT)

    async def fetch(self, url: str, timeout: float | None = None, depth: int = 0) -> FetchResult:
        start = time.perf_counter()
        try:
            response = await self.client.get(
                url,
                follow_redirects=True,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as exc:
            return self._err(url, "timeout", exc)
        except httpx.TooManyRedirects as exc:
            return self._err(url, "redirect", exc)
        except httpx.ConnectError as exc:
            return self._err(url, "connect", exc)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return self._err(url, "transport", exc)

        elapsed = (time.perf_counter() - start) * 1000
        content_type = response.headers.get("content-type", "")
        html = response.text if "html" in content_type.lower() or not content_type else ""

        if response.status_code >= 400:
            logger.info("HTTP error status", url=url, status=response.status_code)

        return FetchOk(FetchedPage(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            html=html,
            content_type=content_type,
            headers={k.lower(): v for k, v in response.headers.items()},
            elapsed_ms=round(elapsed, 2),
            depth=depth,
        ))

    @staticmethod
    def _err(url: str, kind: str, exc: Exception) -> FetchErr:
        logger.warning("Fetch failed", url=url, kind=kind, error=str(exc) or type(exc).__name__)
        return FetchErr(TransportError(url, str(exc) or type(exc).__name__, kind))
