"""
Crawler Engine - polite breadth-first site crawler.

Architecture:
- BFS traversal from the seed at depth 0 with a FIFO frontier
- One in-flight fetch per crawl, with a politeness delay between fetches
- robots.txt loaded once per crawl, consulted only when requested
- Normalized-URL dedup: every URL is enqueued at most once, and a URL
  already reached through a redirect is not fetched again
- Per-page transport failures are recorded, a run of them aborts the crawl
- Cooperative stop checked between fetches
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable

import structlog

from site_audit.core.config import get_settings
from site_audit.core.exceptions import CrawlAbortedError
from site_audit.engines.base import CrawlTarget, FetchedPage
from site_audit.engines.crawler.fetcher import FetchErr, PageFetcher
from site_audit.engines.crawler.links import LinkExtractor, URLNormalizer
from site_audit.engines.crawler.robots import RobotsPolicy

logger = structlog.get_logger(__name__)
settings = get_settings()

PageCallback = Callable[[FetchedPage, int], Awaitable[None]]
StopCheck = Callable[[], Awaitable[bool]]


# ─────────────────────────────────────────────
# Data Structures
# ─────────────────────────────────────────────

@dataclass
class CrawlOptions:
    max_pages: int = settings.CRAWLER_DEFAULT_MAX_PAGES
    max_depth: int = settings.CRAWLER_DEFAULT_MAX_DEPTH
    respect_robots: bool = True
    include_subdomains: bool = False
    delay_ms: int = settings.CRAWLER_DELAY_MS
    max_delay_ms: int = settings.CRAWLER_MAX_DELAY_MS
    max_consecutive_failures: int = settings.CRAWLER_MAX_CONSECUTIVE_FAILURES


@dataclass
class CrawlStats:
    """Live crawl statistics."""
    total_queued: int = 0
    total_crawled: int = 0
    total_failed: int = 0
    skipped_depth: int = 0
    skipped_robots: int = 0
    skipped_duplicate: int = 0
    robots: str = "none"
    cancelled: bool = False
    aborted: bool = False
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("start_time")
        data["elapsed_seconds"] = round(self.elapsed_seconds, 2)
        return data


@dataclass
class CrawlResult:
    pages: list[FetchedPage]
    stats: CrawlStats


# ─────────────────────────────────────────────
# Crawler
# ─────────────────────────────────────────────

class Crawler:
    """
    Flow:
    1. Normalize the seed, load robots.txt if respected
    2. Dequeue target → depth/robots checks → wait politeness delay → fetch
    3. Record the page (failures included), extract same-site links
    4. Enqueue links never seen before at depth + 1
    5. Stop on empty frontier, max_pages, stop request or failure run
    """

    def __init__(self, fetcher: PageFetcher, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.fetcher = fetcher
        self._sleep = sleep
        self._last_fetch: float | None = None

    async def crawl(
        self,
        seed_url: str,
        options: CrawlOptions,
        on_page: PageCallback | None = None,
        should_stop: StopCheck | None = None,
    ) -> CrawlResult:
        seed = URLNormalizer.normalize(seed_url)
        if seed is None:
            raise ValueError(f"Invalid seed URL: {seed_url}")

        stats = CrawlStats()
        extractor = LinkExtractor(seed, options.include_subdomains)
        user_agent = self.fetcher.user_agent

        delay = max(0, options.delay_ms) / 1000
        if options.respect_robots:
            policy = await RobotsPolicy.load(seed, self.fetcher.client)
            crawl_delay = policy.crawl_delay(user_agent)
            if crawl_delay and crawl_delay > delay:
                logger.info("Respecting crawl-delay", delay=crawl_delay, seed=seed)
                delay = crawl_delay
        else:
            policy = RobotsPolicy.allow_all()
        stats.robots = policy.source

        max_delay = max(0, options.max_delay_ms) / 1000
        if delay > max_delay:
            logger.warning("Politeness delay capped", requested=delay, capped=max_delay, seed=seed)
            delay = max_delay

        frontier: deque[CrawlTarget] = deque([CrawlTarget(url=seed, depth=0)])
        enqueued: set[str] = {seed}
        fetched: set[str] = set()
        stats.total_queued = 1
        pages: list[FetchedPage] = []
        consecutive_failures = 0
        self._last_fetch = None

        logger.info("Crawl starting", seed=seed, max_pages=options.max_pages, max_depth=options.max_depth)

        while frontier and len(pages) < options.max_pages:
            if should_stop is not None and await should_stop():
                stats.cancelled = True
                logger.info("Crawl stopped on request", seed=seed, crawled=len(pages))
                break

            target = frontier.popleft()

            if target.depth > options.max_depth:
                stats.skipped_depth += 1
                continue

            # Reached earlier as the target of a redirect
            if target.url in fetched:
                stats.skipped_duplicate += 1
                continue

            if options.respect_robots and not policy.is_allowed(target.url, user_agent):
                stats.skipped_robots += 1
                logger.debug("Blocked by robots.txt", url=target.url)
                continue

            await self._wait_politely(delay)
            result = await self.fetcher.fetch(target.url, depth=target.depth)
            self._last_fetch = time.monotonic()
            fetched.add(target.url)

            if isinstance(result, FetchErr):
                page = result.to_page(depth=target.depth)
                consecutive_failures += 1
                stats.total_failed += 1
            else:
                page = result.page
                consecutive_failures = 0

            final = URLNormalizer.normalize(page.final_url) if page.error is None else None
            if final and final != target.url and final in fetched:
                stats.skipped_duplicate += 1
                logger.debug("Redirect to a page already crawled", url=target.url, final_url=final)
                continue
            if final:
                fetched.add(final)
                enqueued.add(final)

            pages.append(page)
            stats.total_crawled += 1
            if on_page is not None:
                await on_page(page, len(pages))

            if consecutive_failures >= options.max_consecutive_failures:
                stats.aborted = True
                logger.error("Crawl aborted", seed=seed, consecutive_failures=consecutive_failures)
                raise CrawlAbortedError(consecutive_failures, pages, stats.as_dict())

            if target.depth < options.max_depth and page.is_html and final and \
                    URLNormalizer.is_same_site(final, extractor.root_domain, options.include_subdomains):
                for link in extractor.extract(page.html, page.final_url):
                    if link in enqueued:
                        continue
                    enqueued.add(link)
                    frontier.append(CrawlTarget(url=link, depth=target.depth + 1, parent_url=target.url))
                    stats.total_queued += 1

        logger.info(
            "Crawl complete",
            seed=seed,
            crawled=stats.total_crawled,
            failed=stats.total_failed,
            elapsed=round(stats.elapsed_seconds, 2),
        )
        return CrawlResult(pages=pages, stats=stats)

    async def _wait_politely(self, delay: float) -> None:
        if self._last_fetch is None or delay <= 0:
            return
        remaining = delay - (time.monotonic() - self._last_fetch)
        if remaining > 0:
            await self._sleep(remaining)
