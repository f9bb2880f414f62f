"""
Job Processor - drives one job from the store through crawl, analysis and
aggregation, writing progress and the final report back to the store.

State machine: queued → processing → completed | failed

- Admission control: at most max_concurrency jobs run in one process
- Progress: 0-80 while crawling (pages fetched / max_pages), 80-99 while
  analyzing, 100 on completion; never decreases
- A job whose progress stops advancing for stall_timeout is failed
- Cancellation is cooperative: checked between page fetches, partial
  results are kept
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

import httpx
import structlog

from site_audit.core.config import get_settings
from site_audit.core.exceptions import CrawlAbortedError, JobStalledError, NotFoundError
from site_audit.engines.base import FetchedPage, PageAnalysis, PageAnalyzer, SiteReport, parse_html
from site_audit.engines.content.engine import ContentAnalyzer
from site_audit.engines.crawler.engine import CrawlOptions, Crawler
from site_audit.engines.crawler.fetcher import PageFetcher, build_client
from site_audit.engines.meta.engine import MetaAnalyzer
from site_audit.engines.scoring.engine import ScoreAggregator
from site_audit.engines.technical.engine import TechnicalAnalyzer
from site_audit.jobs.models import Job, JobType
from site_audit.jobs.store import JobStore

logger = structlog.get_logger(__name__)
settings = get_settings()


# ─────────────────────────────────────────────
# Job type → pipeline
# ─────────────────────────────────────────────

ANALYZER_PIPELINES: dict[JobType, tuple[type[PageAnalyzer], ...]] = {
    JobType.PAGE_AUDIT: (MetaAnalyzer, ContentAnalyzer, TechnicalAnalyzer),
    JobType.SITE_AUDIT: (MetaAnalyzer, ContentAnalyzer, TechnicalAnalyzer),
}

# A single-page audit reports every issue type it found
COMMON_ISSUE_MIN_FREQUENCY: dict[JobType, int] = {
    JobType.PAGE_AUDIT: 1,
    JobType.SITE_AUDIT: 2,
}

CRAWL_PROGRESS_SHARE = 80
ANALYSIS_PROGRESS_END = 99


def crawl_options_for(job: Job, max_delay_ms: int = settings.CRAWLER_MAX_DELAY_MS) -> CrawlOptions:
    params = job.params
    if job.type == JobType.PAGE_AUDIT:
        max_pages, max_depth = 1, 0
    else:
        max_pages, max_depth = params.max_pages, params.max_depth
    return CrawlOptions(
        max_pages=max_pages,
        max_depth=max_depth,
        respect_robots=params.respect_robots,
        include_subdomains=params.include_subdomains,
        delay_ms=params.delay_ms,
        max_delay_ms=max_delay_ms,
    )


class ProgressTracker:
    """Monotonic clock of the last observed progress."""

    def __init__(self):
        self.last_progress = time.monotonic()

    def touch(self) -> None:
        self.last_progress = time.monotonic()

    @property
    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_progress


class JobProcessor:

    def __init__(
        self,
        store: JobStore,
        client_factory: Callable[[], httpx.AsyncClient] = build_client,
        max_concurrency: int = settings.MAX_CONCURRENCY,
        stall_timeout: float = settings.JOB_STALL_TIMEOUT,
        aggregator: ScoreAggregator | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.store = store
        self.client_factory = client_factory
        self.stall_timeout = stall_timeout
        self.watchdog_interval = min(5.0, stall_timeout / 4)
        # A politeness wait must end well before the watchdog fires
        self.max_delay_ms = min(settings.CRAWLER_MAX_DELAY_MS, int(stall_timeout * 500))
        self.aggregator = aggregator or ScoreAggregator()
        self._sleep = sleep
        self._slots = asyncio.Semaphore(max_concurrency)

    # ─────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────

    async def process(self, job_id: str) -> Job:
        """Run a queued job to a terminal state. Jobs not in `queued` are left alone."""
        async with self._slots:
            job = await self.store.start(job_id)
            if job is None:
                current = await self.store.get(job_id)
                if current is None:
                    raise NotFoundError(job_id)
                logger.info("Job not queued, skipping", job_id=job_id, status=current.status.value)
                return current

            with structlog.contextvars.bound_contextvars(job_id=job_id, job_type=job.type.value):
                logger.info("Job processing", url=job.params.url)
                return await self._run(job)

    async def process_many(self, job_ids: list[str]) -> list[Job]:
        """Process jobs concurrently; the semaphore keeps the rest queued."""
        return list(await asyncio.gather(*(self.process(job_id) for job_id in job_ids)))

    # ─────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────

    async def _run(self, job: Job) -> Job:
        try:
            report = await self._run_watched(job)
        except CrawlAbortedError as exc:
            partial = None
            if exc.pages:
                report = await self._build_report(job, exc.pages, exc.stats)
                partial = report.model_dump(mode="json")
            return await self.store.fail(job.id, str(exc), results=partial)
        except JobStalledError as exc:
            logger.error("Job stalled", idle_seconds=round(exc.idle_seconds, 1))
            return await self.store.fail(job.id, str(exc))
        except Exception as exc:
            logger.error("Job failed", error=str(exc), exc_info=True)
            return await self.store.fail(job.id, f"{type(exc).__name__}: {exc}")

        return await self.store.complete(job.id, report.model_dump(mode="json"))

    async def _run_watched(self, job: Job) -> SiteReport:
        tracker = ProgressTracker()
        task = asyncio.create_task(self._run_pipeline(job, tracker))
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=self.watchdog_interval)
                if task in done:
                    return task.result()
                if tracker.idle_seconds > self.stall_timeout:
                    task.cancel()
                    await asyncio.gather(task, return_exceptions=True)
                    raise JobStalledError(job.id, tracker.idle_seconds)
        finally:
            if not task.done():
                task.cancel()

    async def _run_pipeline(self, job: Job, tracker: ProgressTracker) -> SiteReport:
        options = crawl_options_for(job, max_delay_ms=self.max_delay_ms)

        async def on_page(page: FetchedPage, fetched: int) -> None:
            tracker.touch()
            progress = int(fetched / options.max_pages * CRAWL_PROGRESS_SHARE)
            await self.store.update(job.id, progress=progress)

        async def should_stop() -> bool:
            current = await self.store.get(job.id)
            return current is None or current.cancel_requested

        async def polite_sleep(seconds: float) -> None:
            tracker.touch()
            await self._sleep(seconds)
            tracker.touch()

        async with self.client_factory() as client:
            crawler = Crawler(PageFetcher(client), sleep=polite_sleep)
            result = await crawler.crawl(job.params.url, options, on_page=on_page, should_stop=should_stop)

        tracker.touch()
        return await self._build_report(job, result.pages, result.stats.as_dict(), tracker)

    async def _build_report(
        self,
        job: Job,
        pages: list[FetchedPage],
        crawl_stats: dict[str, Any],
        tracker: ProgressTracker | None = None,
    ) -> SiteReport:
        analyses: list[PageAnalysis] = []
        for index, page in enumerate(pages, start=1):
            analyses.append(await asyncio.to_thread(self.analyze_page, job.type, page))
            if tracker is not None:
                tracker.touch()
                span = ANALYSIS_PROGRESS_END - CRAWL_PROGRESS_SHARE
                await self.store.update(job.id, progress=CRAWL_PROGRESS_SHARE + int(index / len(pages) * span))

        return self.aggregator.aggregate(
            analyses,
            base_url=job.params.url,
            crawl_stats=crawl_stats,
            min_frequency=COMMON_ISSUE_MIN_FREQUENCY[job.type],
        )

    def analyze_page(self, job_type: JobType, page: FetchedPage) -> PageAnalysis:
        soup = parse_html(page.html) if page.is_html else None
        results = [analyzer().analyze(page, soup) for analyzer in ANALYZER_PIPELINES[job_type]]
        return self.aggregator.merge_page(page, results)
