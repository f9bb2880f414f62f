"""
Tests for the job processor: crawl → analyze → aggregate against a fake
site and an in-memory job store.
"""

import asyncio

import pytest

from site_audit.core.exceptions import NotFoundError
from site_audit.jobs.models import Job, JobParams, JobStatus, JobType
from site_audit.jobs.processor import JobProcessor, crawl_options_for

from conftest import FakeSite, connect_error, html_page, links, no_sleep

IMAGES = (
    '<img src="1.png" alt="One"><img src="2.png"><img src="3.png" alt="Three">'
    '<img src="4.png"><img src="5.png" alt="Five">'
)


def make_processor(store, site: FakeSite, **kwargs) -> JobProcessor:
    kwargs.setdefault("sleep", no_sleep)
    return JobProcessor(store, client_factory=site.client, **kwargs)


async def submit(store, job_type: JobType = JobType.SITE_AUDIT, **params) -> Job:
    params.setdefault("delay_ms", 0)
    job = Job(type=job_type, params=JobParams(url="https://example.com", **params))
    return await store.create(job)


@pytest.fixture
def site():
    return FakeSite({
        "/": html_page(description=None, body="<h1>Home</h1>" + IMAGES + links("/a", "/b")),
        "/a": html_page(description=None, body="<h1>A</h1>" + links("/b")),
        "/b": html_page(description=None, body="<h1>B</h1>"),
    })


class TestCrawlOptions:

    def test_page_audit_fetches_one_page(self):
        job = Job(type=JobType.PAGE_AUDIT, params=JobParams(url="https://example.com", max_pages=50, max_depth=4))
        options = crawl_options_for(job)
        assert (options.max_pages, options.max_depth) == (1, 0)

    def test_site_audit_uses_params(self):
        job = Job(type=JobType.SITE_AUDIT, params=JobParams(url="https://example.com", max_pages=50, max_depth=4))
        options = crawl_options_for(job)
        assert (options.max_pages, options.max_depth) == (50, 4)


class TestJobProcessor:

    @pytest.mark.asyncio
    async def test_single_page_site_audit(self, store, site):
        job = await submit(store, max_pages=1, max_depth=0)
        done = await make_processor(store, site).process(job.id)

        assert done.status == JobStatus.COMPLETED
        assert done.progress == 100
        report = done.results
        assert len(report["pages"]) == 1
        assert report["common_issues"] == []
        assert report["base_url"] == "https://example.com/"

    @pytest.mark.asyncio
    async def test_image_alt_issues_reach_the_report(self, store, site):
        job = await submit(store, max_pages=1, max_depth=0)
        done = await make_processor(store, site).process(job.id)

        issues = done.results["pages"][0]["issues"]
        missing_alt = [i for i in issues if i["type"] == "images_missing_alt"]
        assert len(missing_alt) == 2
        assert {i["severity"] for i in missing_alt} == {"warning"}

    @pytest.mark.asyncio
    async def test_site_audit_reports_common_issues(self, store, site):
        job = await submit(store, max_pages=10, max_depth=2)
        done = await make_processor(store, site).process(job.id)
        report = done.results

        assert [p["url"] for p in report["pages"]] == [
            "https://example.com/",
            "https://example.com/a",
            "https://example.com/b",
        ]
        by_type = {c["type"]: c for c in report["common_issues"]}
        assert by_type["missing_meta_description"]["frequency"] == 3
        assert "images_missing_alt" not in by_type
        assert report["grade"] in {"A", "B", "C", "D", "F"}
        assert report["crawl_stats"]["pages_analyzed"] == 3

    @pytest.mark.asyncio
    async def test_page_audit_reports_every_issue_type(self, store, site):
        job = await submit(store, JobType.PAGE_AUDIT, max_pages=10, max_depth=2)
        done = await make_processor(store, site).process(job.id)
        report = done.results

        assert len(report["pages"]) == 1
        common = {c["type"] for c in report["common_issues"]}
        assert {"missing_meta_description", "images_missing_alt"} <= common

    @pytest.mark.asyncio
    async def test_unreachable_seed_completes_with_failed_page(self, store):
        site = FakeSite({"/": connect_error})
        job = await submit(store, max_pages=5)
        done = await make_processor(store, site).process(job.id)

        assert done.status == JobStatus.COMPLETED
        page = done.results["pages"][0]
        assert page["status_code"] == 0
        assert page["score"] == 0.0
        assert [i["type"] for i in page["issues"]] == ["fetch_failed"]

    @pytest.mark.asyncio
    async def test_crawl_abort_fails_job_with_partial_results(self, store):
        broken = [f"/broken-{i}" for i in range(8)]
        site = FakeSite({"/": html_page(body=links(*broken)), **{p: connect_error for p in broken}})
        job = await submit(store, max_pages=20)
        done = await make_processor(store, site).process(job.id)

        assert done.status == JobStatus.FAILED
        assert "consecutive fetch failures" in done.error
        assert len(done.results["pages"]) == 6
        assert done.results["crawl_stats"]["aborted"] is True

    @pytest.mark.asyncio
    async def test_cancellation_keeps_partial_results(self, store):
        site = FakeSite({
            "/": html_page(body=links("/a", "/b", "/c")),
            "/a": html_page(),
            "/b": html_page(),
            "/c": html_page(),
        })
        job = await submit(store, max_pages=10, delay_ms=100)

        async def cancel_while_waiting(seconds):
            await store.request_cancel(job.id)

        done = await make_processor(store, site, sleep=cancel_while_waiting).process(job.id)

        assert done.status == JobStatus.COMPLETED
        assert done.results["crawl_stats"]["cancelled"] is True
        assert len(done.results["pages"]) == 2

    @pytest.mark.asyncio
    async def test_stalled_job_is_failed(self, store):
        site = FakeSite({"/": html_page(body=links("/a")), "/a": html_page()})
        job = await submit(store, max_pages=10, delay_ms=100)

        async def hang(seconds):
            await asyncio.Event().wait()

        processor = make_processor(store, site, sleep=hang, stall_timeout=0.2)
        done = await asyncio.wait_for(processor.process(job.id), timeout=5)

        assert done.status == JobStatus.FAILED
        assert "stalled" in done.error

    @pytest.mark.asyncio
    async def test_long_crawl_delay_does_not_stall_job(self, store):
        site = FakeSite(
            {"/": html_page(body=links("/a")), "/a": html_page()},
            robots="User-agent: *\nCrawl-delay: 2\n",
        )
        job = await submit(store, max_pages=2)

        processor = make_processor(store, site, sleep=asyncio.sleep, stall_timeout=1.0)
        done = await asyncio.wait_for(processor.process(job.id), timeout=5)

        assert processor.max_delay_ms == 500
        assert done.status == JobStatus.COMPLETED
        assert len(done.results["pages"]) == 2

    def test_crawl_options_carry_delay_ceiling(self):
        job = Job(params=JobParams(url="https://example.com"))
        assert crawl_options_for(job, max_delay_ms=750).max_delay_ms == 750

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_job(self, store, site):
        job = await submit(store)

        def broken_client():
            raise RuntimeError("no network stack")

        done = await JobProcessor(store, client_factory=broken_client, sleep=no_sleep).process(job.id)
        assert done.status == JobStatus.FAILED
        assert done.error == "RuntimeError: no network stack"

    @pytest.mark.asyncio
    async def test_non_queued_job_is_left_alone(self, store, site):
        job = await submit(store)
        await store.complete(job.id, {"score": 1.0})
        result = await make_processor(store, site).process(job.id)
        assert result.status == JobStatus.COMPLETED
        assert result.results == {"score": 1.0}
        assert site.requests == []

    @pytest.mark.asyncio
    async def test_unknown_job_raises(self, store, site):
        with pytest.raises(NotFoundError):
            await make_processor(store, site).process("missing")

    @pytest.mark.asyncio
    async def test_process_many_with_concurrency_ceiling(self, store, site):
        jobs = [await submit(store, max_pages=1, max_depth=0) for _ in range(3)]
        processor = make_processor(store, site, max_concurrency=1)
        done = await processor.process_many([j.id for j in jobs])
        assert [j.status for j in done] == [JobStatus.COMPLETED] * 3

    @pytest.mark.asyncio
    async def test_analyze_non_html_page(self, store, site, page_factory):
        processor = make_processor(store, site)
        page = page_factory("", url="https://example.com/report", content_type="application/pdf")
        analysis = processor.analyze_page(JobType.SITE_AUDIT, page)
        assert analysis.meta_score == 0.0
        assert analysis.content_score == 0.0
        assert analysis.technical_score == 100.0
