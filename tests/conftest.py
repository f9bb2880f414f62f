"""
Shared fixtures: an in-memory Redis, a scriptable fake website served
through httpx MockTransport, and HTML page builders.
"""

from __future__ import annotations

from typing import Callable, Union

import fakeredis
import httpx
import pytest
import pytest_asyncio
from fakeredis import aioredis as fake_aioredis

from site_audit.engines.base import FetchedPage
from site_audit.engines.crawler.fetcher import build_client
from site_audit.jobs.store import JobStore

GOOD_TITLE = "Acme Widgets - Handmade Widgets for Every Home"
GOOD_DESCRIPTION = "Acme builds durable handmade widgets for kitchens, garages and gardens."

Route = Union[str, Callable[[httpx.Request], httpx.Response]]


def html_page(
    title: str | None = GOOD_TITLE,
    description: str | None = GOOD_DESCRIPTION,
    body: str = "<h1>Widgets</h1><p>Hello</p>",
    head: str = "",
) -> str:
    parts = []
    if title is not None:
        parts.append(f"<title>{title}</title>")
    if description is not None:
        parts.append(f'<meta name="description" content="{description}">')
    parts.append(head)
    return f"<html><head>{''.join(parts)}</head><body>{body}</body></html>"


def links(*paths: str) -> str:
    return "".join(f'<a href="{p}">{p}</a>' for p in paths)


class FakeSite:
    """
    Routes requests by full URL first, then by path. Strings are served as
    200 text/html; callables build the response themselves.
    """

    def __init__(self, routes: dict[str, Route] | None = None, robots: str | None = None):
        self.routes = routes or {}
        self.robots = robots
        self.requests: list[httpx.Request] = []

    @property
    def requested_paths(self) -> list[str]:
        return [r.url.path for r in self.requests if r.url.path != "/robots.txt"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/robots.txt":
            if self.robots is None:
                return httpx.Response(404)
            return httpx.Response(200, text=self.robots)

        route = self.routes.get(str(request.url), self.routes.get(request.url.path))
        if route is None:
            return httpx.Response(404, html=html_page(title="Not Found", body="<p>Missing</p>"))
        if callable(route):
            return route(request)
        return httpx.Response(200, html=route)

    def client(self, user_agent: str | None = None) -> httpx.AsyncClient:
        return build_client(user_agent=user_agent, transport=httpx.MockTransport(self.handler))


def connect_error(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


def redirect_to(location: str, status_code: int = 301) -> Callable[[httpx.Request], httpx.Response]:
    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, headers={"Location": location})
    return respond


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def page_factory() -> Callable[..., FetchedPage]:
    def make(
        html: str = "",
        url: str = "https://example.com/",
        final_url: str | None = None,
        status_code: int = 200,
        content_type: str = "text/html; charset=utf-8",
        elapsed_ms: float = 120.0,
        error: str | None = None,
        depth: int = 0,
    ) -> FetchedPage:
        return FetchedPage(
            url=url,
            final_url=final_url or url,
            status_code=0 if error else status_code,
            html=html,
            content_type=content_type,
            elapsed_ms=elapsed_ms,
            error=error,
            depth=depth,
        )
    return make


@pytest_asyncio.fixture
async def redis():
    client = fake_aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def store(redis) -> JobStore:
    return JobStore(redis, prefix="job:", ttl_seconds=3600)
