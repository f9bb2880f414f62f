"""
robots.txt policy, loaded once per crawl.

Robots unavailability is never fatal: any fetch or parse failure degrades
to an allow-all policy.
"""

from __future__ import annotations

from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import httpx
import structlog

from site_audit.core.exceptions import PolicyError

logger = structlog.get_logger(__name__)


class RobotsPolicy:
    """Answers "is this path fetchable?" for one site."""

    def __init__(self, parser: RobotFileParser | None = None, source: str = "none"):
        self._parser = parser
        self.source = source   # fetched | missing | unavailable | none

    @classmethod
    def allow_all(cls, source: str = "none") -> RobotsPolicy:
        return cls(None, source)

    @classmethod
    def parse(cls, text: str, robots_url: str = "") -> RobotsPolicy:
        parser = RobotFileParser(robots_url)
        try:
            parser.parse(text.splitlines())
        except Exception as exc:
            raise PolicyError(f"Could not parse robots.txt at {robots_url}: {exc}") from exc
        return cls(parser, "fetched")

    @classmethod
    async def load(cls, base_url: str, client: httpx.AsyncClient, timeout: float = 10.0) -> RobotsPolicy:
        """Fetch and parse robots.txt for the site of base_url."""
        parsed = urlparse(base_url)
        robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"

        try:
            response = await client.get(robots_url, timeout=timeout, follow_redirects=True)
        except httpx.HTTPError as exc:
            logger.warning("robots.txt unavailable, allowing all", url=robots_url, error=str(exc))
            return cls.allow_all("unavailable")

        if response.status_code != 200:
            logger.info("No robots.txt, allowing all", url=robots_url, status=response.status_code)
            return cls.allow_all("missing")

        try:
            policy = cls.parse(response.text, robots_url)
        except PolicyError as exc:
            logger.warning("robots.txt unparseable, allowing all", url=robots_url, error=str(exc))
            return cls.allow_all("unavailable")

        logger.info("robots.txt loaded", url=robots_url)
        return policy

    def is_allowed(self, path: str, user_agent: str) -> bool:
        """Check whether user_agent may fetch path (a path or absolute URL)."""
        if self._parser is None:
            return True
        return self._parser.can_fetch(user_agent, path)

    def crawl_delay(self, user_agent: str) -> float | None:
        if self._parser is None:
            return None
        delay = self._parser.crawl_delay(user_agent)
        return float(delay) if delay else None
