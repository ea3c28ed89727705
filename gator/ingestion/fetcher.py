"""RSS feed fetcher with timeouts and retries."""

import asyncio
import time
import xml.sax
from typing import Optional

import aiohttp
import feedparser
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .interfaces import RSSFeed, RSSItem, FetcherInterface
from ..config.settings import settings
from ..errors import FetchError, ParseError

logger = structlog.get_logger()


def _is_transient(exc: BaseException) -> bool:
    """Connection problems, timeouts and server-side statuses are worth retrying."""
    if not isinstance(exc, FetchError):
        return False
    return exc.status is None or exc.status >= 500 or exc.status == 429


def _strip_leading_junk(content):
    """Drop a BOM and whitespace before the XML declaration."""
    if isinstance(content, bytes):
        return content.lstrip(b"\xef\xbb\xbf \t\r\n")
    return content.lstrip("\ufeff \t\r\n")


def parse_feed(content, url: str = "") -> RSSFeed:
    """Parse a feed document body into an RSSFeed.

    Raises ParseError when the body is not a recognisable, well-formed feed.
    """
    parsed = feedparser.parse(_strip_leading_junk(content))

    if parsed.bozo and isinstance(parsed.get("bozo_exception"), xml.sax.SAXException):
        raise ParseError(url, f"malformed feed document: {parsed.bozo_exception}")
    if not parsed.get("version"):
        raise ParseError(url, "not an RSS or Atom document")

    channel = parsed.feed
    items = [
        RSSItem(
            title=entry.get("title", ""),
            link=entry.get("link", ""),
            description=entry.get("description", ""),
            pub_date=entry.get("published", "") or entry.get("updated", ""),
        )
        for entry in parsed.entries
    ]

    return RSSFeed(
        title=channel.get("title", ""),
        link=channel.get("link", ""),
        description=channel.get("description", ""),
        items=items,
    )


class RSSFetcher(FetcherInterface):
    """Async RSS feed fetcher with a per-request timeout and retries."""

    def __init__(
        self,
        timeout_seconds: float = None,
        max_retries: int = None,
        user_agent: str = None,
    ):
        self.timeout_seconds = timeout_seconds or settings.fetch_timeout_seconds
        self.max_retries = max_retries or settings.fetch_max_retries
        self.user_agent = user_agent or settings.user_agent
        self.retry_wait = wait_exponential(multiplier=1, min=1, max=10)
        self.session: Optional[aiohttp.ClientSession] = None

    def _new_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            headers={"User-Agent": self.user_agent},
        )

    async def __aenter__(self):
        self.session = self._new_session()
        return self

    async def __aexit__(self, *args):
        if self.session:
            await self.session.close()
            self.session = None

    async def fetch_feed(self, url: str) -> RSSFeed:
        """Fetch and parse a single feed. Network failures are retried."""
        start_time = time.time()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    content = await self._get(url)
        except FetchError as e:
            logger.warning("feed_fetch_failed", url=url, status=e.status, error=str(e))
            raise

        feed = parse_feed(content, url)

        logger.info(
            "feed_fetched",
            url=url,
            items=len(feed.items),
            time_ms=int((time.time() - start_time) * 1000),
        )
        return feed

    async def _get(self, url: str) -> bytes:
        """One GET request, mapping transport failures to FetchError."""
        if self.session is not None:
            return await self._read(self.session, url)

        async with self._new_session() as session:
            return await self._read(session, url)

    async def _read(self, session: aiohttp.ClientSession, url: str) -> bytes:
        try:
            async with session.get(url) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(url, f"HTTP {response.status}", status=response.status)
                return await response.read()
        except aiohttp.ClientError as e:
            raise FetchError(url, f"request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise FetchError(url, f"timed out after {self.timeout_seconds}s") from e
