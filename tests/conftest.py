"""Pytest configuration and shared fixtures."""

import os
import sys
import tempfile
from pathlib import Path
from typing import List

import pytest
import pytest_asyncio
from aiohttp import web

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gator.ingestion.interfaces import RSSFeed, RSSItem
from gator.storage.database import FeedStorage


SAMPLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Blog</title>
    <link>https://blog.example.com/</link>
    <description>Posts about examples</description>
    <item>
      <title>First post</title>
      <link>https://blog.example.com/first</link>
      <description>The very first post</description>
      <pubDate>Mon, 02 Jan 2006 15:04:05 -0700</pubDate>
    </item>
    <item>
      <title>Second post</title>
      <link>https://blog.example.com/second</link>
      <description></description>
      <pubDate>sometime last week</pubDate>
    </item>
  </channel>
</rss>
"""

BROKEN_RSS = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Broken</title><item><title>Oops</item>
"""


@pytest.fixture
def temp_db():
    """Provide a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield f"sqlite:///{db_path}"
    # Cleanup
    try:
        os.unlink(db_path)
    except FileNotFoundError:
        pass


@pytest.fixture
def storage(temp_db):
    """FeedStorage on a temporary SQLite database."""
    store = FeedStorage(temp_db)
    yield store
    store.engine.dispose()


@pytest.fixture
def user(storage):
    """A registered user."""
    return storage.create_user("alice")


@pytest.fixture
def sample_rss_feed():
    """A parsed feed with one well-dated and one badly-dated item."""
    return RSSFeed(
        title="Example Blog",
        link="https://blog.example.com/",
        description="Posts about examples",
        items=[
            RSSItem(
                title="First post",
                link="https://blog.example.com/first",
                description="The very first post",
                pub_date="Mon, 02 Jan 2006 15:04:05 -0700",
            ),
            RSSItem(
                title="Second post",
                link="https://blog.example.com/second",
                description="",
                pub_date="not-a-date",
            ),
        ],
    )


class FakeFetcher:
    """Fetcher returning canned feeds (or raising) per URL."""

    def __init__(self, responses: dict = None):
        self.responses = responses or {}
        self.calls: List[str] = []

    async def fetch_feed(self, url: str) -> RSSFeed:
        self.calls.append(url)
        response = self.responses.get(url, RSSFeed())
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def rss_xml():
    return SAMPLE_RSS


@pytest.fixture
def broken_rss_xml():
    return BROKEN_RSS


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest_asyncio.fixture
async def feed_server():
    """Local HTTP server serving a few feed documents. Yields its base URL."""

    async def rss(request):
        return web.Response(text=SAMPLE_RSS, content_type="application/rss+xml")

    async def broken(request):
        return web.Response(text=BROKEN_RSS, content_type="application/rss+xml")

    async def html(request):
        return web.Response(text="<html><body>hello</body></html>", content_type="text/html")

    async def empty(request):
        return web.Response(body=b"", content_type="application/rss+xml")

    async def server_error(request):
        return web.Response(status=503, text="try later")

    app = web.Application()
    app.router.add_get("/rss.xml", rss)
    app.router.add_get("/broken.xml", broken)
    app.router.add_get("/page.html", html)
    app.router.add_get("/down.xml", server_error)
    app.router.add_get("/empty.xml", empty)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    host, port = runner.addresses[0][:2]

    yield f"http://{host}:{port}"

    await runner.cleanup()
