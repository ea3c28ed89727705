"""One aggregation cycle: pick the stalest feed, fetch it, store its items."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from ..errors import DateFormatError, DuplicateKeyError, NoFeedsError, PersistenceError
from ..ingestion.dates import normalize_published_date
from ..ingestion.interfaces import Feed, FetcherInterface, RSSItem, StorageInterface

logger = structlog.get_logger()


@dataclass
class ScrapeResult:
    """Counters for one feed's cycle."""
    feed_name: str
    items: int = 0
    created: int = 0
    duplicates: int = 0
    failed: int = 0
    undated: int = 0

    def to_dict(self) -> dict:
        return {
            "feed": self.feed_name,
            "items": self.items,
            "created": self.created,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "undated": self.undated,
        }


def select_next_feed(storage: StorageInterface) -> Feed:
    """Feed with the oldest (or no) fetch attempt. Raises NoFeedsError."""
    feed = storage.get_next_feed_to_fetch()
    if feed is None:
        raise NoFeedsError("no feeds to fetch")
    return feed


async def scrape_feed(
    storage: StorageInterface,
    fetcher: FetcherInterface,
    feed: Feed,
    now: Optional[datetime] = None,
) -> ScrapeResult:
    """Fetch one feed and save its items as posts.

    The fetch attempt is recorded before the request so a failing feed still
    moves to the back of the queue. FetchError and ParseError propagate;
    problems with individual items are logged and never fail the cycle.
    """
    now = now or datetime.now(timezone.utc)
    log = logger.bind(feed=feed.name, url=feed.url)

    storage.record_fetch_attempt(feed.id, now)
    log.info("feed_fetch_started")

    rss = await fetcher.fetch_feed(feed.url)

    result = ScrapeResult(feed_name=feed.name, items=len(rss.items))
    for item in rss.items:
        _save_item(storage, feed, item, result, log)

    log.info("feed_scraped", **result.to_dict())
    return result


def _save_item(storage, feed, item: RSSItem, result: ScrapeResult, log) -> None:
    if not item.link:
        log.warning("post_missing_link", title=item.title)
        result.failed += 1
        return

    try:
        published_at = normalize_published_date(item.pub_date)
    except DateFormatError as e:
        log.warning("post_date_unparsed", title=item.title, pub_date=item.pub_date, error=str(e))
        published_at = None
        result.undated += 1

    description = item.description if item.description and item.description.strip() else None

    try:
        storage.create_post(
            feed_id=feed.id,
            title=item.title,
            url=item.link,
            description=description,
            published_at=published_at,
        )
        result.created += 1
    except DuplicateKeyError:
        result.duplicates += 1
    except PersistenceError as e:
        log.warning("post_save_failed", title=item.title, url=item.link, error=str(e))
        result.failed += 1
