"""Interface definitions for feed ingestion and storage."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List


@dataclass
class RSSItem:
    """A single item of a fetched feed document."""
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""  # Raw, as sent by the source


@dataclass
class RSSFeed:
    """A fetched and parsed feed document."""
    title: str = ""
    link: str = ""
    description: str = ""
    items: List[RSSItem] = field(default_factory=list)


@dataclass
class User:
    """A registered user."""
    id: int
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Feed:
    """A feed tracked by the aggregator."""
    id: int
    name: str
    url: str
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_fetched_at: Optional[datetime] = None  # Last fetch attempt, not last success


@dataclass
class FeedFollow:
    """A user following a feed."""
    id: int
    user_id: int
    feed_id: int
    user_name: str = ""
    feed_name: str = ""
    created_at: Optional[datetime] = None


@dataclass
class Post:
    """An item ingested from a feed, unique by URL."""
    id: int
    feed_id: int
    title: str
    url: str
    description: Optional[str] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    feed_name: str = ""

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "feed_id": self.feed_id,
            "feed_name": self.feed_name,
            "title": self.title,
            "url": self.url,
            "description": self.description,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class FetcherInterface:
    """Interface for feed fetching."""

    async def fetch_feed(self, url: str) -> RSSFeed:
        """Fetch and parse a single feed document."""
        raise NotImplementedError


class StorageInterface:
    """Interface for the feed directory and post store."""

    def list_feeds(self) -> List[Feed]:
        """All feeds in insertion order."""
        raise NotImplementedError

    def get_feed_by_url(self, url: str) -> Feed:
        """Get feed by URL, raise NotFoundError if missing."""
        raise NotImplementedError

    def create_feed(self, name: str, url: str, user_id: int) -> Feed:
        """Create feed, raise DuplicateKeyError if the URL exists."""
        raise NotImplementedError

    def record_fetch_attempt(self, feed_id: int, fetched_at: datetime) -> None:
        """Advance the feed's last_fetched_at to fetched_at."""
        raise NotImplementedError

    def get_next_feed_to_fetch(self) -> Optional[Feed]:
        """Stalest feed, or None when there are no feeds."""
        raise NotImplementedError

    def create_post(
        self,
        feed_id: int,
        title: str,
        url: str,
        description: Optional[str] = None,
        published_at: Optional[datetime] = None,
    ) -> Post:
        """Create post, raise DuplicateKeyError if the URL exists."""
        raise NotImplementedError
