"""Feed ingestion - fetching, parsing and date normalization."""

from .interfaces import (
    RSSFeed, RSSItem, User, Feed, FeedFollow, Post,
    FetcherInterface, StorageInterface,
)
from .fetcher import RSSFetcher, parse_feed
from .dates import normalize_published_date

__all__ = [
    "RSSFeed", "RSSItem", "User", "Feed", "FeedFollow", "Post",
    "FetcherInterface", "StorageInterface",
    "RSSFetcher", "parse_feed", "normalize_published_date",
]
