"""Factory functions to create storage instances.

The database URL is resolved from the environment first, then the user
config file, then the SQLite default in settings. SQLAlchemy handles both
SQLite and PostgreSQL (via psycopg2), so one storage class serves both.
"""

import os
from functools import lru_cache

import structlog

from .database import FeedStorage

logger = structlog.get_logger()


def get_database_url(user_config=None) -> str:
    """Get database URL from environment, with fallback to SQLite."""
    # Check for DATABASE_URL first (standard for cloud platforms)
    url = os.environ.get('DATABASE_URL')
    if url:
        return _normalize_postgres_url(url)

    # Check for GATOR_ prefixed version
    url = os.environ.get('GATOR_DATABASE_URL')
    if url:
        return _normalize_postgres_url(url)

    if user_config is None:
        from ..config.user_config import UserConfig
        user_config = UserConfig.read()
    url = user_config.db_url
    if url:
        return _normalize_postgres_url(url)

    # Default to SQLite for local development
    from ..config.settings import settings
    return settings.database_url


def _normalize_postgres_url(url: str) -> str:
    """SQLAlchemy no longer accepts the bare postgres:// scheme."""
    if url.startswith('postgres://'):
        return 'postgresql://' + url[len('postgres://'):]
    return url


def is_postgres() -> bool:
    """Check if we're using PostgreSQL."""
    url = get_database_url()
    return url.startswith('postgresql')


@lru_cache(maxsize=1)
def get_storage() -> FeedStorage:
    """Get the shared storage instance."""
    url = get_database_url()
    logger.info(
        "using_postgres_storage" if is_postgres() else "using_sqlite_storage",
        url=url[:40] + "...",
    )
    return FeedStorage(url)


def clear_cache():
    """Clear cached instances (useful for testing)."""
    get_storage.cache_clear()
