"""Production worker that polls feeds on a fixed interval.

Runs as a separate service. Each tick picks the stalest feed, fetches it and
stores any new posts. SIGINT/SIGTERM stop the worker after the in-flight
cycle finishes.

Usage:
    python scripts/worker.py

Environment Variables:
    DATABASE_URL: SQLAlchemy URL (PostgreSQL or SQLite)
    GATOR_POLL_INTERVAL: time between cycles, e.g. 30s, 1m (default 1m)
    GATOR_FETCH_TIMEOUT_SECONDS: per-request timeout (default 30)
    GATOR_LOG_LEVEL / GATOR_LOG_JSON: logging output
"""

import os
import sys
import asyncio

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from gator.config.logging_setup import configure_logging
from gator.config.settings import settings
from gator.errors import ConfigError
from gator.pipeline.poller import parse_interval, run_aggregation
from gator.storage.factory import get_storage

logger = structlog.get_logger()


async def main():
    """Main entry point."""
    storage = get_storage()
    interval = parse_interval(settings.poll_interval)

    logger.info("worker_started", interval=settings.poll_interval, stats=storage.get_stats())
    cycles = await run_aggregation(storage, interval)
    logger.info("worker_stopped", cycles=cycles, stats=storage.get_stats())


if __name__ == "__main__":
    configure_logging(settings.log_level, settings.log_json)
    try:
        asyncio.run(main())
    except ConfigError as e:
        logger.error("worker_config_invalid", error=str(e))
        sys.exit(1)
