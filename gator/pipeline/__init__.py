"""Pipeline orchestration - feed selection, scraping and polling."""

from .scrape import ScrapeResult, scrape_feed, select_next_feed
from .poller import Poller, PollerState, parse_interval, run_aggregation

__all__ = [
    "ScrapeResult", "scrape_feed", "select_next_feed",
    "Poller", "PollerState", "parse_interval", "run_aggregation",
]
