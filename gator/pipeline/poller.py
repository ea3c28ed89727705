"""Fixed-interval poller driving select-then-scrape cycles."""

import asyncio
import re
import signal
from datetime import timedelta
from enum import Enum
from typing import Optional

import structlog

from .scrape import ScrapeResult, scrape_feed, select_next_feed
from ..errors import ConfigError, FetchError, GatorError, NoFeedsError, ParseError
from ..ingestion.fetcher import RSSFetcher
from ..ingestion.interfaces import FetcherInterface, StorageInterface

logger = structlog.get_logger()

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_interval(text: str) -> timedelta:
    """Parse a duration such as "30s", "1m" or "1h30m".

    Raises ConfigError for malformed, zero or negative durations.
    """
    value = (text or "").strip()
    negative = value.startswith("-")
    value = value.lstrip("+-")
    if not value:
        raise ConfigError(f"invalid duration {text!r}")

    seconds = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART_RE.match(value, pos)
        if match is None:
            raise ConfigError(f"invalid duration {text!r}")
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if negative or seconds <= 0:
        raise ConfigError(f"duration must be positive, got {text!r}")
    return timedelta(seconds=seconds)


class PollerState(Enum):
    IDLE = "idle"
    RUNNING = "running"


class Poller:
    """Runs one aggregation cycle every ``interval``, until stopped.

    Intervals are measured from the start of the previous cycle. A cycle that
    overruns its interval is followed immediately by the next one; cycles
    never overlap. Stopping waits for the in-flight cycle to finish.
    """

    def __init__(
        self,
        storage: StorageInterface,
        fetcher: FetcherInterface,
        interval: timedelta,
    ):
        if interval.total_seconds() <= 0:
            raise ConfigError(f"poll interval must be positive, got {interval}")
        self.storage = storage
        self.fetcher = fetcher
        self.interval = interval
        self.state = PollerState.IDLE
        self.cycles = 0
        self._stop_event: Optional[asyncio.Event] = None

    async def run_cycle(self) -> Optional[ScrapeResult]:
        """Select and scrape one feed. Errors are logged, never raised."""
        self.state = PollerState.RUNNING
        self.cycles += 1
        try:
            feed = select_next_feed(self.storage)
            return await scrape_feed(self.storage, self.fetcher, feed)
        except NoFeedsError as e:
            logger.error("no_feeds_to_fetch", cycle=self.cycles, error=str(e))
        except (FetchError, ParseError) as e:
            logger.error("feed_scrape_failed", cycle=self.cycles, error_type=type(e).__name__, error=str(e))
        except GatorError as e:
            logger.error("cycle_failed", cycle=self.cycles, error_type=type(e).__name__, error=str(e))
        except Exception:
            logger.exception("cycle_crashed", cycle=self.cycles)
        finally:
            self.state = PollerState.IDLE
        return None

    async def run_forever(
        self,
        stop_event: asyncio.Event = None,
        max_cycles: int = None,
    ) -> int:
        """Run cycles until ``stop_event`` is set (or ``max_cycles`` ran).

        Returns the number of cycles run.
        """
        self._stop_event = stop_event or asyncio.Event()
        loop = asyncio.get_running_loop()
        interval = self.interval.total_seconds()
        ran = 0

        logger.info("poller_started", interval_seconds=interval)
        while not self._stop_event.is_set():
            started = loop.time()
            await self.run_cycle()
            ran += 1

            if max_cycles is not None and ran >= max_cycles:
                break

            delay = max(0.0, started + interval - loop.time())
            if delay == 0.0:
                logger.warning("cycle_overran_interval", cycle=self.cycles, interval_seconds=interval)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info("poller_stopped", cycles=ran)
        return ran

    def stop(self) -> None:
        """Ask the loop to exit after the current cycle."""
        if self._stop_event is not None:
            self._stop_event.set()


async def run_aggregation(
    storage: StorageInterface,
    interval: timedelta,
    fetcher: FetcherInterface = None,
) -> int:
    """Poll feeds forever; SIGINT/SIGTERM stop it after the current cycle."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def handle_signal(signum):
        logger.info("shutdown_signal_received", signal=signum)
        stop_event.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, handle_signal, signum)
        except NotImplementedError:
            previous[signum] = signal.getsignal(signum)
            signal.signal(
                signum,
                lambda s, frame: loop.call_soon_threadsafe(handle_signal, s),
            )

    try:
        if fetcher is not None:
            return await Poller(storage, fetcher, interval).run_forever(stop_event)
        async with RSSFetcher() as rss_fetcher:
            return await Poller(storage, rss_fetcher, interval).run_forever(stop_event)
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            if signum in previous:
                signal.signal(signum, previous[signum])
            else:
                loop.remove_signal_handler(signum)
