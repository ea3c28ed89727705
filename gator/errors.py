"""Exception hierarchy for the aggregator."""


class GatorError(Exception):
    """Base class for all aggregator errors."""


class ConfigError(GatorError):
    """Invalid configuration or command usage. Fatal."""


class FetchError(GatorError):
    """Network request for a feed failed or returned a non-success status."""

    def __init__(self, url: str, message: str, status: int = None):
        self.url = url
        self.status = status
        super().__init__(f"{url}: {message}")


class ParseError(GatorError):
    """Response body is not a well-formed feed document."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{url}: {message}")


class DateFormatError(GatorError, ValueError):
    """No known feed date format matched."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"no valid date format found for {raw!r}")


class NoFeedsError(GatorError):
    """There are no feeds to select from."""


class NotFoundError(GatorError):
    """A user or feed lookup found nothing."""


class PersistenceError(GatorError):
    """Store operation failed for a reason other than a duplicate key."""


class DuplicateKeyError(PersistenceError):
    """Row with the same unique key already exists."""
