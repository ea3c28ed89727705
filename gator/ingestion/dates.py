"""Published-date normalization for feed items.

Feeds in the wild use a handful of date layouts. They are tried in a fixed
order and the first one that parses wins, so a string that fits more than one
layout always resolves the same way.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..errors import DateFormatError

# RFC 822 section 5.1 zone names
ZONE_OFFSETS = {
    "UT": 0, "UTC": 0, "GMT": 0, "Z": 0,
    "EST": -5, "EDT": -4,
    "CST": -6, "CDT": -5,
    "MST": -7, "MDT": -6,
    "PST": -8, "PDT": -7,
}

_ZONE_NAME_RE = re.compile(r"^[A-Za-z]{1,5}$")

# (strptime layout, zone style). Zone style "name" means a trailing zone
# abbreviation which strptime can't handle, so it is split off first.
DATE_FORMATS = [
    ("%a, %d %b %Y %H:%M:%S %z", None),   # RFC 1123, numeric zone
    ("%a, %d %b %Y %H:%M:%S", "name"),    # RFC 1123
    ("%d %b %y %H:%M %z", None),          # RFC 822, numeric zone
    ("%d %b %y %H:%M", "name"),           # RFC 822
    ("%Y-%m-%dT%H:%M:%S%z", None),        # ISO 8601
    ("%Y-%m-%dT%H:%M:%S.%f%z", None),     # ISO 8601, fractional seconds
    ("%Y-%m-%d %H:%M:%S", "utc"),
]


def _zone_from_name(name: str) -> Optional[timezone]:
    if not _ZONE_NAME_RE.match(name):
        return None
    hours = ZONE_OFFSETS.get(name.upper(), 0)
    return timezone(timedelta(hours=hours))


def _parse_with(value: str, layout: str, zone_style: Optional[str]) -> datetime:
    if zone_style == "name":
        head, _, zone_name = value.rpartition(" ")
        tz = _zone_from_name(zone_name)
        if not head or tz is None:
            raise ValueError(f"no zone name in {value!r}")
        return datetime.strptime(head, layout).replace(tzinfo=tz)

    parsed = datetime.strptime(value, layout)
    if zone_style == "utc":
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_published_date(raw: Optional[str]) -> Optional[datetime]:
    """Parse a feed date string into an aware UTC datetime.

    Returns None for empty input. Raises DateFormatError when no layout in
    DATE_FORMATS matches.
    """
    if raw is None:
        return None
    value = " ".join(raw.split())
    if not value:
        return None

    for layout, zone_style in DATE_FORMATS:
        try:
            parsed = _parse_with(value, layout, zone_style)
        except ValueError:
            continue
        return parsed.astimezone(timezone.utc)

    raise DateFormatError(raw)
