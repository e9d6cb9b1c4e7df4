"""Loose publication-date parsing for article records.

Stored dates come as ISO dates, ISO datetimes, or long-form strings such as
"June 5, 2023 at 10:00:00 AM EDT". Everything is normalised to aware UTC.
"""

from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as dateparser
from dateutil.tz import tzoffset

_HOUR = 3600

US_TZINFOS = {
    "EST": tzoffset("EST", -5 * _HOUR),
    "EDT": tzoffset("EDT", -4 * _HOUR),
    "CST": tzoffset("CST", -6 * _HOUR),
    "CDT": tzoffset("CDT", -5 * _HOUR),
    "MST": tzoffset("MST", -7 * _HOUR),
    "MDT": tzoffset("MDT", -6 * _HOUR),
    "PST": tzoffset("PST", -8 * _HOUR),
    "PDT": tzoffset("PDT", -7 * _HOUR),
    "AKST": tzoffset("AKST", -9 * _HOUR),
    "AKDT": tzoffset("AKDT", -8 * _HOUR),
    "HST": tzoffset("HST", -10 * _HOUR),
    "UTC": timezone.utc,
    "GMT": timezone.utc,
}

# Sorts before every parseable date
EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def parse_article_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an article date string into an aware UTC datetime.

    Args:
        value: Raw date string from the article record

    Returns:
        UTC datetime, or None if the string is empty or unparsable
    """
    if not value or not str(value).strip():
        return None

    try:
        parsed = dateparser.parse(str(value), tzinfos=US_TZINFOS)
        if parsed.tzinfo:
            # Offsets near datetime.min/max overflow on conversion
            return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None
    return parsed.replace(tzinfo=timezone.utc)


def sort_key(value: Optional[str]) -> datetime:
    """Date sort key; unparsable dates count as the earliest possible date."""
    return parse_article_date(value) or EARLIEST
