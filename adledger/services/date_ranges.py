"""Date range chunking and timezone-aware reporting windows.

Large sync windows are split into calendar-aligned chunks so each unit of
remote work stays small. Requested dates are re-expressed in the ad
account's own timezone before they are sent to the platform, since the
platform interprets date ranges in the account's locale.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from adledger.core.config import settings
from adledger.db.enums import ChunkGranularity


class InvalidDateRangeError(ValueError):
    """End date is before start date."""

    pass


class InvalidTimezoneError(ValueError):
    """Timezone name is not a known IANA zone."""

    pass


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise InvalidDateRangeError(
                f"end date {self.end.isoformat()} is before start date {self.start.isoformat()}"
            )

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def iter_days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def to_payload(self) -> dict[str, str]:
        return {"start_date": self.start.isoformat(), "end_date": self.end.isoformat()}


def _end_of_unit(day: date, granularity: ChunkGranularity) -> date:
    if granularity == ChunkGranularity.DAY:
        return day
    if granularity == ChunkGranularity.WEEK:
        # ISO weeks run Monday to Sunday
        return day + timedelta(days=6 - day.weekday())
    if granularity == ChunkGranularity.MONTH:
        return date(day.year, day.month, calendar.monthrange(day.year, day.month)[1])
    if granularity == ChunkGranularity.QUARTER:
        last_month = ((day.month - 1) // 3 + 1) * 3
        return date(day.year, last_month, calendar.monthrange(day.year, last_month)[1])
    if granularity == ChunkGranularity.YEAR:
        return date(day.year, 12, 31)
    raise ValueError(f"Unsupported granularity: {granularity}")


def chunk_date_range(
    start: date,
    end: date,
    granularity: ChunkGranularity | str = ChunkGranularity.MONTH,
) -> list[DateRange]:
    """
    Split [start, end] into contiguous calendar-aligned chunks.

    The first and last chunks are clipped to the requested boundaries, so
    the union of the chunks is exactly the input range.

    Example:
        chunk_date_range(date(2024, 1, 1), date(2024, 3, 15))
        -> 01-01..01-31, 02-01..02-29, 03-01..03-15
    """
    if end < start:
        raise InvalidDateRangeError(
            f"end date {end.isoformat()} is before start date {start.isoformat()}"
        )
    granularity = ChunkGranularity(granularity)

    chunks: list[DateRange] = []
    current = start
    while current <= end:
        chunk_end = min(_end_of_unit(current, granularity), end)
        chunks.append(DateRange(current, chunk_end))
        current = chunk_end + timedelta(days=1)
    return chunks


def get_zone(tz_name: str | None) -> ZoneInfo:
    """Resolve an IANA timezone name or raise InvalidTimezoneError."""
    if not tz_name:
        raise InvalidTimezoneError(f'Invalid timezone "{tz_name or ""}"')
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezoneError(f'Invalid timezone "{tz_name}"') from exc


def format_date_in_timezone(instant: datetime, tz_name: str) -> str:
    """Return the YYYY-MM-DD calendar date of an instant in the given timezone.

    Naive datetimes are treated as UTC.
    """
    zone = get_zone(tz_name)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(zone).date().isoformat()


def account_date_window(
    start: date,
    end: date,
    account_timezone: str,
    request_timezone: str | None = None,
) -> DateRange:
    """
    Translate a requested date range into the account's reporting dates.

    Each requested date is anchored at midnight in the caller's timezone
    and re-expressed as a calendar date in the account's timezone. For an
    account at UTC-3 and a UTC caller, day D becomes D-1.
    """
    request_zone = get_zone(request_timezone or settings.SYNC_REQUEST_TIMEZONE)
    account_zone = get_zone(account_timezone)

    def _shift(day: date) -> date:
        anchor = datetime.combine(day, time.min, tzinfo=request_zone)
        return anchor.astimezone(account_zone).date()

    return DateRange(_shift(start), _shift(end))
