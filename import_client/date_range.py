"""
import_client/date_range.py

Effective date window for client-side row admission: the quota range
intersected with an optional user range, inclusive by whole UTC days.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone

CREATED_AT_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"


class DateRangeError(ValueError):
    """
    Raised for unparseable or empty date filters.
    """


def parse_date(value: str | date, *, label: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError as exc:
        raise DateRangeError(f"Invalid {label}: {value}") from exc


def parse_created_at(value: str) -> datetime | None:
    """
    Parse a ``YYYY-MM-DD HH:MM:SS`` UTC timestamp; None when it does not parse.
    """

    try:
        return datetime.strptime(value.strip(), CREATED_AT_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


@dataclass(frozen=True)
class DateRangeFilter:
    start: datetime
    end: datetime

    @classmethod
    def build(
        cls,
        *,
        earliest_allowed_date: str | date,
        latest_allowed_date: str | date,
        start_date: str | date | None = None,
        end_date: str | date | None = None,
    ) -> DateRangeFilter:
        earliest = parse_date(earliest_allowed_date, label="earliest allowed date")
        latest = parse_date(latest_allowed_date, label="latest allowed date")
        if start_date is not None:
            earliest = max(earliest, parse_date(start_date, label="start date"))
        if end_date is not None:
            latest = min(latest, parse_date(end_date, label="end date"))
        if earliest > latest:
            raise DateRangeError(f"Date range is empty: {earliest.isoformat()} > {latest.isoformat()}")
        return cls(
            start=datetime.combine(earliest, time.min, tzinfo=timezone.utc),
            end=datetime.combine(latest, time(23, 59, 59, 999999), tzinfo=timezone.utc),
        )

    def contains(self, timestamp: datetime) -> bool:
        return self.start <= timestamp <= self.end
