"""
app/services/import_quota.py

Per-organization import quota: a calendar-month historical window with a
per-month event cap, derived fresh from persisted event counts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from app.config import QuotaSettings, TierPolicy, get_quota_settings
from app.domain.site_import import AllowedDateRange, SiteImportError
from app.repositories.event_repository import EventRepository
from db.repositories.site_repository import SiteRepository

logger = logging.getLogger(__name__)


def month_key(value: date | datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """
    Move (year, month) by ``delta`` calendar months.
    """

    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class MonthUsage:
    month: str
    used: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def at_capacity(self) -> bool:
        return self.remaining == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
        }


@dataclass(frozen=True)
class QuotaSummary:
    oldest_allowed_month: date
    total_months_in_window: int
    months_at_capacity: int
    monthly_event_limit: int
    months: list[MonthUsage] = field(default_factory=list)

    def describe_capacity(self) -> str:
        return (
            f"{self.months_at_capacity} of {self.total_months_in_window} "
            "months are at full capacity."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "oldest_allowed_month": month_key(self.oldest_allowed_month),
            "total_months_in_window": self.total_months_in_window,
            "months_at_capacity": self.months_at_capacity,
            "monthly_event_limit": self.monthly_event_limit,
            "months": [usage.to_dict() for usage in self.months],
        }


class QuotaExceededError(SiteImportError):
    """
    Raised when a fully quota-rejected batch fails its import.
    """

    def __init__(self, message: str, *, summary: QuotaSummary) -> None:
        super().__init__(message)
        self.summary = summary


class ImportQuotaTracker:
    """
    Answers whether an event timestamp is importable for one organization.

    A tracker reflects the counts read when it was built plus the events it has
    accepted since via ``consume``. Build a new one for every gating decision.
    """

    def __init__(
        self,
        *,
        policy: TierPolicy,
        used_by_month: dict[str, int],
        now: datetime,
    ) -> None:
        self._policy = policy
        self._now = _as_utc(now)

        window = max(1, policy.historical_window_months)
        current_year, current_month = self._now.year, self._now.month
        self._months: list[str] = []
        for offset in range(window - 1, -1, -1):
            year, month = shift_month(current_year, current_month, -offset)
            self._months.append(f"{year:04d}-{month:02d}")

        oldest_year, oldest_month = shift_month(current_year, current_month, -(window - 1))
        self._earliest = date(oldest_year, oldest_month, 1)
        self._latest = self._now.date()
        self._used: dict[str, int] = {key: max(0, used_by_month.get(key, 0)) for key in self._months}

    @classmethod
    def create(
        cls,
        session: Session,
        organization_id: str,
        *,
        now: datetime | None = None,
        settings: QuotaSettings | None = None,
    ) -> ImportQuotaTracker:
        """
        Build a tracker from the organization's tier and its current per-month event counts.
        """

        quota_settings = settings or get_quota_settings()
        sites = SiteRepository(session)
        organization = sites.get_organization(organization_id)

        policy = quota_settings.policy_for(organization.plan_tier if organization else None)
        if organization is not None and organization.monthly_event_limit is not None:
            policy = TierPolicy(
                historical_window_months=policy.historical_window_months,
                monthly_event_limit=max(0, int(organization.monthly_event_limit)),
            )

        reference = _as_utc(now or datetime.now(timezone.utc))
        oldest_year, oldest_month = shift_month(
            reference.year,
            reference.month,
            -(max(1, policy.historical_window_months) - 1),
        )
        since = datetime(oldest_year, oldest_month, 1, tzinfo=timezone.utc)
        used = EventRepository(session).count_by_month(
            site_ids=sites.list_site_ids(organization_id),
            since=since,
        )
        logger.debug(
            "Quota tracker built organization_id=%s window_months=%s monthly_limit=%s months_with_usage=%s",
            organization_id,
            policy.historical_window_months,
            policy.monthly_event_limit,
            len(used),
        )
        return cls(policy=policy, used_by_month=used, now=reference)

    @property
    def earliest_allowed_date(self) -> date:
        return self._earliest

    @property
    def latest_allowed_date(self) -> date:
        return self._latest

    def is_within_window(self, timestamp: datetime) -> bool:
        day = _as_utc(timestamp).date()
        return self._earliest <= day <= self._latest

    def remaining_for(self, timestamp: datetime) -> int:
        key = month_key(_as_utc(timestamp))
        if key not in self._used:
            return 0
        return max(0, self._policy.monthly_event_limit - self._used[key])

    def can_import_event(self, timestamp: datetime) -> bool:
        """
        True iff ``timestamp`` is inside the window and its month has capacity left.
        """

        return self.is_within_window(timestamp) and self.remaining_for(timestamp) > 0

    def consume(self, timestamp: datetime) -> bool:
        """
        Accept one event against its month's capacity. Returns False without
        consuming when the event is not importable.
        """

        if not self.can_import_event(timestamp):
            return False
        self._used[month_key(_as_utc(timestamp))] += 1
        return True

    def get_summary(self) -> QuotaSummary:
        months = [
            MonthUsage(month=key, used=self._used[key], limit=self._policy.monthly_event_limit)
            for key in self._months
        ]
        return QuotaSummary(
            oldest_allowed_month=self._earliest,
            total_months_in_window=len(self._months),
            months_at_capacity=sum(1 for usage in months if usage.at_capacity),
            monthly_event_limit=self._policy.monthly_event_limit,
            months=months,
        )

    def allowed_date_range(self) -> AllowedDateRange:
        return AllowedDateRange(
            earliest_allowed_date=self._earliest,
            latest_allowed_date=self._latest,
            historical_window_months=len(self._months),
        )
