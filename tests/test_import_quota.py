"""
tests/test_import_quota.py

ImportQuotaTracker window and capacity rules.

Coverage
--------
- Window boundaries (first day of oldest month through today)
- Per-month capacity with consume; remaining never negative
- Summary counts and message
- Building from persisted events across all organization sites
- Per-organization limit override
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from sqlalchemy.orm import Session

from app.config import QuotaSettings, TierPolicy
from app.services.import_quota import ImportQuotaTracker, month_key, shift_month
from db.models.event import Event
from db.models.site import Organization
from tests.conftest import ORG_ID

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def _ts(year: int, month: int, day: int, hour: int = 10) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def _tracker(limit: int = 3, window: int = 6, used: dict[str, int] | None = None) -> ImportQuotaTracker:
    return ImportQuotaTracker(
        policy=TierPolicy(historical_window_months=window, monthly_event_limit=limit),
        used_by_month=used or {},
        now=NOW,
    )


def _event(site_id: int, timestamp: datetime) -> Event:
    return Event(
        site_id=site_id,
        import_id=None,
        timestamp=timestamp,
        type="pageview",
        session_id="s1",
        user_id="s1",
    )


# ---------------------------------------------------------------------------
# Month arithmetic
# ---------------------------------------------------------------------------


class TestMonthHelpers:
    def test_shift_month_crosses_year(self) -> None:
        assert shift_month(2024, 1, -1) == (2023, 12)
        assert shift_month(2024, 6, -5) == (2024, 1)
        assert shift_month(2023, 12, 1) == (2024, 1)

    def test_month_key(self) -> None:
        assert month_key(date(2024, 3, 15)) == "2024-03"


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------


class TestWindow:
    def test_bounds(self) -> None:
        tracker = _tracker()
        assert tracker.earliest_allowed_date == date(2024, 1, 1)
        assert tracker.latest_allowed_date == date(2024, 6, 30)

    def test_event_before_window_rejected(self) -> None:
        tracker = _tracker()
        assert tracker.can_import_event(_ts(2023, 12, 31, 23)) is False
        assert tracker.can_import_event(_ts(2024, 1, 1, 0)) is True

    def test_event_inside_window_accepted(self) -> None:
        assert _tracker().can_import_event(_ts(2024, 3, 15)) is True

    def test_future_event_rejected(self) -> None:
        tracker = _tracker()
        assert tracker.can_import_event(_ts(2024, 6, 30, 23)) is True
        assert tracker.can_import_event(_ts(2024, 7, 1, 0)) is False

    def test_allowed_date_range(self) -> None:
        date_range = _tracker().allowed_date_range()
        assert date_range.earliest_allowed_date == date(2024, 1, 1)
        assert date_range.latest_allowed_date == date(2024, 6, 30)
        assert date_range.historical_window_months == 6


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------


class TestCapacity:
    def test_predicate_does_not_consume(self) -> None:
        tracker = _tracker(limit=1)
        assert tracker.can_import_event(_ts(2024, 3, 1)) is True
        assert tracker.can_import_event(_ts(2024, 3, 1)) is True
        assert tracker.remaining_for(_ts(2024, 3, 1)) == 1

    def test_consume_until_full(self) -> None:
        tracker = _tracker(limit=3)
        results = [tracker.consume(_ts(2024, 3, day)) for day in range(1, 6)]

        assert results == [True, True, True, False, False]
        assert tracker.remaining_for(_ts(2024, 3, 20)) == 0
        # Other months keep their own capacity.
        assert tracker.consume(_ts(2024, 4, 1)) is True

    def test_over_limit_usage_never_goes_negative(self) -> None:
        tracker = _tracker(limit=3, used={"2024-02": 10})
        assert tracker.remaining_for(_ts(2024, 2, 1)) == 0
        assert tracker.can_import_event(_ts(2024, 2, 1)) is False

        usage = {month.month: month for month in tracker.get_summary().months}
        assert usage["2024-02"].remaining == 0

    def test_summary(self) -> None:
        tracker = _tracker(limit=2, used={"2024-01": 2, "2024-05": 1})
        tracker.consume(_ts(2024, 5, 2))

        summary = tracker.get_summary()

        assert summary.oldest_allowed_month == date(2024, 1, 1)
        assert summary.total_months_in_window == 6
        assert summary.months_at_capacity == 2
        assert summary.describe_capacity() == "2 of 6 months are at full capacity."
        assert [month.month for month in summary.months] == [
            "2024-01",
            "2024-02",
            "2024-03",
            "2024-04",
            "2024-05",
            "2024-06",
        ]
        assert summary.to_dict()["oldest_allowed_month"] == "2024-01"


# ---------------------------------------------------------------------------
# Built from the database
# ---------------------------------------------------------------------------


class TestCreateFromDatabase:
    def test_counts_events_across_organization_sites(self, session: Session, seeded: dict[str, int]) -> None:
        session.add_all(
            [
                _event(seeded["site_id"], _ts(2024, 3, 1)),
                _event(seeded["second_site_id"], _ts(2024, 3, 2)),
                _event(seeded["other_site_id"], _ts(2024, 3, 3)),
                _event(seeded["site_id"], _ts(2023, 11, 3)),
            ]
        )
        session.commit()
        settings = QuotaSettings(
            tiers={"free": TierPolicy(historical_window_months=6, monthly_event_limit=3)},
        )

        tracker = ImportQuotaTracker.create(session, ORG_ID, now=NOW, settings=settings)

        assert tracker.remaining_for(_ts(2024, 3, 10)) == 1
        assert tracker.remaining_for(_ts(2024, 4, 10)) == 3

    def test_organization_limit_override(self, session: Session, seeded: dict[str, int]) -> None:
        organization = session.get(Organization, ORG_ID)
        organization.monthly_event_limit = 1
        session.commit()

        tracker = ImportQuotaTracker.create(session, ORG_ID, now=NOW, settings=QuotaSettings())

        assert tracker.consume(_ts(2024, 2, 1)) is True
        assert tracker.consume(_ts(2024, 2, 2)) is False

    @pytest.mark.parametrize("tier,window", [("free", 6), ("standard", 24), ("pro", 60), ("unknown", 6)])
    def test_tier_window(self, session: Session, seeded: dict[str, int], tier: str, window: int) -> None:
        organization = session.get(Organization, ORG_ID)
        organization.plan_tier = tier
        session.commit()

        tracker = ImportQuotaTracker.create(session, ORG_ID, now=NOW, settings=QuotaSettings())

        assert tracker.allowed_date_range().historical_window_months == window


def test_unknown_site_ids_give_empty_usage(session: Session, seeded: dict[str, int]) -> None:
    tracker = ImportQuotaTracker.create(session, "org_missing", now=NOW, settings=QuotaSettings())
    assert tracker.remaining_for(_ts(2024, 6, 1)) == 10_000
