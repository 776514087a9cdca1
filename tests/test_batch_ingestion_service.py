"""
tests/test_batch_ingestion_service.py

BatchIngestionService against SQLite with a fixed clock.

Coverage
--------
- Happy path: events written, progress advanced, platform detected
- Partial quota rejection
- Fully rejected single batch fails the import
- Fully rejected first batch: fail-fast on and off
- Event store failure leaves the import processing; retry succeeds
- Batches commute regardless of arrival order
- Duplicate batch submissions are not double counted
- Terminal imports reject further batches
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.config import ImportSettings, QuotaSettings, TierPolicy
from app.domain.canonical_event import CanonicalEventInput
from app.domain.site_import import (
    BatchWriteError,
    ImportPlatform,
    ImportSiteMismatchError,
    ImportStateError,
    ImportStatus,
)
from app.mappers.umami import UMAMI_FIELDS
from app.repositories.event_repository import EventRepository
from app.services.batch_ingestion_service import BatchIngestionService
from app.services.import_quota import QuotaExceededError
from db.models.event import Event
from db.models.import_status import ImportRecord
from db.repositories.import_status_repository import ImportStatusRepository
from tests.conftest import ORG_ID

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def _row(created_at: str, session_id: str = "sess-1", **overrides: str) -> dict[str, str]:
    row = {name: "" for name in UMAMI_FIELDS}
    row.update(
        {
            "session_id": session_id,
            "hostname": "example.com",
            "url_path": "/pricing",
            "created_at": created_at,
        }
    )
    row.update(overrides)
    return row


def _rows(count: int, month: int = 3) -> list[dict[str, str]]:
    return [_row(f"2024-{month:02d}-{(index % 28) + 1:02d} 10:00:00", session_id=f"s{index}") for index in range(count)]


def _quota(limit: int) -> QuotaSettings:
    return QuotaSettings(tiers={"free": TierPolicy(historical_window_months=6, monthly_event_limit=limit)})


class FlakyEventRepository(EventRepository):
    """Fails the first ``failures`` bulk inserts."""

    def __init__(self, session: Session, failures: int = 1) -> None:
        super().__init__(session)
        self.failures = failures

    def bulk_insert(self, rows: Sequence[CanonicalEventInput], *, batch_size: int = 1000) -> int:
        if self.failures > 0:
            self.failures -= 1
            raise OperationalError("INSERT INTO events", {}, Exception("event store unavailable"))
        return super().bulk_insert(rows, batch_size=batch_size)


@pytest.fixture()
def import_id(session: Session, seeded: dict[str, int]) -> uuid.UUID:
    record = ImportStatusRepository(session).create_import(
        site_id=seeded["site_id"],
        organization_id=ORG_ID,
        file_name="export.csv",
    )
    session.commit()
    return record.import_id


def _service(
    session: Session,
    *,
    limit: int = 10_000,
    fail_fast: bool = True,
    events: EventRepository | None = None,
) -> BatchIngestionService:
    return BatchIngestionService(
        session,
        settings=ImportSettings(fail_fast_first_batch=fail_fast),
        quota_settings=_quota(limit),
        event_repository=events,
        clock=lambda: NOW,
    )


def _record(session: Session, import_id: uuid.UUID) -> ImportRecord:
    return ImportStatusRepository(session).require_import(import_id)


def _prefill(session: Session, site_id: int, count: int, month: int = 3) -> None:
    session.add_all(
        Event(
            site_id=site_id,
            timestamp=datetime(2024, month, 1, 9, tzinfo=timezone.utc),
            type="pageview",
            session_id=f"old{index}",
            user_id=f"old{index}",
        )
        for index in range(count)
    )
    session.commit()


# ---------------------------------------------------------------------------
# Accepted batches
# ---------------------------------------------------------------------------


class TestAcceptedBatches:
    def test_writes_events_and_advances_progress(
        self, session: Session, seeded: dict[str, int], import_id: uuid.UUID
    ) -> None:
        result = _service(session).ingest_batch(
            site_id=seeded["site_id"],
            import_id=import_id,
            batch_index=0,
            total_batches=1,
            rows=_rows(5),
        )

        assert result.imported_count == 5
        assert result.skipped_due_to_quota == 0
        assert result.duplicate is False
        assert result.message == "Batch 1/1 imported successfully"

        record = _record(session, import_id)
        assert record.status is ImportStatus.PROCESSING
        assert record.platform is ImportPlatform.UMAMI
        assert record.imported_events == 5
        assert EventRepository(session).count_for_import(import_id) == 5

    def test_partial_quota_rejection(self, session: Session, seeded: dict[str, int], import_id: uuid.UUID) -> None:
        rows = _rows(4) + [_row("2023-12-31 23:00:00", session_id="too-old")]

        result = _service(session, limit=3).ingest_batch(
            site_id=seeded["site_id"],
            import_id=import_id,
            batch_index=0,
            total_batches=2,
            rows=rows,
        )

        assert result.imported_count == 3
        assert result.skipped_due_to_quota == 2
        assert result.message == "Batch 1/2 imported successfully (2 events skipped due to quota)"
        assert _record(session, import_id).imported_events == 3

    def test_rows_without_timestamp_are_warned_not_counted(
        self, session: Session, seeded: dict[str, int], import_id: uuid.UUID
    ) -> None:
        rows = _rows(2) + [_row("", session_id="blank"), _row("not a date", session_id="bad")]

        result = _service(session).ingest_batch(
            site_id=seeded["site_id"],
            import_id=import_id,
            batch_index=0,
            total_batches=1,
            rows=rows,
        )

        assert result.imported_count == 2
        assert result.skipped_due_to_quota == 0
        assert result.warnings == ["2 events without a valid created_at were ignored"]

    def test_site_mismatch_rejected(self, session: Session, seeded: dict[str, int], import_id: uuid.UUID) -> None:
        with pytest.raises(ImportSiteMismatchError):
            _service(session).ingest_batch(
                site_id=seeded["second_site_id"],
                import_id=import_id,
                batch_index=0,
                total_batches=1,
                rows=_rows(1),
            )
        assert _record(session, import_id).status is ImportStatus.PENDING


# ---------------------------------------------------------------------------
# Quota exhaustion
# ---------------------------------------------------------------------------


class TestQuotaExhaustion:
    def test_single_batch_at_capacity_fails_import(
        self, session: Session, seeded: dict[str, int], import_id: uuid.UUID
    ) -> None:
        _prefill(session, seeded["second_site_id"], 2)

        with pytest.raises(QuotaExceededError) as excinfo:
            _service(session, limit=2).ingest_batch(
                site_id=seeded["site_id"],
                import_id=import_id,
                batch_index=0,
                total_batches=1,
                rows=_rows(3),
            )

        message = str(excinfo.value)
        assert message == (
            "All 3 events in batch 0 exceeded monthly quotas or fell outside the 6-month "
            "historical window. 1 of 6 months are at full capacity."
        )
        assert excinfo.value.summary.months_at_capacity == 1

        record = _record(session, import_id)
        assert record.status is ImportStatus.FAILED
        assert record.error_message == message
        assert record.imported_events == 0
        assert EventRepository(session).count_for_import(import_id) == 0

    def test_first_batch_outside_window_fails_fast(
        self, session: Session, seeded: dict[str, int], import_id: uuid.UUID
    ) -> None:
        with pytest.raises(QuotaExceededError):
            _service(session).ingest_batch(
                site_id=seeded["site_id"],
                import_id=import_id,
                batch_index=0,
                total_batches=4,
                rows=[_row("2023-01-05 10:00:00"), _row("2024-07-02 10:00:00")],
            )

        assert _record(session, import_id).status is ImportStatus.FAILED

    def test_rejected_batch_without_fail_fast_is_noop(
        self, session: Session, seeded: dict[str, int], import_id: uuid.UUID
    ) -> None:
        result = _service(session, fail_fast=False).ingest_batch(
            site_id=seeded["site_id"],
            import_id=import_id,
            batch_index=0,
            total_batches=3,
            rows=[_row("2023-01-05 10:00:00")],
        )

        assert result.imported_count == 0
        assert result.skipped_due_to_quota == 1
        record = _record(session, import_id)
        assert record.status is ImportStatus.PROCESSING
        assert record.imported_events == 0

    def test_later_batch_rejection_does_not_fail_import(
        self, session: Session, seeded: dict[str, int], import_id: uuid.UUID
    ) -> None:
        service = _service(session, limit=2)
        service.ingest_batch(
            site_id=seeded["site_id"],
            import_id=import_id,
            batch_index=0,
            total_batches=2,
            rows=_rows(2),
        )

        result = service.ingest_batch(
            site_id=seeded["site_id"],
            import_id=import_id,
            batch_index=1,
            total_batches=2,
            rows=_rows(2),
        )

        assert result.imported_count == 0
        assert result.skipped_due_to_quota == 2
        assert _record(session, import_id).status is ImportStatus.PROCESSING


# ---------------------------------------------------------------------------
# Failures, ordering and idempotency
# ---------------------------------------------------------------------------


class TestWriteFailureAndRetry:
    def test_write_failure_keeps_import_processing_and_retry_succeeds(
        self, session: Session, seeded: dict[str, int], import_id: uuid.UUID
    ) -> None:
        service = _service(session, events=FlakyEventRepository(session, failures=1))
        first = _rows(100)

        with pytest.raises(BatchWriteError):
            service.ingest_batch(
                site_id=seeded["site_id"],
                import_id=import_id,
                batch_index=0,
                total_batches=2,
                rows=first,
            )

        record = _record(session, import_id)
        assert record.status is ImportStatus.PROCESSING
        assert record.imported_events == 0
        assert ImportStatusRepository(session).get_batch(import_id, 0) is None

        retried = service.ingest_batch(
            site_id=seeded["site_id"],
            import_id=import_id,
            batch_index=0,
            total_batches=2,
            rows=first,
        )
        assert retried.imported_count == 100
        service.ingest_batch(
            site_id=seeded["site_id"],
            import_id=import_id,
            batch_index=1,
            total_batches=2,
            rows=_rows(40, month=4),
        )

        assert _record(session, import_id).imported_events == 140
        assert EventRepository(session).count_for_import(import_id) == 140


class TestOrderingAndIdempotency:
    def test_batches_commute(self, session: Session, seeded: dict[str, int], import_id: uuid.UUID) -> None:
        service = _service(session)
        sizes = {0: 10, 1: 7, 2: 3}
        for index in (2, 0, 1):
            service.ingest_batch(
                site_id=seeded["site_id"],
                import_id=import_id,
                batch_index=index,
                total_batches=3,
                rows=_rows(sizes[index], month=index + 2),
            )

        assert _record(session, import_id).imported_events == 20

    def test_duplicate_batch_not_double_counted(
        self, session: Session, seeded: dict[str, int], import_id: uuid.UUID
    ) -> None:
        service = _service(session)
        rows = _rows(6)
        service.ingest_batch(site_id=seeded["site_id"], import_id=import_id, batch_index=0, total_batches=2, rows=rows)

        again = service.ingest_batch(
            site_id=seeded["site_id"],
            import_id=import_id,
            batch_index=0,
            total_batches=2,
            rows=rows,
        )

        assert again.duplicate is True
        assert again.imported_count == 6
        assert _record(session, import_id).imported_events == 6
        assert EventRepository(session).count_for_import(import_id) == 6

    @pytest.mark.parametrize("terminal", [ImportStatus.COMPLETED, ImportStatus.FAILED])
    def test_terminal_import_rejects_batches(
        self,
        session: Session,
        seeded: dict[str, int],
        import_id: uuid.UUID,
        terminal: ImportStatus,
    ) -> None:
        service = _service(session)
        service.ingest_batch(site_id=seeded["site_id"], import_id=import_id, batch_index=0, total_batches=2, rows=_rows(4))
        ImportStatusRepository(session).update_import_status(import_id, terminal, error_message="stopped")
        session.commit()

        with pytest.raises(ImportStateError) as excinfo:
            service.ingest_batch(
                site_id=seeded["site_id"],
                import_id=import_id,
                batch_index=1,
                total_batches=2,
                rows=_rows(4, month=4),
            )

        assert excinfo.value.status is terminal
        record = _record(session, import_id)
        assert record.status is terminal
        assert record.imported_events == 4
