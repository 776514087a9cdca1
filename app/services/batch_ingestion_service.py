"""
app/services/batch_ingestion_service.py

Server-side gate for one import batch: re-validates import state and quota,
transforms raw rows, writes events, and advances progress.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import ImportSettings, QuotaSettings, get_import_settings
from app.domain.site_import import (
    BatchResult,
    BatchWriteError,
    IllegalImportTransitionError,
    ImportPlatform,
    ImportSiteMismatchError,
    ImportStateError,
    ImportStatus,
)
from app.logging_utils import log_event
from app.mappers import get_import_mapper
from app.repositories.event_repository import EventRepository
from app.services.import_quota import ImportQuotaTracker, QuotaExceededError
from db.models.import_status import ImportRecord
from db.repositories.import_status_repository import ImportStatusRepository

logger = logging.getLogger(__name__)

# Only one source platform is registered, so detection is deterministic.
DEFAULT_PLATFORM = ImportPlatform.UMAMI


class BatchIngestionService:
    """
    Handles batch submissions for site imports.

    Batches of one import may arrive concurrently and in any order; every
    state change goes through conditional updates in ImportStatusRepository.

    Quota is re-read per batch but not locked across batches: two batches
    filtered at the same moment both see the same monthly counts, so together
    they can overshoot a month's cap by up to one batch. Only import creation
    is serialized per organization.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: ImportSettings | None = None,
        quota_settings: QuotaSettings | None = None,
        event_repository: EventRepository | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_import_settings()
        self._quota_settings = quota_settings
        self._imports = ImportStatusRepository(session)
        self._events = event_repository or EventRepository(session)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def max_batch_events(self) -> int:
        return self._settings.max_batch_events

    def ingest_batch(
        self,
        *,
        site_id: int,
        import_id: uuid.UUID,
        batch_index: int,
        total_batches: int,
        rows: Sequence[Mapping[str, str]],
    ) -> BatchResult:
        """
        Validate and persist one batch of raw rows.

        Raises ImportNotFoundError, ImportSiteMismatchError, ImportStateError,
        QuotaExceededError (the import has been failed) or BatchWriteError
        (the import stays processing and the batch may be resubmitted).
        """

        record = self._imports.require_import(import_id)
        if record.site_id != site_id:
            logger.warning(
                "Import site mismatch import_id=%s site_id=%s record_site_id=%s",
                import_id,
                site_id,
                record.site_id,
            )
            raise ImportSiteMismatchError(str(import_id), site_id)
        if record.status.is_terminal:
            logger.warning(
                "Batch submitted to terminal import import_id=%s status=%s batch_index=%s",
                import_id,
                record.status.value,
                batch_index,
            )
            raise ImportStateError(str(import_id), record.status)

        existing = self._imports.get_batch(import_id, batch_index)
        if existing is not None:
            return self._duplicate_result(existing.imported_count, batch_index, total_batches)

        record = self._begin_processing(record)
        platform = self._ensure_platform(record)
        mapper = get_import_mapper(platform)

        tracker = ImportQuotaTracker.create(
            self._session,
            record.organization_id,
            now=self._clock(),
            settings=self._quota_settings,
        )
        accepted: list[Mapping[str, str]] = []
        skipped_due_to_quota = 0
        missing_timestamp = 0
        for row in rows:
            timestamp = mapper.event_timestamp(row)
            if timestamp is None:
                missing_timestamp += 1
                continue
            if tracker.consume(timestamp):
                accepted.append(row)
            else:
                skipped_due_to_quota += 1
        # The tracker's read transaction must not hold locks across the write below.
        self._session.commit()

        warnings: list[str] = []
        if missing_timestamp:
            warnings.append(f"{missing_timestamp} events without a valid created_at were ignored")

        if not accepted and skipped_due_to_quota:
            return self._handle_quota_exhausted(
                record,
                tracker=tracker,
                batch_index=batch_index,
                total_batches=total_batches,
                row_count=len(rows),
                skipped_due_to_quota=skipped_due_to_quota,
                warnings=warnings,
            )

        events = mapper.transform(accepted, site_id=site_id, import_id=import_id)
        if not events:
            return BatchResult(
                imported_count=0,
                skipped_due_to_quota=skipped_due_to_quota,
                message=f"Batch {batch_index + 1}/{total_batches}: No valid events",
                warnings=warnings,
            )

        try:
            self._events.bulk_insert(events)
            total = self._imports.record_batch(
                import_id=import_id,
                batch_index=batch_index,
                imported_count=len(events),
            )
            self._session.commit()
        except IntegrityError as exc:
            self._session.rollback()
            existing = self._imports.get_batch(import_id, batch_index)
            if existing is not None:
                return self._duplicate_result(existing.imported_count, batch_index, total_batches)
            self._log_write_failure(import_id, batch_index, exc)
            raise BatchWriteError(str(exc.orig or exc)) from exc
        except ImportStateError:
            self._session.rollback()
            log_event(
                logger,
                logging.WARNING,
                "import.progress_rejected",
                import_id=str(import_id),
                batch_index=batch_index,
            )
            raise
        except SQLAlchemyError as exc:
            self._session.rollback()
            self._log_write_failure(import_id, batch_index, exc)
            raise BatchWriteError(str(exc)) from exc

        log_event(
            logger,
            logging.INFO,
            "import.batch_inserted",
            import_id=str(import_id),
            site_id=site_id,
            batch_index=batch_index,
            total_batches=total_batches,
            event_count=len(events),
            skipped_due_to_quota=skipped_due_to_quota,
            imported_events=total,
        )
        message = f"Batch {batch_index + 1}/{total_batches} imported successfully"
        if skipped_due_to_quota:
            message += f" ({skipped_due_to_quota} events skipped due to quota)"
        return BatchResult(
            imported_count=len(events),
            skipped_due_to_quota=skipped_due_to_quota,
            message=message,
            warnings=warnings,
        )

    def _begin_processing(self, record: ImportRecord) -> ImportRecord:
        updated, moved = self._imports.mark_processing(record.import_id)
        if moved:
            self._session.commit()
            log_event(
                logger,
                logging.INFO,
                "import.status_changed",
                import_id=str(record.import_id),
                from_status=ImportStatus.PENDING.value,
                to_status=ImportStatus.PROCESSING.value,
            )
        return updated

    def _ensure_platform(self, record: ImportRecord) -> ImportPlatform:
        if record.platform is not None:
            return record.platform
        if self._imports.set_platform_once(record.import_id, DEFAULT_PLATFORM):
            self._session.commit()
            log_event(
                logger,
                logging.INFO,
                "import.platform_detected",
                import_id=str(record.import_id),
                platform=DEFAULT_PLATFORM.value,
            )
            return DEFAULT_PLATFORM
        # Another batch set it first.
        return self._imports.require_import(record.import_id).platform or DEFAULT_PLATFORM

    def _handle_quota_exhausted(
        self,
        record: ImportRecord,
        *,
        tracker: ImportQuotaTracker,
        batch_index: int,
        total_batches: int,
        row_count: int,
        skipped_due_to_quota: int,
        warnings: list[str],
    ) -> BatchResult:
        summary = tracker.get_summary()
        message = (
            f"All {row_count} events in batch {batch_index} exceeded monthly quotas or fell outside "
            f"the {summary.total_months_in_window}-month historical window. "
            f"{summary.describe_capacity()}"
        )
        fail_import = total_batches == 1 or (batch_index == 0 and self._settings.fail_fast_first_batch)
        log_event(
            logger,
            logging.WARNING,
            "import.batch_quota_exhausted",
            import_id=str(record.import_id),
            batch_index=batch_index,
            total_batches=total_batches,
            skipped_due_to_quota=skipped_due_to_quota,
            months_at_capacity=summary.months_at_capacity,
            fail_import=fail_import,
        )

        if not fail_import:
            return BatchResult(
                imported_count=0,
                skipped_due_to_quota=skipped_due_to_quota,
                message=f"Batch {batch_index + 1}/{total_batches}: {message}",
                warnings=warnings,
            )

        try:
            self._imports.update_import_status(
                record.import_id,
                ImportStatus.FAILED,
                error_message=message,
            )
            self._session.commit()
        except IllegalImportTransitionError as exc:
            # Lost the race to a concurrent terminal transition.
            self._session.rollback()
            raise ImportStateError(str(record.import_id), exc.current) from exc
        except SQLAlchemyError:
            self._session.rollback()
            raise
        log_event(
            logger,
            logging.INFO,
            "import.status_changed",
            import_id=str(record.import_id),
            from_status=ImportStatus.PROCESSING.value,
            to_status=ImportStatus.FAILED.value,
            error_message=message,
        )
        raise QuotaExceededError(message, summary=summary)

    @staticmethod
    def _duplicate_result(imported_count: int, batch_index: int, total_batches: int) -> BatchResult:
        return BatchResult(
            imported_count=imported_count,
            skipped_due_to_quota=0,
            message=f"Batch {batch_index + 1}/{total_batches} was already imported",
            duplicate=True,
        )

    @staticmethod
    def _log_write_failure(import_id: uuid.UUID, batch_index: int, exc: Exception) -> None:
        log_event(
            logger,
            logging.ERROR,
            "import.batch_write_failed",
            import_id=str(import_id),
            batch_index=batch_index,
            error=str(exc),
        )
