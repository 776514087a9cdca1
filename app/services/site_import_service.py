"""
app/services/site_import_service.py

Import lifecycle operations outside the batch path: create, list,
complete, delete, and expiry of abandoned imports.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import ImportSettings, QuotaSettings, get_import_settings
from app.domain.site_import import (
    AllowedDateRange,
    IllegalImportTransitionError,
    ImportCandidate,
    ImportCreationResult,
    ImportPlatform,
    ImportSiteMismatchError,
    ImportStateError,
    ImportStatus,
    SiteNotFoundError,
)
from app.logging_utils import log_event
from app.repositories.event_repository import EventRepository
from app.services.import_limiter import ImportConcurrencyLimiter
from app.services.import_quota import ImportQuotaTracker
from db.models.import_status import ImportRecord
from db.repositories.import_status_repository import ImportStatusRepository
from db.repositories.site_repository import SiteRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatedImport:
    result: ImportCreationResult
    allowed_date_range: AllowedDateRange | None = None


class SiteImportService:
    def __init__(
        self,
        session: Session,
        *,
        settings: ImportSettings | None = None,
        quota_settings: QuotaSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_import_settings()
        self._quota_settings = quota_settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sites = SiteRepository(session)
        self._imports = ImportStatusRepository(session)
        self._events = EventRepository(session)

    def create_import(
        self,
        *,
        site_id: int,
        file_name: str,
        platform: ImportPlatform | None = None,
    ) -> CreatedImport:
        """
        Create a pending import if the organization is under its concurrency limit.

        Raises SiteNotFoundError for unknown sites. A limit breach is returned
        as an unsuccessful result carrying the reason.
        """

        organization_id = self._sites.get_organization_id(site_id)
        if organization_id is None:
            raise SiteNotFoundError(site_id)

        limiter = ImportConcurrencyLimiter(
            self._session,
            max_concurrent=self._settings.max_concurrent_per_org,
        )
        result = limiter.create_import_with_concurrency_check(
            ImportCandidate(
                site_id=site_id,
                organization_id=organization_id,
                file_name=file_name,
                platform=platform,
            )
        )
        if not result.success:
            return CreatedImport(result=result)

        tracker = ImportQuotaTracker.create(
            self._session,
            organization_id,
            now=self._clock(),
            settings=self._quota_settings,
        )
        self._session.commit()
        return CreatedImport(result=result, allowed_date_range=tracker.allowed_date_range())

    def list_imports(self, *, site_id: int, limit: int = 100) -> list[ImportRecord]:
        if self._sites.get_site(site_id) is None:
            raise SiteNotFoundError(site_id)
        return self._imports.list_site_imports(site_id=site_id, limit=limit)

    def get_site_import(self, *, site_id: int, import_id: uuid.UUID) -> ImportRecord:
        record = self._imports.require_import(import_id)
        if record.site_id != site_id:
            raise ImportSiteMismatchError(str(import_id), site_id)
        return record

    def complete_import(self, *, site_id: int, import_id: uuid.UUID) -> ImportRecord:
        """
        Mark an import completed once the client has sent every batch.

        A pending import passes through processing. Terminal imports raise ImportStateError.
        """

        record = self.get_site_import(site_id=site_id, import_id=import_id)
        if record.status.is_terminal:
            raise ImportStateError(str(import_id), record.status)

        try:
            previous = record.status
            if previous is ImportStatus.PENDING:
                self._imports.mark_processing(import_id)
            completed = self._imports.update_import_status(import_id, ImportStatus.COMPLETED)
            self._session.commit()
        except IllegalImportTransitionError as exc:
            self._session.rollback()
            raise ImportStateError(str(import_id), exc.current) from exc
        except SQLAlchemyError:
            self._session.rollback()
            raise

        log_event(
            logger,
            logging.INFO,
            "import.status_changed",
            import_id=str(import_id),
            from_status=previous.value,
            to_status=ImportStatus.COMPLETED.value,
            imported_events=completed.imported_events,
        )
        return completed

    def delete_import(self, *, site_id: int, import_id: uuid.UUID) -> int:
        """
        Delete an import, its events and its batch records. Returns the number of events removed.
        """

        record = self.get_site_import(site_id=site_id, import_id=import_id)
        status = record.status
        try:
            removed = self._events.delete_by_import(import_id)
            self._imports.delete_import(import_id)
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            logger.exception("Import deletion failed import_id=%s site_id=%s", import_id, site_id)
            raise

        log_event(
            logger,
            logging.INFO,
            "import.deleted",
            import_id=str(import_id),
            site_id=site_id,
            status=status.value,
            events_removed=removed,
        )
        return removed

    def expire_stale_imports(self) -> int:
        """
        Fail active imports with no activity for the configured number of hours.
        """

        hours = self._settings.stale_after_hours
        cutoff = self._clock() - timedelta(hours=hours)
        message = f"Import expired after {hours} hours without activity"
        expired = 0
        for record in self._imports.list_stale_imports(updated_before=cutoff):
            import_id = record.import_id
            previous = record.status
            try:
                self._imports.update_import_status(import_id, ImportStatus.FAILED, error_message=message)
                self._session.commit()
            except IllegalImportTransitionError:
                # Finished between the scan and the update.
                self._session.rollback()
                continue
            expired += 1
            log_event(
                logger,
                logging.INFO,
                "import.expired",
                import_id=str(import_id),
                from_status=previous.value,
                stale_after_hours=hours,
            )
        return expired
