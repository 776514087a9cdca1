"""
Repository for the import lifecycle record: the single writer of
status, platform, and imported_events.

Every mutation is a conditional UPDATE so concurrent batch requests for the
same import never overwrite each other from a stale snapshot.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.orm import Session

from app.domain.site_import import (
    ACTIVE_STATUSES,
    IllegalImportTransitionError,
    ImportNotFoundError,
    ImportPlatform,
    ImportStateError,
    ImportStatus,
    transition,
)
from db.base import utcnow
from db.models.import_status import ImportBatch, ImportRecord


class ImportStatusRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_import(
        self,
        *,
        site_id: int,
        organization_id: str,
        file_name: str,
        platform: ImportPlatform | None = None,
    ) -> ImportRecord:
        record = ImportRecord(
            site_id=site_id,
            organization_id=organization_id,
            file_name=file_name,
            platform=platform,
            status=ImportStatus.PENDING,
            imported_events=0,
            error_message=None,
        )
        self._session.add(record)
        self._session.flush()
        self._session.refresh(record)
        return record

    def get_import(self, import_id: uuid.UUID) -> ImportRecord | None:
        return self._session.get(ImportRecord, import_id, populate_existing=True)

    def require_import(self, import_id: uuid.UUID) -> ImportRecord:
        record = self.get_import(import_id)
        if record is None:
            raise ImportNotFoundError(str(import_id))
        return record

    def list_site_imports(self, *, site_id: int, limit: int = 100) -> list[ImportRecord]:
        stmt: Select[tuple[ImportRecord]] = (
            select(ImportRecord)
            .where(ImportRecord.site_id == site_id)
            .order_by(ImportRecord.started_at.desc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def count_active_imports(self, organization_id: str) -> int:
        stmt = select(func.count()).select_from(ImportRecord).where(
            ImportRecord.organization_id == organization_id,
            ImportRecord.status.in_(ACTIVE_STATUSES),
        )
        return int(self._session.scalar(stmt) or 0)

    def list_stale_imports(self, *, updated_before: datetime, limit: int = 500) -> list[ImportRecord]:
        stmt = (
            select(ImportRecord)
            .where(
                ImportRecord.status.in_(ACTIVE_STATUSES),
                ImportRecord.updated_at < updated_before,
            )
            .order_by(ImportRecord.updated_at)
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def update_import_status(
        self,
        import_id: uuid.UUID,
        target: ImportStatus,
        *,
        error_message: str | None = None,
    ) -> ImportRecord:
        """
        Move an import to ``target`` through a compare-and-set on its current status.

        Raises ImportNotFoundError for unknown ids and IllegalImportTransitionError
        when the edge is not allowed from the status the import actually has.
        """

        # Statuses only move forward, so a lost race can repeat at most once per state.
        for _ in range(len(ImportStatus)):
            current = self._current_status(import_id)
            if current is None:
                raise ImportNotFoundError(str(import_id))
            transition(current, target)

            now = utcnow()
            values: dict[str, Any] = {"status": target, "updated_at": now}
            if target.is_terminal:
                values["completed_at"] = now
            if target is ImportStatus.FAILED:
                values["error_message"] = error_message
            elif target is ImportStatus.COMPLETED:
                values["error_message"] = None

            stmt = (
                update(ImportRecord)
                .where(ImportRecord.import_id == import_id, ImportRecord.status == current)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if self._session.execute(stmt).rowcount == 1:
                return self.require_import(import_id)

        current = self._current_status(import_id)
        if current is None:
            raise ImportNotFoundError(str(import_id))
        raise IllegalImportTransitionError(current=current, target=target)

    def mark_processing(self, import_id: uuid.UUID) -> tuple[ImportRecord, bool]:
        """
        Ensure the import is processing. Returns the record and whether this call moved it.

        Raises ImportStateError when the import is already terminal.
        """

        record = self.require_import(import_id)
        if record.status is ImportStatus.PROCESSING:
            return record, False
        try:
            return self.update_import_status(import_id, ImportStatus.PROCESSING), True
        except IllegalImportTransitionError as exc:
            if exc.current is ImportStatus.PROCESSING:
                return self.require_import(import_id), False
            raise ImportStateError(str(import_id), exc.current) from exc

    def set_platform_once(self, import_id: uuid.UUID, platform: ImportPlatform) -> bool:
        """
        Persist ``platform`` only if none is set yet. Returns True if this call set it.
        """

        stmt = (
            update(ImportRecord)
            .where(ImportRecord.import_id == import_id, ImportRecord.platform.is_(None))
            .values(platform=platform, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if self._session.execute(stmt).rowcount == 1:
            return True
        if self._current_status(import_id) is None:
            raise ImportNotFoundError(str(import_id))
        return False

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def update_import_progress(self, import_id: uuid.UUID, delta: int) -> int:
        """
        Atomically add ``delta`` to imported_events and return the new total.

        The increment happens in the database, never from a loaded snapshot, so
        concurrent batches commute. Terminal imports are never incremented.
        """

        if delta < 0:
            raise ValueError("imported_events never decreases; delta must be >= 0.")

        stmt = (
            update(ImportRecord)
            .where(
                ImportRecord.import_id == import_id,
                ImportRecord.status.in_(ACTIVE_STATUSES),
            )
            .values(
                imported_events=ImportRecord.imported_events + delta,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if self._session.execute(stmt).rowcount != 1:
            current = self._current_status(import_id)
            if current is None:
                raise ImportNotFoundError(str(import_id))
            raise ImportStateError(str(import_id), current)

        total = self._session.scalar(
            select(ImportRecord.imported_events).where(ImportRecord.import_id == import_id)
        )
        return int(total or 0)

    def get_batch(self, import_id: uuid.UUID, batch_index: int) -> ImportBatch | None:
        stmt = select(ImportBatch).where(
            ImportBatch.import_id == import_id,
            ImportBatch.batch_index == batch_index,
        )
        return self._session.scalars(stmt).first()

    def record_batch(self, *, import_id: uuid.UUID, batch_index: int, imported_count: int) -> int:
        """
        Record an accepted batch and add its rows to the running total.

        A duplicate (import_id, batch_index) raises IntegrityError on flush.
        """

        self._session.add(
            ImportBatch(
                import_id=import_id,
                batch_index=batch_index,
                imported_count=imported_count,
            )
        )
        self._session.flush()
        return self.update_import_progress(import_id, imported_count)

    def delete_import(self, import_id: uuid.UUID) -> None:
        self._session.execute(delete(ImportBatch).where(ImportBatch.import_id == import_id))
        self._session.execute(delete(ImportRecord).where(ImportRecord.import_id == import_id))

    def _current_status(self, import_id: uuid.UUID) -> ImportStatus | None:
        return self._session.scalar(
            select(ImportRecord.status).where(ImportRecord.import_id == import_id)
        )
