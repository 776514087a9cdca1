"""
app/services/import_limiter.py

Serialized check-and-insert of import records, bounding the number of
active imports per organization.
"""

from __future__ import annotations

import logging
import threading
import weakref

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_import_settings
from app.domain.site_import import ImportCandidate, ImportCreationResult, ImportStatus
from app.logging_utils import log_event
from db.repositories.import_status_repository import ImportStatusRepository

logger = logging.getLogger(__name__)


class _OrganizationLocks:
    """
    Process-local mutex per organization id.

    Entries are weak: a lock disappears once no caller holds it, so the
    registry only tracks organizations with a creation in flight.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def get(self, organization_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(organization_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[organization_id] = lock
            return lock


_ORGANIZATION_LOCKS = _OrganizationLocks()


class ImportConcurrencyLimiter:
    """
    Creates import records only while the organization is under its active-import limit.

    Creation is serialized per organization by an in-process lock and, on
    PostgreSQL, a transaction-scoped advisory lock so that separate API
    processes cannot interleave their count and insert.
    """

    def __init__(self, session: Session, *, max_concurrent: int | None = None) -> None:
        self._session = session
        self._imports = ImportStatusRepository(session)
        self._max_concurrent = max(
            1,
            max_concurrent if max_concurrent is not None else get_import_settings().max_concurrent_per_org,
        )

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def create_import_with_concurrency_check(self, candidate: ImportCandidate) -> ImportCreationResult:
        """
        Atomically count active imports and persist ``candidate`` as pending.

        A limit breach is returned as an unsuccessful result, not raised.
        """

        with _ORGANIZATION_LOCKS.get(candidate.organization_id):
            try:
                self._acquire_database_lock(candidate.organization_id)
                active = self._imports.count_active_imports(candidate.organization_id)
                if active >= self._max_concurrent:
                    self._session.rollback()
                    reason = (
                        f"Maximum of {self._max_concurrent} concurrent import(s) per organization "
                        f"reached ({active} active). Wait for an import to finish before starting another."
                    )
                    logger.info(
                        "Import creation rejected organization_id=%s site_id=%s active=%s limit=%s",
                        candidate.organization_id,
                        candidate.site_id,
                        active,
                        self._max_concurrent,
                    )
                    return ImportCreationResult(success=False, reason=reason)

                record = self._imports.create_import(
                    site_id=candidate.site_id,
                    organization_id=candidate.organization_id,
                    file_name=candidate.file_name,
                    platform=candidate.platform,
                )
                import_id = record.import_id
                self._session.commit()
            except SQLAlchemyError:
                self._session.rollback()
                logger.exception(
                    "Import creation failed organization_id=%s site_id=%s",
                    candidate.organization_id,
                    candidate.site_id,
                )
                raise

        log_event(
            logger,
            logging.INFO,
            "import.created",
            import_id=str(import_id),
            organization_id=candidate.organization_id,
            site_id=candidate.site_id,
            status=ImportStatus.PENDING.value,
            file_name=candidate.file_name,
        )
        return ImportCreationResult(success=True, import_id=str(import_id))

    def _acquire_database_lock(self, organization_id: str) -> None:
        if self._session.get_bind().dialect.name != "postgresql":
            return
        self._session.execute(select(func.pg_advisory_xact_lock(func.hashtext(organization_id))))
