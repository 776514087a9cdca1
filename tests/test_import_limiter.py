"""
tests/test_import_limiter.py

ImportConcurrencyLimiter: per-organization cap on active imports.
"""

from __future__ import annotations

import gc
import threading
import uuid

from sqlalchemy.orm import Session, sessionmaker

from app.domain.site_import import ImportCandidate, ImportCreationResult, ImportStatus
from app.services.import_limiter import ImportConcurrencyLimiter, _OrganizationLocks
from db.repositories.import_status_repository import ImportStatusRepository
from tests.conftest import ORG_ID, OTHER_ORG_ID


def _candidate(site_id: int, organization_id: str = ORG_ID, name: str = "export.csv") -> ImportCandidate:
    return ImportCandidate(site_id=site_id, organization_id=organization_id, file_name=name)


class TestImportConcurrencyLimiter:
    def test_first_import_created_pending(self, session: Session, seeded: dict[str, int]) -> None:
        result = ImportConcurrencyLimiter(session, max_concurrent=1).create_import_with_concurrency_check(
            _candidate(seeded["site_id"])
        )

        assert result.success is True
        assert result.reason is None
        records = ImportStatusRepository(session).list_site_imports(site_id=seeded["site_id"])
        assert [str(record.import_id) for record in records] == [result.import_id]
        assert records[0].status is ImportStatus.PENDING

    def test_second_import_rejected_with_reason(self, session: Session, seeded: dict[str, int]) -> None:
        limiter = ImportConcurrencyLimiter(session, max_concurrent=1)
        limiter.create_import_with_concurrency_check(_candidate(seeded["site_id"]))

        # The limit is per organization, not per site.
        result = limiter.create_import_with_concurrency_check(_candidate(seeded["second_site_id"]))

        assert result.success is False
        assert result.import_id is None
        assert "Maximum of 1 concurrent import(s)" in (result.reason or "")
        assert ImportStatusRepository(session).count_active_imports(ORG_ID) == 1

    def test_other_organizations_unaffected(self, session: Session, seeded: dict[str, int]) -> None:
        limiter = ImportConcurrencyLimiter(session, max_concurrent=1)
        limiter.create_import_with_concurrency_check(_candidate(seeded["site_id"]))

        result = limiter.create_import_with_concurrency_check(
            _candidate(seeded["other_site_id"], organization_id=OTHER_ORG_ID)
        )

        assert result.success is True

    def test_terminal_import_frees_slot(self, session: Session, seeded: dict[str, int]) -> None:
        limiter = ImportConcurrencyLimiter(session, max_concurrent=1)
        first = limiter.create_import_with_concurrency_check(_candidate(seeded["site_id"]))
        repo = ImportStatusRepository(session)
        imported = repo.require_import(uuid.UUID(first.import_id))
        repo.update_import_status(imported.import_id, ImportStatus.PROCESSING)
        repo.update_import_status(imported.import_id, ImportStatus.COMPLETED)
        session.commit()

        result = limiter.create_import_with_concurrency_check(_candidate(seeded["site_id"]))

        assert result.success is True

    def test_concurrent_creates_never_exceed_limit(
        self,
        session_factory: sessionmaker[Session],
        seeded: dict[str, int],
    ) -> None:
        limit = 2
        results: list[ImportCreationResult] = []
        results_lock = threading.Lock()
        start = threading.Barrier(8)

        def create(index: int) -> None:
            db = session_factory()
            try:
                start.wait()
                result = ImportConcurrencyLimiter(db, max_concurrent=limit).create_import_with_concurrency_check(
                    _candidate(seeded["site_id"], name=f"export-{index}.csv")
                )
            finally:
                db.close()
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=create, args=(index,)) for index in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert len(results) == 8
        assert sum(1 for result in results if result.success) == limit
        verify = session_factory()
        try:
            assert ImportStatusRepository(verify).count_active_imports(ORG_ID) == limit
        finally:
            verify.close()


class TestOrganizationLocks:
    def test_same_lock_while_held_then_released(self) -> None:
        locks = _OrganizationLocks()
        held = locks.get(ORG_ID)

        assert locks.get(ORG_ID) is held
        assert locks.get(OTHER_ORG_ID) is not held
        assert len(locks) == 1

        del held
        gc.collect()

        assert len(locks) == 0
