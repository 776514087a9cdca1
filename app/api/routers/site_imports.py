"""
Site import endpoints: create, batch submission, listing, completion and deletion.
"""

from __future__ import annotations

import logging
from typing import Any, NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import require_site_admin
from app.domain.site_import import (
    BatchWriteError,
    ImportNotFoundError,
    ImportSiteMismatchError,
    ImportStateError,
    ImportStatus,
    SiteNotFoundError,
)
from app.schemas.site_imports import (
    AllowedDateRangeResponse,
    BatchImportRequest,
    BatchImportResponse,
    CreateImportRequest,
    CreateImportResponse,
    DeleteImportResponse,
    ImportListResponse,
    ImportSummaryResponse,
)
from app.services.batch_ingestion_service import BatchIngestionService
from app.services.import_quota import QuotaExceededError
from app.services.site_import_service import SiteImportService
from db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sites/{site_id}", tags=["site-imports"])


def get_site_import_service(db: Session = Depends(get_db)) -> SiteImportService:
    return SiteImportService(db)


def get_batch_ingestion_service(db: Session = Depends(get_db)) -> BatchIngestionService:
    return BatchIngestionService(db)


def _error(status_code: int, error: str, message: str, **extra: Any) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": error, "message": message, **extra})


def _raise_for_import_error(exc: Exception) -> NoReturn:
    if isinstance(exc, SiteNotFoundError):
        raise _error(status.HTTP_404_NOT_FOUND, "site_not_found", str(exc)) from exc
    if isinstance(exc, ImportNotFoundError):
        raise _error(status.HTTP_404_NOT_FOUND, "import_not_found", "Import not found") from exc
    if isinstance(exc, ImportSiteMismatchError):
        raise _error(status.HTTP_400_BAD_REQUEST, "import_site_mismatch", str(exc)) from exc
    if isinstance(exc, ImportStateError):
        code = "import_completed" if exc.status is ImportStatus.COMPLETED else "import_failed"
        raise _error(status.HTTP_400_BAD_REQUEST, code, str(exc), status=exc.status.value) from exc
    raise exc


@router.post(
    "/imports",
    status_code=status.HTTP_201_CREATED,
    response_model=CreateImportResponse,
)
def create_site_import(
    site_id: int,
    payload: CreateImportRequest,
    _user_id: str = Depends(require_site_admin),
    service: SiteImportService = Depends(get_site_import_service),
) -> CreateImportResponse:
    try:
        created = service.create_import(
            site_id=site_id,
            file_name=payload.file_name,
            platform=payload.platform,
        )
    except SiteNotFoundError as exc:
        _raise_for_import_error(exc)

    if not created.result.success or created.allowed_date_range is None:
        raise _error(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "concurrent_import_limit",
            created.result.reason or "Too many concurrent imports",
        )

    date_range = created.allowed_date_range
    return CreateImportResponse(
        import_id=UUID(created.result.import_id),
        allowed_date_range=AllowedDateRangeResponse(
            earliest_allowed_date=date_range.earliest_allowed_date,
            latest_allowed_date=date_range.latest_allowed_date,
            historical_window_months=date_range.historical_window_months,
        ),
    )


@router.get("/imports", response_model=ImportListResponse)
def list_site_imports(
    site_id: int,
    limit: int = Query(default=100, ge=1, le=500, description="Max imports returned, newest first"),
    _user_id: str = Depends(require_site_admin),
    service: SiteImportService = Depends(get_site_import_service),
) -> ImportListResponse:
    try:
        records = service.list_imports(site_id=site_id, limit=limit)
    except SiteNotFoundError as exc:
        _raise_for_import_error(exc)
    return ImportListResponse(imports=[ImportSummaryResponse.model_validate(record) for record in records])


@router.post("/imports/{import_id}/batches", response_model=BatchImportResponse)
def submit_import_batch(
    site_id: int,
    import_id: UUID,
    payload: BatchImportRequest,
    _user_id: str = Depends(require_site_admin),
    service: BatchIngestionService = Depends(get_batch_ingestion_service),
) -> BatchImportResponse:
    if payload.import_id != import_id:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "import_id_mismatch",
            "Body import_id does not match the request path",
        )
    if len(payload.events) > service.max_batch_events:
        raise _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "batch_too_large",
            f"A batch may contain at most {service.max_batch_events} events",
        )

    try:
        result = service.ingest_batch(
            site_id=site_id,
            import_id=import_id,
            batch_index=payload.batch_index,
            total_batches=payload.total_batches,
            rows=[event.model_dump() for event in payload.events],
        )
    except QuotaExceededError as exc:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "quota_exceeded",
            str(exc),
            quota=exc.summary.to_dict(),
        ) from exc
    except BatchWriteError as exc:
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "event_write_failed",
            "Failed to insert events",
            batch_index=payload.batch_index,
        ) from exc
    except (ImportNotFoundError, ImportSiteMismatchError, ImportStateError) as exc:
        _raise_for_import_error(exc)

    return BatchImportResponse(
        imported_count=result.imported_count,
        skipped_due_to_quota=result.skipped_due_to_quota,
        message=result.message,
        duplicate=result.duplicate,
        warnings=result.warnings,
    )


@router.post("/imports/{import_id}/complete", response_model=ImportSummaryResponse)
def complete_site_import(
    site_id: int,
    import_id: UUID,
    _user_id: str = Depends(require_site_admin),
    service: SiteImportService = Depends(get_site_import_service),
) -> ImportSummaryResponse:
    try:
        record = service.complete_import(site_id=site_id, import_id=import_id)
    except (ImportNotFoundError, ImportSiteMismatchError, ImportStateError) as exc:
        _raise_for_import_error(exc)
    return ImportSummaryResponse.model_validate(record)


@router.delete("/imports/{import_id}", response_model=DeleteImportResponse)
def delete_site_import(
    site_id: int,
    import_id: UUID,
    _user_id: str = Depends(require_site_admin),
    service: SiteImportService = Depends(get_site_import_service),
) -> DeleteImportResponse:
    try:
        removed = service.delete_import(site_id=site_id, import_id=import_id)
    except ImportSiteMismatchError as exc:
        # Imports of other sites are reported as absent.
        raise _error(status.HTTP_404_NOT_FOUND, "import_not_found", "Import not found") from exc
    except ImportNotFoundError as exc:
        _raise_for_import_error(exc)
    return DeleteImportResponse(import_id=import_id, events_removed=removed)
