"""
Schemas for site import and session replay endpoints.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.config import MAX_BATCH_EVENTS
from app.domain.site_import import ImportPlatform, ImportStatus


class UmamiEventPayload(BaseModel):
    """
    One raw Umami export row; every field is the CSV cell text.
    """

    model_config = ConfigDict(extra="ignore")

    session_id: str = ""
    hostname: str = ""
    browser: str = ""
    os: str = ""
    device: str = ""
    screen: str = ""
    language: str = ""
    country: str = ""
    region: str = ""
    city: str = ""
    url_path: str = ""
    url_query: str = ""
    referrer_path: str = ""
    referrer_query: str = ""
    referrer_domain: str = ""
    page_title: str = ""
    event_type: str = ""
    event_name: str = ""
    distinct_id: str = ""
    created_at: str = ""


class CreateImportRequest(BaseModel):
    file_name: str = Field(min_length=1, max_length=512)
    platform: ImportPlatform | None = None


class AllowedDateRangeResponse(BaseModel):
    earliest_allowed_date: date
    latest_allowed_date: date
    historical_window_months: int


class CreateImportResponse(BaseModel):
    success: bool = True
    import_id: UUID
    allowed_date_range: AllowedDateRangeResponse


class BatchImportRequest(BaseModel):
    events: list[UmamiEventPayload] = Field(min_length=1, max_length=MAX_BATCH_EVENTS)
    import_id: UUID
    batch_index: int = Field(ge=0)
    total_batches: int = Field(ge=1)


class BatchImportResponse(BaseModel):
    success: bool = True
    imported_count: int
    skipped_due_to_quota: int = 0
    message: str
    duplicate: bool = False
    warnings: list[str] = Field(default_factory=list)


class ImportSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    import_id: UUID
    platform: ImportPlatform | None = None
    status: ImportStatus
    imported_events: int
    error_message: str | None = None
    started_at: datetime
    completed_at: datetime | None = None
    file_name: str


class ImportListResponse(BaseModel):
    imports: list[ImportSummaryResponse] = Field(default_factory=list)


class DeleteImportResponse(BaseModel):
    success: bool = True
    import_id: UUID
    events_removed: int


class DeleteSessionReplayResponse(BaseModel):
    success: bool = True
    session_id: str
    events_removed: int
