"""
app/schemas package marker.
"""

from app.schemas.site_imports import (
    AllowedDateRangeResponse,
    BatchImportRequest,
    BatchImportResponse,
    CreateImportRequest,
    CreateImportResponse,
    DeleteImportResponse,
    DeleteSessionReplayResponse,
    ImportListResponse,
    ImportSummaryResponse,
    UmamiEventPayload,
)

__all__ = [
    "AllowedDateRangeResponse",
    "BatchImportRequest",
    "BatchImportResponse",
    "CreateImportRequest",
    "CreateImportResponse",
    "DeleteImportResponse",
    "DeleteSessionReplayResponse",
    "ImportListResponse",
    "ImportSummaryResponse",
    "UmamiEventPayload",
]
