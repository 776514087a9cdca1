"""
app/services package marker.
"""

from app.services.batch_ingestion_service import BatchIngestionService
from app.services.import_limiter import ImportConcurrencyLimiter
from app.services.import_quota import ImportQuotaTracker, QuotaExceededError, QuotaSummary
from app.services.session_replay_service import SessionReplayNotFoundError, SessionReplayService
from app.services.site_import_service import CreatedImport, SiteImportService

__all__ = [
    "BatchIngestionService",
    "CreatedImport",
    "ImportConcurrencyLimiter",
    "ImportQuotaTracker",
    "QuotaExceededError",
    "QuotaSummary",
    "SessionReplayNotFoundError",
    "SessionReplayService",
    "SiteImportService",
]
