"""
app/domain package marker.
"""

from app.domain.canonical_event import CanonicalEventInput
from app.domain.site_import import (
    AllowedDateRange,
    BatchResult,
    BatchWriteError,
    IllegalImportTransitionError,
    ImportCandidate,
    ImportCreationResult,
    ImportNotFoundError,
    ImportPlatform,
    ImportSiteMismatchError,
    ImportStateError,
    ImportStatus,
    SiteImportError,
    SiteNotFoundError,
)

__all__ = [
    "AllowedDateRange",
    "BatchResult",
    "BatchWriteError",
    "CanonicalEventInput",
    "IllegalImportTransitionError",
    "ImportCandidate",
    "ImportCreationResult",
    "ImportNotFoundError",
    "ImportPlatform",
    "ImportSiteMismatchError",
    "ImportStateError",
    "ImportStatus",
    "SiteImportError",
    "SiteNotFoundError",
]
