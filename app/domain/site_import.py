"""
app/domain/site_import.py

Import lifecycle states, platforms, and domain errors.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date


class ImportPlatform(str, enum.Enum):
    """Source analytics platforms with a registered import mapping."""

    UMAMI = "umami"


class ImportStatus(str, enum.Enum):
    """Lifecycle states for one site import."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES

    def can_transition_to(self, target: ImportStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self]


ACTIVE_STATUSES: frozenset[ImportStatus] = frozenset({ImportStatus.PENDING, ImportStatus.PROCESSING})
TERMINAL_STATUSES: frozenset[ImportStatus] = frozenset({ImportStatus.COMPLETED, ImportStatus.FAILED})

# pending -> failed is used only by the stale import reaper.
ALLOWED_TRANSITIONS: dict[ImportStatus, frozenset[ImportStatus]] = {
    ImportStatus.PENDING: frozenset({ImportStatus.PROCESSING, ImportStatus.FAILED}),
    ImportStatus.PROCESSING: frozenset({ImportStatus.COMPLETED, ImportStatus.FAILED}),
    ImportStatus.COMPLETED: frozenset(),
    ImportStatus.FAILED: frozenset(),
}


def transition(current: ImportStatus, target: ImportStatus) -> ImportStatus:
    """
    Validate one lifecycle step and return the new status.

    Raises IllegalImportTransitionError for any edge not in ALLOWED_TRANSITIONS.
    """

    if not current.can_transition_to(target):
        raise IllegalImportTransitionError(current=current, target=target)
    return target


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportCandidate:
    """
    A not-yet-persisted import record submitted to the concurrency limiter.
    """

    site_id: int
    organization_id: str
    file_name: str
    platform: ImportPlatform | None = None


@dataclass(frozen=True)
class ImportCreationResult:
    """
    Outcome of a concurrency-checked import creation.
    """

    success: bool
    import_id: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class AllowedDateRange:
    earliest_allowed_date: date
    latest_allowed_date: date
    historical_window_months: int


@dataclass(frozen=True)
class BatchResult:
    """
    Outcome of one accepted batch submission.
    """

    imported_count: int
    skipped_due_to_quota: int
    message: str
    duplicate: bool = False
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SiteImportError(Exception):
    """Base class for import lifecycle failures."""


class SiteNotFoundError(SiteImportError):
    def __init__(self, site_id: int) -> None:
        super().__init__(f"Site not found: {site_id}")
        self.site_id = site_id


class ImportNotFoundError(SiteImportError):
    def __init__(self, import_id: str) -> None:
        super().__init__(f"Import not found: {import_id}")
        self.import_id = import_id


class ImportSiteMismatchError(SiteImportError):
    def __init__(self, import_id: str, site_id: int) -> None:
        super().__init__("Import does not belong to this site")
        self.import_id = import_id
        self.site_id = site_id


class IllegalImportTransitionError(SiteImportError):
    def __init__(self, *, current: ImportStatus, target: ImportStatus) -> None:
        super().__init__(f"Illegal import status transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target


class ImportStateError(SiteImportError):
    """
    Raised when an operation targets an import in a terminal state.
    """

    def __init__(self, import_id: str, status: ImportStatus) -> None:
        if status is ImportStatus.COMPLETED:
            message = "Import already completed"
        elif status is ImportStatus.FAILED:
            message = "Import has failed"
        else:
            message = f"Import is {status.value}"
        super().__init__(message)
        self.import_id = import_id
        self.status = status


class BatchWriteError(SiteImportError):
    """
    Raised when the event store rejects a batch write; the import stays processing.
    """
