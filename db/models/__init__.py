"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.event import Event
from db.models.import_status import ImportBatch, ImportRecord
from db.models.session_replay import SessionReplayEvent, SessionReplayMetadata
from db.models.site import Membership, Organization, Site

__all__ = [
    "Event",
    "ImportBatch",
    "ImportRecord",
    "Membership",
    "Organization",
    "SessionReplayEvent",
    "SessionReplayMetadata",
    "Site",
]
