"""
app/domain/canonical_event.py

Canonical event shape accepted by the event store.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class CanonicalEventInput:
    """
    Platform-agnostic event record produced by an import mapper.
    Written once; never updated.
    """

    site_id: int
    import_id: uuid.UUID | None
    timestamp: datetime
    type: str
    session_id: str
    user_id: str
    hostname: str
    pathname: str
    querystring: str
    page_title: str
    referrer: str
    channel: str
    browser: str
    operating_system: str
    operating_system_version: str
    device_type: str
    screen_width: int
    screen_height: int
    language: str
    country: str
    region: str
    city: str
    event_name: str = ""
