"""
db/models/event.py

Canonical analytics event rows (the event store).
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class EventType:
    PAGEVIEW = "pageview"
    CUSTOM_EVENT = "custom_event"


class Event(Base):
    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    site_id: Mapped[int] = mapped_column(Integer, nullable=False)
    import_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        comment="Set for rows written by a site import",
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, comment="pageview, custom_event")
    event_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    session_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    hostname: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    pathname: Mapped[str] = mapped_column(Text, nullable=False, default="")
    querystring: Mapped[str] = mapped_column(Text, nullable=False, default="")
    page_title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    referrer: Mapped[str] = mapped_column(Text, nullable=False, default="")
    channel: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    browser: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    operating_system: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    operating_system_version: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    device_type: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    screen_width: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    screen_height: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    language: Mapped[str] = mapped_column(String(35), nullable=False, default="")
    country: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    region: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    city: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    __table_args__ = (
        Index("ix_events_site_id_timestamp", "site_id", "timestamp"),
        Index("ix_events_import_id", "import_id"),
        Index("ix_events_session_id", "session_id"),
    )
