"""
db/models/import_status.py

Durable lifecycle record for one site import, plus its accepted batches.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.domain.site_import import ImportPlatform, ImportStatus
from db.base import Base, TimestampMixin


def _enum_values(enum_cls: type[ImportStatus] | type[ImportPlatform]) -> list[str]:
    return [member.value for member in enum_cls]


class ImportRecord(Base, TimestampMixin):
    __tablename__ = "import_status"

    import_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    site_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sites.site_id", ondelete="CASCADE"),
        nullable=False,
    )
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    platform: Mapped[ImportPlatform | None] = mapped_column(
        Enum(
            ImportPlatform,
            name="import_platform_enum",
            native_enum=False,
            length=32,
            values_callable=_enum_values,
        ),
        nullable=True,
        comment="Fixed once set",
    )
    status: Mapped[ImportStatus] = mapped_column(
        Enum(
            ImportStatus,
            name="import_status_enum",
            native_enum=False,
            length=32,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=ImportStatus.PENDING,
    )
    imported_events: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        server_default="0",
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_import_status_site_id", "site_id"),
        Index("ix_import_status_organization_status", "organization_id", "status"),
        Index("ix_import_status_updated_at", "updated_at"),
    )


class ImportBatch(Base):
    __tablename__ = "import_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    import_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("import_status.import_id", ondelete="CASCADE"),
        nullable=False,
    )
    batch_index: Mapped[int] = mapped_column(Integer, nullable=False)
    imported_count: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("import_id", "batch_index", name="uq_import_batches_import_batch"),
    )
