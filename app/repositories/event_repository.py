"""
app/repositories/event_repository.py

Persistence layer for canonical analytics events.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import asdict
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, insert, select
from sqlalchemy.orm import Session

from app.domain.canonical_event import CanonicalEventInput
from db.models.event import Event

_DEFAULT_BATCH_SIZE = 1000


class EventRepository:
    """
    Repository for bulk event writes and per-month usage reads.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def bulk_insert(
        self,
        rows: Sequence[CanonicalEventInput],
        *,
        batch_size: int = _DEFAULT_BATCH_SIZE,
    ) -> int:
        """
        Insert canonical rows; the caller owns the transaction.
        """

        if not rows:
            return 0

        payloads: list[dict[str, Any]] = [asdict(row) for row in rows]
        size = max(1, batch_size)
        for start in range(0, len(payloads), size):
            self._session.execute(insert(Event), payloads[start : start + size])
        return len(payloads)

    def count_by_month(self, *, site_ids: Sequence[int], since: datetime) -> dict[str, int]:
        """
        Return event counts keyed by UTC month (``YYYY-MM``) for ``site_ids`` from ``since``.
        """

        if not site_ids:
            return {}

        month = self._month_expression()
        stmt = (
            select(month.label("month"), func.count().label("total"))
            .where(Event.site_id.in_(list(site_ids)), Event.timestamp >= since)
            .group_by(month)
        )
        return {str(row.month): int(row.total) for row in self._session.execute(stmt)}

    def count_for_import(self, import_id: uuid.UUID) -> int:
        stmt = select(func.count()).select_from(Event).where(Event.import_id == import_id)
        return int(self._session.scalar(stmt) or 0)

    def delete_by_import(self, import_id: uuid.UUID) -> int:
        result = self._session.execute(delete(Event).where(Event.import_id == import_id))
        return int(result.rowcount or 0)

    def _month_expression(self) -> Any:
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            return func.to_char(func.timezone("UTC", Event.timestamp), "YYYY-MM")
        # SQLite stores UTC timestamps as ISO text.
        return func.strftime("%Y-%m", Event.timestamp)
