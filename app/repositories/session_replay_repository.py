"""
app/repositories/session_replay_repository.py

Persistence layer for recorded session replays.
"""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from db.models.session_replay import SessionReplayEvent, SessionReplayMetadata


class SessionReplayRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_metadata(self, *, site_id: int, session_id: str) -> SessionReplayMetadata | None:
        stmt = select(SessionReplayMetadata).where(
            SessionReplayMetadata.site_id == site_id,
            SessionReplayMetadata.session_id == session_id,
        )
        return self._session.scalars(stmt).first()

    def delete_replay(self, *, site_id: int, session_id: str) -> int:
        """
        Delete a replay's events and metadata. Returns the number of events removed.
        """

        result = self._session.execute(
            delete(SessionReplayEvent).where(
                SessionReplayEvent.site_id == site_id,
                SessionReplayEvent.session_id == session_id,
            )
        )
        self._session.execute(
            delete(SessionReplayMetadata).where(
                SessionReplayMetadata.site_id == site_id,
                SessionReplayMetadata.session_id == session_id,
            )
        )
        return int(result.rowcount or 0)
