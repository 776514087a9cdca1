"""
app/services/session_replay_service.py

Deletion of recorded session replays.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.repositories.session_replay_repository import SessionReplayRepository

logger = logging.getLogger(__name__)


class SessionReplayNotFoundError(Exception):
    def __init__(self, site_id: int, session_id: str) -> None:
        super().__init__("Session replay not found")
        self.site_id = site_id
        self.session_id = session_id


class SessionReplayService:
    def __init__(self, session: Session) -> None:
        self._session = session
        self._replays = SessionReplayRepository(session)

    def delete_session_replay(self, *, site_id: int, session_id: str) -> int:
        """
        Delete one recorded session. Raises SessionReplayNotFoundError when no metadata exists.
        """

        if self._replays.get_metadata(site_id=site_id, session_id=session_id) is None:
            raise SessionReplayNotFoundError(site_id, session_id)
        try:
            removed = self._replays.delete_replay(site_id=site_id, session_id=session_id)
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            logger.exception(
                "Session replay deletion failed site_id=%s session_id=%s",
                site_id,
                session_id,
            )
            raise

        logger.info(
            "Session replay deleted site_id=%s session_id=%s events_removed=%s",
            site_id,
            session_id,
            removed,
        )
        return removed
