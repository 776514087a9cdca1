"""
Session replay endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.dependencies import require_site_access
from app.schemas.site_imports import DeleteSessionReplayResponse
from app.services.session_replay_service import SessionReplayNotFoundError, SessionReplayService
from db.session import get_db

router = APIRouter(prefix="/sites/{site_id}", tags=["session-replays"])


def get_session_replay_service(db: Session = Depends(get_db)) -> SessionReplayService:
    return SessionReplayService(db)


@router.delete("/session-replays/{session_id}", response_model=DeleteSessionReplayResponse)
def delete_session_replay(
    site_id: int,
    session_id: str,
    _user_id: str = Depends(require_site_access),
    service: SessionReplayService = Depends(get_session_replay_service),
) -> DeleteSessionReplayResponse:
    try:
        removed = service.delete_session_replay(site_id=site_id, session_id=session_id)
    except SessionReplayNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "session_replay_not_found", "message": str(exc)},
        ) from exc
    return DeleteSessionReplayResponse(session_id=session_id, events_removed=removed)
