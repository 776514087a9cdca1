"""
app/repositories package marker.
"""

from app.repositories.event_repository import EventRepository
from app.repositories.session_replay_repository import SessionReplayRepository

__all__ = [
    "EventRepository",
    "SessionReplayRepository",
]
