"""
app/api/routers package marker.
"""

from app.api.routers.session_replays import router as session_replays_router
from app.api.routers.site_imports import router as site_imports_router

__all__ = [
    "session_replays_router",
    "site_imports_router",
]
