"""
Repository layer exports.
"""

from db.repositories.import_status_repository import ImportStatusRepository
from db.repositories.site_repository import SiteRepository

__all__ = [
    "ImportStatusRepository",
    "SiteRepository",
]
