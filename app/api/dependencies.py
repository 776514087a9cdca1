"""
app/api/dependencies.py

Shared FastAPI dependencies for caller identity and site authorization.
"""

from __future__ import annotations

from typing import Protocol

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from db.models.site import ADMIN_ROLES
from db.repositories.site_repository import SiteRepository
from db.session import get_db


class SiteAccessChecker(Protocol):
    def has_admin_access(self, *, user_id: str, site_id: int) -> bool: ...

    def has_access(self, *, user_id: str, site_id: int) -> bool: ...


class MembershipSiteAccessChecker:
    """
    Grants admin access to owners and admins of the site's organization,
    and plain access to any of its members.
    """

    def __init__(self, session: Session) -> None:
        self._sites = SiteRepository(session)

    def has_admin_access(self, *, user_id: str, site_id: int) -> bool:
        return self._sites.get_member_role(user_id=user_id, site_id=site_id) in ADMIN_ROLES

    def has_access(self, *, user_id: str, site_id: int) -> bool:
        return self._sites.get_member_role(user_id=user_id, site_id=site_id) is not None


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """
    Resolve the authenticated caller from the X-User-Id header set by the auth proxy.
    """

    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthenticated", "message": "Missing X-User-Id header."},
        )
    return user_id


def get_site_access_checker(db: Session = Depends(get_db)) -> SiteAccessChecker:
    return MembershipSiteAccessChecker(db)


def _forbidden() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"error": "forbidden", "message": "Forbidden"},
    )


def require_site_admin(
    site_id: int,
    user_id: str = Depends(get_current_user_id),
    checker: SiteAccessChecker = Depends(get_site_access_checker),
) -> str:
    if not checker.has_admin_access(user_id=user_id, site_id=site_id):
        raise _forbidden()
    return user_id


def require_site_access(
    site_id: int,
    user_id: str = Depends(get_current_user_id),
    checker: SiteAccessChecker = Depends(get_site_access_checker),
) -> str:
    if not checker.has_access(user_id=user_id, site_id=site_id):
        raise _forbidden()
    return user_id
