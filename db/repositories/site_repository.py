"""
Repository for sites, their organizations, and member roles.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.site import Membership, Organization, Site


class SiteRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_site(self, site_id: int) -> Site | None:
        return self._session.get(Site, site_id)

    def get_organization(self, organization_id: str) -> Organization | None:
        return self._session.get(Organization, organization_id)

    def get_organization_id(self, site_id: int) -> str | None:
        stmt = select(Site.organization_id).where(Site.site_id == site_id).limit(1)
        return self._session.scalars(stmt).first()

    def list_site_ids(self, organization_id: str) -> list[int]:
        stmt = (
            select(Site.site_id)
            .where(Site.organization_id == organization_id)
            .order_by(Site.site_id)
        )
        return list(self._session.scalars(stmt).all())

    def get_member_role(self, *, user_id: str, site_id: int) -> str | None:
        """
        Return the user's role in the organization owning ``site_id``, if any.
        """

        stmt = (
            select(Membership.role)
            .join(Site, Site.organization_id == Membership.organization_id)
            .where(Site.site_id == site_id, Membership.user_id == user_id)
            .limit(1)
        )
        return self._session.scalars(stmt).first()
