from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from ..models.models import Community, Unit, UnitMembershipStatus
from .principals import Principal


def _valid_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_organization_member(principal: Optional[Principal], organization_id) -> bool:
    if principal is None or not _valid_id(organization_id):
        return False
    return principal.organization_id is not None and principal.organization_id == organization_id


def is_community_admin(principal: Optional[Principal], community_id) -> bool:
    if principal is None or not _valid_id(community_id):
        return False
    return community_id in principal.admin_community_ids


def has_confirmed_unit(principal: Optional[Principal], unit_id) -> bool:
    if principal is None or not _valid_id(unit_id):
        return False
    return any(
        membership.unit_id == unit_id and membership.status == UnitMembershipStatus.CONFIRMED.value
        for membership in principal.units
    )


def has_confirmed_unit_in(principal: Optional[Principal], community_id) -> bool:
    if principal is None or not _valid_id(community_id):
        return False
    return any(
        membership.community_id == community_id and membership.status == UnitMembershipStatus.CONFIRMED.value
        for membership in principal.units
    )


class TenancyContext:
    """Tenancy lookups: principal checks are pure, resource lookups read storage."""

    def __init__(self, session: Session) -> None:
        self.session = session

    is_organization_member = staticmethod(is_organization_member)
    is_community_admin = staticmethod(is_community_admin)
    has_confirmed_unit = staticmethod(has_confirmed_unit)
    has_confirmed_unit_in = staticmethod(has_confirmed_unit_in)

    def community_of_unit(self, unit_id) -> Optional[int]:
        if not _valid_id(unit_id):
            return None
        row = self.session.query(Unit.community_id).filter(Unit.id == unit_id).first()
        return row[0] if row else None

    def organization_of_community(self, community_id) -> Optional[int]:
        if not _valid_id(community_id):
            return None
        row = self.session.query(Community.organization_id).filter(Community.id == community_id).first()
        return row[0] if row else None
