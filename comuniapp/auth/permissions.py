"""
Permission vocabulary.

Every permission carries its scope explicitly, so access decisions match on
``Permission.scope`` instead of inspecting the tag text.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Optional, Union


class ScopeKind(str, enum.Enum):
    GLOBAL = "GLOBAL"
    ORGANIZATION = "ORGANIZATION"
    COMMUNITY = "COMMUNITY"
    UNIT = "UNIT"


class CommunityAccess(str, enum.Enum):
    # Requires a community-admin binding.
    ADMIN = "ADMIN"
    # Community-admin binding or a confirmed unit in the community.
    MEMBER = "MEMBER"


@dataclass(frozen=True)
class Permission:
    name: str
    scope: ScopeKind = ScopeKind.GLOBAL
    community_access: CommunityAccess = CommunityAccess.ADMIN

    @property
    def requires_scope(self) -> bool:
        return self.scope != ScopeKind.GLOBAL

    def __str__(self) -> str:
        return self.name


class Permissions:
    # Platform
    MANAGE_ALL_ORGANIZATIONS = Permission("manage_all_organizations")
    MANAGE_ALL_USERS = Permission("manage_all_users")
    VIEW_SYSTEM_METRICS = Permission("view_system_metrics")
    MANAGE_OWN_PROFILE = Permission("manage_own_profile")

    # Organization
    MANAGE_ORGANIZATION_USERS = Permission("manage_organization_users", ScopeKind.ORGANIZATION)
    MANAGE_VISITORS = Permission("manage_visitors", ScopeKind.ORGANIZATION)
    MANAGE_PARCELS = Permission("manage_parcels", ScopeKind.ORGANIZATION)
    MANAGE_RESERVATIONS = Permission("manage_reservations", ScopeKind.ORGANIZATION)

    # Community administration
    MANAGE_COMMUNITY = Permission("manage_community", ScopeKind.COMMUNITY)
    MANAGE_COMMUNITY_USERS = Permission("manage_community_users", ScopeKind.COMMUNITY)
    MANAGE_COMMUNITY_UNITS = Permission("manage_community_units", ScopeKind.COMMUNITY)
    MANAGE_COMMUNITY_EXPENSES = Permission("manage_community_expenses", ScopeKind.COMMUNITY)
    VIEW_COMMUNITY_REPORTS = Permission("view_community_reports", ScopeKind.COMMUNITY)

    # Community residency
    VIEW_COMMUNITY_EXPENSES = Permission("view_community_expenses", ScopeKind.COMMUNITY, CommunityAccess.MEMBER)
    VIEW_COMMUNITY_ANNOUNCEMENTS = Permission(
        "view_community_announcements", ScopeKind.COMMUNITY, CommunityAccess.MEMBER
    )
    VIEW_ANNOUNCEMENTS = Permission("view_announcements", ScopeKind.COMMUNITY, CommunityAccess.MEMBER)
    CREATE_INCIDENTS = Permission("create_incidents", ScopeKind.COMMUNITY, CommunityAccess.MEMBER)

    # Own unit
    VIEW_OWN_UNIT = Permission("view_own_unit", ScopeKind.UNIT)
    VIEW_OWN_EXPENSES = Permission("view_own_expenses", ScopeKind.UNIT)
    MANAGE_OWN_VISITORS = Permission("manage_own_visitors", ScopeKind.UNIT)


PERMISSION_CATALOG: Dict[str, Permission] = {
    value.name: value for value in vars(Permissions).values() if isinstance(value, Permission)
}


def get_permission(permission: Union[Permission, str, None]) -> Optional[Permission]:
    """Return the catalog entry for a tag, or None when it is not part of the vocabulary."""
    if isinstance(permission, Permission):
        return PERMISSION_CATALOG.get(permission.name)
    if isinstance(permission, str):
        return PERMISSION_CATALOG.get(permission)
    return None
