"""
Access decisions for tenant-scoped resources.

``can_access`` is a pure function over a principal snapshot: it never raises
and never touches storage. Callers turn a negative answer into a
``ForbiddenError`` through ``require_access``.
"""
from __future__ import annotations

import logging
from typing import Optional, Union

from ..auth.permissions import CommunityAccess, Permission, ScopeKind, get_permission
from ..core.errors import ForbiddenError
from .principals import Principal
from .roles import effective_permissions, is_super_admin
from .tenancy import has_confirmed_unit, has_confirmed_unit_in, is_community_admin, is_organization_member

logger = logging.getLogger(__name__)

PermissionLike = Union[Permission, str]


def _decide(principal: Optional[Principal], permission: Optional[PermissionLike], scope) -> tuple[bool, str]:
    if principal is None:
        return False, "no principal"
    if is_super_admin(principal):
        return True, "super admin"

    resolved = get_permission(permission)
    if resolved is None:
        return False, f"unknown permission {permission!r}"
    if resolved not in effective_permissions(principal):
        return False, f"permission {resolved.name} not granted"

    if resolved.scope == ScopeKind.GLOBAL:
        return True, "global permission"
    if resolved.scope == ScopeKind.ORGANIZATION:
        if is_organization_member(principal, scope):
            return True, "organization member"
        return False, f"not a member of organization {scope!r}"
    if resolved.scope == ScopeKind.COMMUNITY:
        if is_community_admin(principal, scope):
            return True, "community admin"
        if resolved.community_access == CommunityAccess.MEMBER and has_confirmed_unit_in(principal, scope):
            return True, "confirmed resident"
        return False, f"no binding to community {scope!r}"
    if resolved.scope == ScopeKind.UNIT:
        if has_confirmed_unit(principal, scope):
            return True, "confirmed unit"
        return False, f"no confirmed binding to unit {scope!r}"
    return False, "unsupported scope"


def can_access(principal: Optional[Principal], permission: Optional[PermissionLike], scope=None) -> bool:
    allowed, _ = _decide(principal, permission, scope)
    return allowed


def require_access(principal: Optional[Principal], permission: PermissionLike, scope=None) -> None:
    allowed, reason = _decide(principal, permission, scope)
    if not allowed:
        logger.debug(
            "Access denied for user %s on %s (scope=%r): %s",
            principal.user_id if principal else None,
            permission,
            scope,
            reason,
        )
        raise ForbiddenError()


def can_access_any(principal: Optional[Principal], permissions, scope=None) -> bool:
    return any(can_access(principal, permission, scope) for permission in permissions)
