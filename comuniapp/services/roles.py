from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..auth.permissions import Permission, get_permission
from ..config import settings
from ..constants import DEFAULT_ROLES, SUPER_ADMIN_ROLE
from ..core.errors import NotFoundError
from ..models.models import Role

if TYPE_CHECKING:
    from .principals import Principal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleResolution:
    role: Role
    requested_name: str
    substituted: bool = False


def effective_permissions(principal: Optional["Principal"]) -> FrozenSet[Permission]:
    if principal is None:
        return frozenset()
    return principal.permissions


def has_role(principal: Optional["Principal"], role_name: str) -> bool:
    if principal is None:
        return False
    return role_name in principal.role_names


def is_super_admin(principal: Optional["Principal"]) -> bool:
    return has_role(principal, SUPER_ADMIN_ROLE)


class RoleCatalog:
    """Resolves roles and their permission tags against the roles table."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self._permissions_by_role: Dict[str, FrozenSet[Permission]] = {}

    has_role = staticmethod(has_role)
    is_super_admin = staticmethod(is_super_admin)

    def get_role(self, name: str) -> Role:
        role = self.session.query(Role).filter(Role.name == name).first()
        if role is None:
            raise NotFoundError(f"Role {name} not found")
        return role

    def find_role(self, name: Optional[str]) -> Optional[Role]:
        if not name:
            return None
        return self.session.query(Role).filter(Role.name == name).first()

    def list_roles(self) -> List[Role]:
        return self.session.query(Role).order_by(Role.id.asc()).all()

    def role_permissions(self, role: Role) -> FrozenSet[Permission]:
        cached = self._permissions_by_role.get(role.name)
        if cached is not None:
            return cached
        resolved = set()
        for tag in role.permissions or []:
            permission = get_permission(tag)
            if permission is None:
                logger.warning("Role %s carries unknown permission tag %r; ignoring it", role.name, tag)
                continue
            resolved.add(permission)
        frozen = frozenset(resolved)
        self._permissions_by_role[role.name] = frozen
        return frozen

    def permissions_for_roles(self, roles: Iterable[Role]) -> FrozenSet[Permission]:
        permissions: set = set()
        for role in roles:
            permissions |= self.role_permissions(role)
        return frozenset(permissions)

    def effective_permissions(self, principal: Optional["Principal"]) -> FrozenSet[Permission]:
        """Union of permissions across the principal's roles, read from storage."""
        if principal is None or not principal.role_names:
            return frozenset()
        roles = self.session.query(Role).filter(Role.name.in_(principal.role_names)).all()
        return self.permissions_for_roles(roles)

    def resolve_role_for_assignment(self, requested_name: Optional[str], default_name: Optional[str] = None) -> RoleResolution:
        """
        Look up a role by a caller-supplied name.

        Unknown names resolve to the default role and the result is flagged as
        substituted so callers can report it.
        """
        requested = (requested_name or "").strip().upper()
        role = self.find_role(requested)
        if role is not None:
            return RoleResolution(role=role, requested_name=requested)

        fallback_name = default_name or settings.default_role_name
        fallback = self.get_role(fallback_name)
        logger.warning("Unknown role %r requested; substituting default role %s", requested_name, fallback.name)
        return RoleResolution(role=fallback, requested_name=requested, substituted=True)


def ensure_default_roles(session: Session) -> None:
    for name, description, permissions in DEFAULT_ROLES:
        role = session.query(Role).filter(Role.name == name).first()
        if not role:
            session.add(Role(name=name, description=description, permissions=list(permissions)))
        else:
            role.description = description
            role.permissions = list(permissions)
    session.commit()
