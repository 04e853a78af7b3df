from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from ..auth.permissions import Permission
from ..models.models import User, UserUnit
from .roles import RoleCatalog


@dataclass(frozen=True)
class UnitMembership:
    unit_id: int
    community_id: int
    status: str


@dataclass(frozen=True)
class Principal:
    """Read-only snapshot of an authenticated actor, built once per request."""

    user_id: Optional[int]
    organization_id: Optional[int] = None
    role_names: Tuple[str, ...] = ()
    permissions: FrozenSet[Permission] = field(default_factory=frozenset)
    admin_community_ids: FrozenSet[int] = field(default_factory=frozenset)
    units: Tuple[UnitMembership, ...] = ()

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls(user_id=None)


def user_query(session: Session):
    """Users with every relationship a principal snapshot reads."""
    return session.query(User).options(
        selectinload(User.roles),
        selectinload(User.community_admin_links),
        selectinload(User.unit_links).joinedload(UserUnit.unit),
    )


def load_principal(session: Session, user_id: int, catalog: Optional[RoleCatalog] = None) -> Optional[Principal]:
    user = user_query(session).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        return None
    return build_principal(user, catalog or RoleCatalog(session))


def build_principal(user: User, catalog: RoleCatalog) -> Principal:
    role_names = tuple(role.name for role in user.roles)
    units = tuple(
        UnitMembership(unit_id=link.unit_id, community_id=link.unit.community_id, status=link.status)
        for link in user.unit_links
        if link.unit is not None
    )
    return Principal(
        user_id=user.id,
        organization_id=user.organization_id,
        role_names=role_names,
        permissions=catalog.permissions_for_roles(user.roles),
        admin_community_ids=frozenset(link.community_id for link in user.community_admin_links),
        units=units,
    )
