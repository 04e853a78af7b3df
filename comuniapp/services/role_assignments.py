from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..auth.permissions import Permissions
from ..constants import SUPER_ADMIN_ROLE
from ..core.errors import ForbiddenError, NotFoundError
from ..models.models import User
from .access import require_access
from .audit import audit_log
from .ledger_gateway import LedgerGateway
from .principals import Principal
from .roles import RoleCatalog, RoleResolution, is_super_admin

logger = logging.getLogger(__name__)


def assign_role(
    session: Session,
    actor: Principal,
    user_id: int,
    role_name: Optional[str],
    catalog: Optional[RoleCatalog] = None,
) -> RoleResolution:
    """
    Grant a role, looked up by name, to a user of the actor's organization.

    Unknown role names fall back to the default role; the returned resolution
    says whether that happened.
    """
    gateway = LedgerGateway(session)
    user = gateway.find_unique(User, id=user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    require_access(actor, Permissions.MANAGE_ORGANIZATION_USERS, user.organization_id)

    catalog = catalog or RoleCatalog(session)
    resolution = catalog.resolve_role_for_assignment(role_name)
    if resolution.role.name == SUPER_ADMIN_ROLE and not is_super_admin(actor):
        raise ForbiddenError()

    if user.has_role(resolution.role.name):
        return resolution

    def _write(gateway: LedgerGateway) -> RoleResolution:
        user.roles.append(resolution.role)
        gateway.session.flush()
        audit_log(
            gateway.session,
            actor,
            "user.role.assign",
            user,
            after={
                "role": resolution.role.name,
                "requested_role": resolution.requested_name,
                "substituted": resolution.substituted,
            },
        )
        return resolution

    gateway.run_in_transaction(_write)
    logger.info(
        "Assigned role %s to user %s (requested %s, substituted=%s)",
        resolution.role.name,
        user.id,
        resolution.requested_name,
        resolution.substituted,
    )
    return resolution
