from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.jwt import require_permission
from ..auth.permissions import Permissions
from ..schemas.schemas import PrincipalRead, RoleAssignmentCreate, RoleAssignmentRead, RoleRead
from ..services.access import require_access
from ..services.principals import Principal
from ..services.role_assignments import assign_role
from ..services.roles import RoleCatalog
from .dependencies import get_db, get_principal

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("/", response_model=List[RoleRead])
def list_roles(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    require_access(principal, Permissions.MANAGE_ORGANIZATION_USERS, principal.organization_id)
    return RoleCatalog(db).list_roles()


@router.get("/me", response_model=PrincipalRead)
def read_my_roles(principal: Principal = Depends(require_permission(Permissions.MANAGE_OWN_PROFILE))):
    return PrincipalRead(
        user_id=principal.user_id,
        organization_id=principal.organization_id,
        roles=list(principal.role_names),
        permissions=sorted(permission.name for permission in principal.permissions),
        admin_community_ids=sorted(principal.admin_community_ids),
    )


@router.post("/assignments", response_model=RoleAssignmentRead)
def create_role_assignment(
    payload: RoleAssignmentCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    resolution = assign_role(db, principal, payload.user_id, payload.role_name)
    return RoleAssignmentRead(
        user_id=payload.user_id,
        role=RoleRead.model_validate(resolution.role),
        requested_role=resolution.requested_name,
        substituted=resolution.substituted,
    )
