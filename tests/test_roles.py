import logging

import pytest

from comuniapp.auth.permissions import Permissions
from comuniapp.core.errors import ForbiddenError, NotFoundError
from comuniapp.models.models import AuditLog, User
from comuniapp.services.role_assignments import assign_role
from comuniapp.services.roles import RoleCatalog, effective_permissions, has_role, is_super_admin


def test_effective_permissions_union_over_roles(db_session, create_user, create_role, principal_for):
    create_role("AUDITOR", ["view_system_metrics"])
    user = create_user(role_name="CONCIERGE")
    user.roles.append(create_role("AUDITOR"))
    db_session.commit()
    principal = principal_for(user)

    permissions = effective_permissions(principal)
    assert Permissions.VIEW_SYSTEM_METRICS in permissions
    assert Permissions.MANAGE_PARCELS in permissions
    assert RoleCatalog(db_session).effective_permissions(principal) == permissions
    assert RoleCatalog(db_session).has_role(principal, "AUDITOR")
    assert has_role(principal, "CONCIERGE")
    assert not is_super_admin(principal)


def test_effective_permissions_empty_for_missing_principal(db_session):
    assert effective_permissions(None) == frozenset()
    assert RoleCatalog(db_session).effective_permissions(None) == frozenset()


def test_unknown_permission_tags_are_skipped(db_session, create_role, caplog):
    role = create_role("LEGACY", ["manage_own_profile", "MANAGE_EVERYTHING"])

    with caplog.at_level(logging.WARNING, logger="comuniapp.services.roles"):
        permissions = RoleCatalog(db_session).role_permissions(role)

    assert permissions == frozenset({Permissions.MANAGE_OWN_PROFILE})
    assert "MANAGE_EVERYTHING" in caplog.text


def test_get_role_raises_not_found(db_session):
    catalog = RoleCatalog(db_session)

    assert catalog.get_role("OWNER").name == "OWNER"
    with pytest.raises(NotFoundError):
        catalog.get_role("ghost")
    assert catalog.find_role("ghost") is None


def test_list_roles_returns_seeded_catalog(db_session):
    names = [role.name for role in RoleCatalog(db_session).list_roles()]

    assert names[:2] == ["SUPER_ADMIN", "COMMUNITY_ADMIN"]
    assert {"CONCIERGE", "OWNER", "TENANT", "RESIDENT"} <= set(names)


def test_resolve_role_matches_case_insensitively(db_session):
    resolution = RoleCatalog(db_session).resolve_role_for_assignment(" tenant ")

    assert resolution.role.name == "TENANT"
    assert resolution.substituted is False


def test_unknown_role_falls_back_to_default_and_reports_it(db_session, caplog):
    with caplog.at_level(logging.WARNING, logger="comuniapp.services.roles"):
        resolution = RoleCatalog(db_session).resolve_role_for_assignment("landlord")

    assert resolution.role.name == "RESIDENT"
    assert resolution.requested_name == "LANDLORD"
    assert resolution.substituted is True
    assert "substituting default role RESIDENT" in caplog.text


def test_missing_default_role_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        RoleCatalog(db_session).resolve_role_for_assignment("landlord", default_name="NOBODY")


def test_assign_role_grants_and_audits(db_session, community_with_admin, create_user, principal_for):
    organization, _, admin = community_with_admin
    target = create_user(role_name=None, organization=organization)

    resolution = assign_role(db_session, principal_for(admin), target.id, "owner")

    assert resolution.role.name == "OWNER"
    assert db_session.get(User, target.id).role_names == ["OWNER"]
    entry = db_session.query(AuditLog).filter(AuditLog.action == "user.role.assign").one()
    assert entry.actor_user_id == admin.id
    assert '"substituted": false' in entry.after


def test_assign_role_is_idempotent(db_session, community_with_admin, create_user, principal_for):
    organization, _, admin = community_with_admin
    target = create_user(role_name="OWNER", organization=organization)

    assign_role(db_session, principal_for(admin), target.id, "OWNER")

    assert db_session.get(User, target.id).role_names == ["OWNER"]
    assert db_session.query(AuditLog).count() == 0


def test_assign_unknown_role_substitutes_default(db_session, community_with_admin, create_user, principal_for):
    organization, _, admin = community_with_admin
    target = create_user(role_name=None, organization=organization)

    resolution = assign_role(db_session, principal_for(admin), target.id, "landlord")

    assert resolution.substituted is True
    assert db_session.get(User, target.id).role_names == ["RESIDENT"]


def test_assign_role_outside_organization_is_forbidden(
    db_session, community_with_admin, create_organization, create_user, principal_for
):
    _, _, admin = community_with_admin
    outsider = create_user(role_name=None, organization=create_organization("Elsewhere"))

    with pytest.raises(ForbiddenError):
        assign_role(db_session, principal_for(admin), outsider.id, "OWNER")


def test_only_super_admin_may_grant_super_admin(db_session, community_with_admin, create_user, principal_for):
    organization, _, admin = community_with_admin
    target = create_user(role_name=None, organization=organization)
    root = create_user(email="root@example.com", role_name="SUPER_ADMIN")

    with pytest.raises(ForbiddenError):
        assign_role(db_session, principal_for(admin), target.id, "SUPER_ADMIN")

    resolution = assign_role(db_session, principal_for(root), target.id, "SUPER_ADMIN")
    assert resolution.role.name == "SUPER_ADMIN"


def test_assign_role_to_unknown_user(db_session, community_with_admin, principal_for):
    _, _, admin = community_with_admin

    with pytest.raises(NotFoundError):
        assign_role(db_session, principal_for(admin), 9999, "OWNER")
