import sys
from collections.abc import Callable, Generator
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from comuniapp.config import Base  # noqa: E402
import comuniapp.config as app_config  # noqa: E402
import comuniapp.main as app_main  # noqa: E402
# Import the full models module so all tables (including audit_logs) register with Base metadata.
from comuniapp.models import models as _all_models  # noqa: E402,F401
from comuniapp.models.models import (  # noqa: E402
    Community,
    CommunityAdmin,
    ExpenseCategory,
    Organization,
    Role,
    Unit,
    User,
    UserUnit,
    UnitMembershipStatus,
)
from comuniapp.services.principals import Principal, load_principal  # noqa: E402
from comuniapp.services.roles import ensure_default_roles  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Configure the app-wide SessionLocal/engine so TestClient uses a DB with all tables."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    db_path = db_dir / "app.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    app_main.SessionLocal = SessionLocal
    app_main.engine = engine
    yield
    engine.dispose()


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database with the default roles seeded for each test."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    ensure_default_roles(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def create_role(db_session: Session) -> Callable[..., Role]:
    def _create(name: str, permissions: Optional[list] = None) -> Role:
        existing = db_session.query(Role).filter(Role.name == name).first()
        if existing:
            return existing
        role = Role(name=name, permissions=list(permissions or []))
        db_session.add(role)
        db_session.commit()
        return role

    return _create


@pytest.fixture
def create_organization(db_session: Session) -> Callable[[str], Organization]:
    def _create(name: str = "Acme Property Management") -> Organization:
        organization = Organization(name=name)
        db_session.add(organization)
        db_session.commit()
        return organization

    return _create


@pytest.fixture
def create_community(db_session: Session, create_organization) -> Callable[..., Community]:
    counter = {"value": 0}

    def _create(organization: Optional[Organization] = None, name: Optional[str] = None) -> Community:
        counter["value"] += 1
        organization = organization or create_organization()
        community = Community(organization_id=organization.id, name=name or f"Community {counter['value']}")
        db_session.add(community)
        db_session.commit()
        return community

    return _create


@pytest.fixture
def create_unit(db_session: Session) -> Callable[..., Unit]:
    counter = {"value": 0}

    def _create(community: Community, coefficient="1", is_active: bool = True, number: Optional[str] = None) -> Unit:
        counter["value"] += 1
        unit = Unit(
            community_id=community.id,
            number=number or f"{counter['value']:03d}",
            coefficient=Decimal(str(coefficient)),
            is_active=is_active,
        )
        db_session.add(unit)
        db_session.commit()
        return unit

    return _create


@pytest.fixture
def create_user(db_session: Session, create_role) -> Callable[..., User]:
    counter = {"value": 0}

    def _create(
        email: Optional[str] = None,
        role_name: Optional[str] = "RESIDENT",
        organization: Optional[Organization] = None,
        is_active: bool = True,
    ) -> User:
        counter["value"] += 1
        user = User(
            email=email or f"user{counter['value']}@example.com",
            organization_id=organization.id if organization else None,
            is_active=is_active,
        )
        if role_name:
            user.roles.append(create_role(role_name))
        db_session.add(user)
        db_session.commit()
        return user

    return _create


@pytest.fixture
def bind_community_admin(db_session: Session) -> Callable[[User, Community], CommunityAdmin]:
    def _bind(user: User, community: Community) -> CommunityAdmin:
        link = CommunityAdmin(user_id=user.id, community_id=community.id)
        db_session.add(link)
        db_session.commit()
        return link

    return _bind


@pytest.fixture
def bind_unit(db_session: Session) -> Callable[..., UserUnit]:
    def _bind(user: User, unit: Unit, status: UnitMembershipStatus = UnitMembershipStatus.CONFIRMED) -> UserUnit:
        link = UserUnit(user_id=user.id, unit_id=unit.id, status=status.value)
        db_session.add(link)
        db_session.commit()
        return link

    return _bind


@pytest.fixture
def create_category(db_session: Session) -> Callable[..., ExpenseCategory]:
    def _create(community: Community, name: str = "Maintenance", kind: str = "EXPENSE") -> ExpenseCategory:
        category = ExpenseCategory(community_id=community.id, name=name, kind=kind)
        db_session.add(category)
        db_session.commit()
        return category

    return _create


@pytest.fixture
def principal_for(db_session: Session) -> Callable[[User], Principal]:
    def _load(user: User) -> Principal:
        principal = load_principal(db_session, user.id)
        assert principal is not None
        return principal

    return _load


@pytest.fixture
def community_with_admin(create_organization, create_community, create_user, bind_community_admin):
    """An organization, one of its communities and a bound community admin."""
    organization = create_organization()
    community = create_community(organization)
    admin = create_user(email="admin@example.com", role_name="COMMUNITY_ADMIN", organization=organization)
    bind_community_admin(admin, community)
    return organization, community, admin
