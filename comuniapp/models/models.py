import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base


def utcnow():
    return datetime.now(timezone.utc)


class DeclarationKind(str, enum.Enum):
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"


class ObligationStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class UnitMembershipStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    PENDING = "PENDING"


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime, default=utcnow, nullable=False),
)


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    communities = orm_relationship("Community", back_populates="organization", cascade="all, delete-orphan")
    users = orm_relationship("User", back_populates="organization")


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    description = Column(String, nullable=True)
    # Ordered list of permission tags.
    permissions = Column(JSON, nullable=False, default=list)

    users = orm_relationship("User", secondary=user_roles, back_populates="roles")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    organization = orm_relationship("Organization", back_populates="users")
    roles = orm_relationship("Role", secondary=user_roles, back_populates="users", order_by="Role.id")
    community_admin_links = orm_relationship("CommunityAdmin", back_populates="user", cascade="all, delete-orphan")
    unit_links = orm_relationship("UserUnit", back_populates="user", cascade="all, delete-orphan")

    @property
    def role_names(self) -> list[str]:
        return [role.name for role in self.roles]

    def has_role(self, role_name: str) -> bool:
        return any(role.name == role_name for role in self.roles)


class Community(Base):
    __tablename__ = "communities"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    organization = orm_relationship("Organization", back_populates="communities")
    units = orm_relationship("Unit", back_populates="community", cascade="all, delete-orphan", order_by="Unit.id")
    admin_links = orm_relationship("CommunityAdmin", back_populates="community", cascade="all, delete-orphan")
    declarations = orm_relationship("Declaration", back_populates="community", cascade="all, delete-orphan")


class CommunityAdmin(Base):
    __tablename__ = "community_admins"
    __table_args__ = (UniqueConstraint("user_id", "community_id", name="uq_community_admin"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    community_id = Column(Integer, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = orm_relationship("User", back_populates="community_admin_links")
    community = orm_relationship("Community", back_populates="admin_links")


class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (UniqueConstraint("community_id", "number", name="uq_unit_number"),)

    id = Column(Integer, primary_key=True, index=True)
    community_id = Column(Integer, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    number = Column(String, nullable=False)
    coefficient = Column(Numeric(12, 6), nullable=False, default=1)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    community = orm_relationship("Community", back_populates="units")
    resident_links = orm_relationship("UserUnit", back_populates="unit", cascade="all, delete-orphan")
    obligations = orm_relationship("UnitObligation", back_populates="unit")


class UserUnit(Base):
    __tablename__ = "user_units"
    __table_args__ = (UniqueConstraint("user_id", "unit_id", name="uq_user_unit"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, default=UnitMembershipStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = orm_relationship("User", back_populates="unit_links")
    unit = orm_relationship("Unit", back_populates="resident_links")


class ExpenseCategory(Base):
    __tablename__ = "expense_categories"
    __table_args__ = (UniqueConstraint("community_id", "kind", "name", name="uq_expense_category"),)

    id = Column(Integer, primary_key=True, index=True)
    community_id = Column(Integer, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String, default=DeclarationKind.EXPENSE.value, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)


class Declaration(Base):
    __tablename__ = "declarations"
    # Authoritative duplicate-period guard.
    __table_args__ = (UniqueConstraint("community_id", "kind", "period", name="uq_declaration_period"),)

    id = Column(Integer, primary_key=True, index=True)
    community_id = Column(Integer, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String, nullable=False)
    period = Column(String(7), nullable=False)  # YYYY-MM
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    due_date = Column(Date, nullable=False)
    prorate_method = Column(String, nullable=False)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    community = orm_relationship("Community", back_populates="declarations")
    items = orm_relationship(
        "DeclarationItem",
        back_populates="declaration",
        cascade="all, delete-orphan",
        order_by="DeclarationItem.id",
    )
    obligations = orm_relationship(
        "UnitObligation",
        back_populates="declaration",
        cascade="all, delete-orphan",
        order_by="UnitObligation.unit_id",
    )


class DeclarationItem(Base):
    __tablename__ = "declaration_items"

    id = Column(Integer, primary_key=True, index=True)
    declaration_id = Column(Integer, ForeignKey("declarations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Integer, ForeignKey("expense_categories.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    declaration = orm_relationship("Declaration", back_populates="items")
    category = orm_relationship("ExpenseCategory")


class UnitObligation(Base):
    __tablename__ = "unit_obligations"
    __table_args__ = (UniqueConstraint("declaration_id", "unit_id", name="uq_obligation_unit"),)

    id = Column(Integer, primary_key=True, index=True)
    declaration_id = Column(Integer, ForeignKey("declarations.id", ondelete="CASCADE"), nullable=False, index=True)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    concept = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(Date, nullable=False)
    status = Column(String, default=ObligationStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    declaration = orm_relationship("Declaration", back_populates="obligations")
    unit = orm_relationship("Unit", back_populates="obligations")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True, nullable=False)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String, nullable=False)
    target_entity_type = Column(String, nullable=True)
    target_entity_id = Column(String, nullable=True)
    before = Column(Text, nullable=True)
    after = Column(Text, nullable=True)
