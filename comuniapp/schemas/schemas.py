from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal, conlist

from ..models.models import DeclarationKind, ObligationStatus
from ..services.proration import ProrateMethod

Money = condecimal(gt=0, max_digits=12, decimal_places=2)
PeriodStr = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$", description="Calendar month as YYYY-MM")


class RoleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    permissions: List[str] = []


class RoleAssignmentCreate(BaseModel):
    user_id: int
    role_name: str = Field(min_length=1, max_length=64)


class RoleAssignmentRead(BaseModel):
    user_id: int
    role: RoleRead
    requested_role: str
    substituted: bool


class PrincipalRead(BaseModel):
    user_id: int
    organization_id: Optional[int] = None
    roles: List[str] = []
    permissions: List[str] = []
    admin_community_ids: List[int] = []


class DeclarationItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    amount: Money  # type: ignore[valid-type]
    description: Optional[str] = Field(default=None, max_length=500)
    category_id: Optional[int] = None


class DeclarationItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount: Decimal
    description: Optional[str] = None
    category_id: Optional[int] = None
    created_at: datetime


class DeclarationCreate(BaseModel):
    community_id: int
    period: str = PeriodStr
    due_date: date
    items: List[DeclarationItemCreate] = Field(min_length=1)
    prorate_method: ProrateMethod


class DeclarationUpdate(BaseModel):
    period: Optional[str] = Field(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    due_date: Optional[date] = None
    prorate_method: Optional[ProrateMethod] = None
    items: Optional[conlist(DeclarationItemCreate, min_length=1)] = None  # type: ignore[valid-type]


class UnitObligationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    declaration_id: int
    unit_id: int
    amount: Decimal
    concept: str
    description: Optional[str] = None
    due_date: date
    status: ObligationStatus
    created_at: datetime
    updated_at: datetime


class DeclarationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    community_id: int
    kind: DeclarationKind
    period: str
    total_amount: Decimal
    due_date: date
    prorate_method: ProrateMethod
    created_by_user_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    items: List[DeclarationItemRead] = []
    obligations: List[UnitObligationRead] = []


class DeclarationSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    community_id: int
    community_name: str
    kind: DeclarationKind
    period: str
    total_amount: Decimal
    due_date: date
    prorate_method: ProrateMethod
    total_units: int
    paid_units: int
    pending_units: int
    overdue_units: int
    created_at: datetime
    items: List[DeclarationItemRead] = []
