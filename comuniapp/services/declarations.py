"""
Common expense and common income declarations.

A declaration turns a community-wide list of items into one obligation per
active unit. The header, its items and every obligation are written in a
single transaction through the ledger gateway; the unique index on
(community, kind, period) is what rejects a second declaration for a period.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth.permissions import Permissions
from ..config import settings
from ..constants import DECLARATION_KIND_LABELS, DEFAULT_UNIT_COEFFICIENT
from ..core.errors import ConflictError, ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from ..models.models import (
    Community,
    Declaration,
    DeclarationItem,
    DeclarationKind,
    ExpenseCategory,
    ObligationStatus,
    Unit,
    UnitObligation,
)
from .access import can_access, can_access_any, require_access
from .audit import audit_log
from .ledger_gateway import LedgerGateway
from .principals import Principal
from .proration import ProratedShare, ProrateMethod, RemainderPolicy, UnitWeight, recompute, round_money, total_of
from .roles import is_super_admin
from .tenancy import TenancyContext

logger = logging.getLogger(__name__)

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

VIEW_PERMISSIONS = (Permissions.MANAGE_COMMUNITY_EXPENSES, Permissions.VIEW_COMMUNITY_EXPENSES)

PERIOD_CONSTRAINT = "uq_declaration_period"


@dataclass(frozen=True)
class DeclarationItemInput:
    name: str
    amount: Decimal
    description: Optional[str] = None
    category_id: Optional[int] = None


@dataclass(frozen=True)
class DeclarationPatch:
    period: Optional[str] = None
    due_date: Optional[date] = None
    prorate_method: Optional[ProrateMethod] = None
    items: Optional[Sequence[DeclarationItemInput]] = None


@dataclass(frozen=True)
class DeclarationSummary:
    id: int
    community_id: int
    community_name: str
    kind: str
    period: str
    total_amount: Decimal
    due_date: date
    prorate_method: str
    total_units: int
    paid_units: int
    pending_units: int
    overdue_units: int
    created_at: datetime
    items: List[DeclarationItem] = field(default_factory=list)


def normalize_period(period: Any) -> str:
    value = str(period or "").strip()
    if not PERIOD_PATTERN.match(value):
        raise InvalidInputError(f"Period must be in YYYY-MM format, got {period!r}")
    return value


def _is_period_collision(exc: IntegrityError) -> bool:
    # SQLite reports the columns, other backends the constraint name.
    message = str(exc.orig)
    return PERIOD_CONSTRAINT in message or "declarations.period" in message


def _obligation_concept(kind: DeclarationKind, period: str) -> str:
    return f"{DECLARATION_KIND_LABELS[kind.value]} {period}"


def _obligation_description(items: Iterable[DeclarationItemInput]) -> str:
    return "Items: " + ", ".join(item.name for item in items)


def _summarize(declaration: Declaration) -> DeclarationSummary:
    statuses = [obligation.status for obligation in declaration.obligations]
    return DeclarationSummary(
        id=declaration.id,
        community_id=declaration.community_id,
        community_name=declaration.community.name,
        kind=declaration.kind,
        period=declaration.period,
        total_amount=declaration.total_amount,
        due_date=declaration.due_date,
        prorate_method=declaration.prorate_method,
        total_units=len(statuses),
        paid_units=statuses.count(ObligationStatus.PAID.value),
        pending_units=statuses.count(ObligationStatus.PENDING.value),
        overdue_units=statuses.count(ObligationStatus.OVERDUE.value),
        created_at=declaration.created_at,
        items=list(declaration.items),
    )


class DeclarationService:
    def __init__(self, session: Session, remainder_policy: Optional[RemainderPolicy] = None) -> None:
        self.session = session
        self.gateway = LedgerGateway(session)
        self.tenancy = TenancyContext(session)
        self.remainder_policy = RemainderPolicy(remainder_policy or settings.prorate_remainder_policy)

    # --- reads -----------------------------------------------------------

    def get_declarations_by_community(
        self,
        principal: Principal,
        kind: DeclarationKind,
        community_id: int,
        period: Optional[str] = None,
    ) -> List[DeclarationSummary]:
        kind = DeclarationKind(kind)
        self._require_view(principal, community_id)
        self._get_community(community_id)

        filters = {"community_id": community_id, "kind": kind.value}
        if period is not None:
            filters["period"] = normalize_period(period)
        declarations = self.gateway.find_many(Declaration, Declaration.period.desc(), **filters)
        return [_summarize(declaration) for declaration in declarations]

    def get_declaration_by_id(
        self,
        principal: Principal,
        declaration_id: int,
        kind: Optional[DeclarationKind] = None,
    ) -> Declaration:
        declaration = self._get_declaration(declaration_id, kind)
        self._require_view(principal, declaration.community_id)
        return declaration

    def get_unit_obligations(self, principal: Principal, unit_id: int) -> List[UnitObligation]:
        community_id = self.tenancy.community_of_unit(unit_id)
        allowed = can_access(principal, Permissions.VIEW_OWN_EXPENSES, unit_id) or (
            can_access(principal, Permissions.MANAGE_COMMUNITY_EXPENSES, community_id)
            and self._in_owning_organization(principal, community_id)
        )
        if not allowed:
            raise ForbiddenError()
        if community_id is None:
            raise NotFoundError(f"Unit {unit_id} not found")
        return (
            self.session.query(UnitObligation)
            .filter(UnitObligation.unit_id == unit_id)
            .order_by(UnitObligation.due_date.desc(), UnitObligation.id.desc())
            .all()
        )

    # --- writes ----------------------------------------------------------

    def declare(
        self,
        principal: Principal,
        kind: DeclarationKind,
        community_id: int,
        period: str,
        due_date: date,
        items: Sequence[DeclarationItemInput],
        method: ProrateMethod,
    ) -> Declaration:
        kind = DeclarationKind(kind)
        method = ProrateMethod(method)
        require_access(principal, Permissions.MANAGE_COMMUNITY_EXPENSES, community_id)
        self._get_community(community_id)
        self._require_owning_organization(principal, community_id)

        period = normalize_period(period)
        items = self._validate_items(community_id, kind, items)
        total_amount = total_of(item.amount for item in items)

        units = self.gateway.find_many(Unit, Unit.id.asc(), community_id=community_id, is_active=True)
        if not units:
            raise InvalidStateError(
                "No active units found in the community to prorate. Add units to the community first."
            )
        shares = recompute(method, total_amount, [self._weight(unit) for unit in units], self.remainder_policy)

        concept = _obligation_concept(kind, period)
        description = _obligation_description(items)

        def _write(gateway: LedgerGateway) -> Declaration:
            declaration = Declaration(
                community_id=community_id,
                kind=kind.value,
                period=period,
                total_amount=total_amount,
                due_date=due_date,
                prorate_method=method.value,
                created_by_user_id=principal.user_id,
            )
            try:
                gateway.create(declaration)
            except IntegrityError as exc:
                if not _is_period_collision(exc):
                    raise
                raise ConflictError(
                    f"A {kind.value.lower()} declaration for community {community_id} "
                    f"and period {period} already exists"
                ) from exc

            gateway.create_many(self._build_items(declaration.id, items))
            gateway.create_many(
                self._build_obligations(declaration.id, shares, concept, description, due_date)
            )
            audit_log(
                gateway.session,
                principal,
                f"declaration.{kind.value.lower()}.create",
                declaration,
                after={
                    "community_id": community_id,
                    "period": period,
                    "total_amount": total_amount,
                    "prorate_method": method.value,
                    "units": len(shares),
                },
            )
            return declaration

        declaration = self.gateway.run_in_transaction(_write)
        logger.info(
            "Created %s declaration %s for community %s period %s (%s units, total %s)",
            kind.value,
            declaration.id,
            community_id,
            period,
            len(shares),
            total_amount,
        )
        return declaration

    def update_declaration(
        self,
        principal: Principal,
        declaration_id: int,
        patch: DeclarationPatch,
        kind: Optional[DeclarationKind] = None,
    ) -> Declaration:
        """
        Apply a partial update. Replacing items recomputes the total only;
        existing obligations keep the amounts they were created with until
        ``recompute_obligations`` is called.
        """
        declaration = self._get_declaration(declaration_id, kind)
        community_id = declaration.community_id
        kind_label = declaration.kind.lower()
        self._require_manage(principal, community_id)

        values: dict = {}
        if patch.period is not None:
            values["period"] = normalize_period(patch.period)
        if patch.due_date is not None:
            values["due_date"] = patch.due_date
        if patch.prorate_method is not None:
            values["prorate_method"] = ProrateMethod(patch.prorate_method).value
        items = None
        if patch.items is not None:
            items = self._validate_items(community_id, DeclarationKind(declaration.kind), patch.items)
            values["total_amount"] = total_of(item.amount for item in items)
        before = {
            "period": declaration.period,
            "due_date": declaration.due_date,
            "prorate_method": declaration.prorate_method,
            "total_amount": declaration.total_amount,
        }

        def _write(gateway: LedgerGateway) -> Declaration:
            if items is not None:
                gateway.delete_many(DeclarationItem, declaration_id=declaration.id)
                gateway.session.expire(declaration, ["items"])
                gateway.create_many(self._build_items(declaration.id, items))
            # A failed flush leaves the instance unreadable, so errors only use locals.
            try:
                gateway.update(declaration, **values)
            except IntegrityError as exc:
                if not _is_period_collision(exc):
                    raise
                raise ConflictError(
                    f"A {kind_label} declaration for community {community_id} "
                    f"and period {values.get('period')} already exists"
                ) from exc
            audit_log(
                gateway.session,
                principal,
                f"declaration.{kind_label}.update",
                declaration,
                before=before,
                after=values,
            )
            return declaration

        declaration = self.gateway.run_in_transaction(_write)
        logger.info("Updated declaration %s fields=%s", declaration_id, sorted(values))
        return declaration

    def delete_item(
        self,
        principal: Principal,
        declaration_id: int,
        item_id: int,
        kind: Optional[DeclarationKind] = None,
    ) -> Declaration:
        declaration = self._get_declaration(declaration_id, kind)
        self._require_manage(principal, declaration.community_id)
        item = self.gateway.find_unique(DeclarationItem, id=item_id, declaration_id=declaration.id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found in declaration {declaration_id}")

        def _write(gateway: LedgerGateway) -> Declaration:
            gateway.delete(item)
            gateway.session.expire(declaration, ["items"])
            remaining = gateway.find_many(DeclarationItem, declaration_id=declaration.id)
            gateway.update(declaration, total_amount=total_of(entry.amount for entry in remaining))
            audit_log(
                gateway.session,
                principal,
                f"declaration.{declaration.kind.lower()}.item.delete",
                item,
                after={"declaration_id": declaration.id, "total_amount": declaration.total_amount},
            )
            return declaration

        return self.gateway.run_in_transaction(_write)

    def recompute_obligations(
        self,
        principal: Principal,
        declaration_id: int,
        kind: Optional[DeclarationKind] = None,
    ) -> Declaration:
        """Re-prorate the current total over the units that hold obligations; only PENDING rows change."""
        declaration = self._get_declaration(declaration_id, kind)
        self._require_manage(principal, declaration.community_id)

        obligations = list(declaration.obligations)
        if not obligations:
            raise InvalidStateError(f"Declaration {declaration_id} has no obligations to recompute")
        shares = recompute(
            declaration.prorate_method,
            declaration.total_amount,
            [self._weight(obligation.unit) for obligation in obligations],
            self.remainder_policy,
        )
        amounts = {share.unit_id: share.amount for share in shares}

        def _write(gateway: LedgerGateway) -> Declaration:
            changed = 0
            for obligation in obligations:
                if obligation.status != ObligationStatus.PENDING.value:
                    continue
                new_amount = amounts[obligation.unit_id]
                if obligation.amount != new_amount:
                    gateway.update(obligation, amount=new_amount)
                    changed += 1
            audit_log(
                gateway.session,
                principal,
                f"declaration.{declaration.kind.lower()}.recompute",
                declaration,
                after={"total_amount": declaration.total_amount, "changed": changed},
            )
            return declaration

        return self.gateway.run_in_transaction(_write)

    # --- helpers ---------------------------------------------------------

    def _in_owning_organization(self, principal: Principal, community_id: Optional[int]) -> bool:
        if is_super_admin(principal):
            return True
        organization_id = self.tenancy.organization_of_community(community_id)
        return self.tenancy.is_organization_member(principal, organization_id)

    def _require_owning_organization(self, principal: Principal, community_id: int) -> None:
        if not self._in_owning_organization(principal, community_id):
            raise ForbiddenError()

    def _require_manage(self, principal: Principal, community_id: int) -> None:
        require_access(principal, Permissions.MANAGE_COMMUNITY_EXPENSES, community_id)
        self._require_owning_organization(principal, community_id)

    def _require_view(self, principal: Principal, community_id: int) -> None:
        if not can_access_any(principal, VIEW_PERMISSIONS, community_id):
            raise ForbiddenError()
        # Residents reach a community through a confirmed unit; staff through its organization.
        if not (
            self.tenancy.has_confirmed_unit_in(principal, community_id)
            or self._in_owning_organization(principal, community_id)
        ):
            raise ForbiddenError()

    def _get_community(self, community_id: int) -> Community:
        community = self.gateway.find_unique(Community, id=community_id)
        if community is None:
            raise NotFoundError(f"Community {community_id} not found")
        return community

    def _get_declaration(self, declaration_id: int, kind: Optional[DeclarationKind]) -> Declaration:
        declaration = self.gateway.find_unique(Declaration, id=declaration_id)
        if declaration is None or (kind is not None and declaration.kind != DeclarationKind(kind).value):
            raise NotFoundError(f"Declaration {declaration_id} not found")
        return declaration

    def _validate_items(
        self,
        community_id: int,
        kind: DeclarationKind,
        items: Sequence[DeclarationItemInput],
    ) -> List[DeclarationItemInput]:
        items = [replace(item, amount=round_money(item.amount)) for item in items or []]
        if not items:
            raise InvalidInputError("A declaration needs at least one item")
        if any(item.amount <= 0 for item in items):
            raise InvalidInputError("Item amounts must be greater than zero")
        category_ids = {item.category_id for item in items if item.category_id is not None}
        if category_ids:
            found = {
                row[0]
                for row in self.session.query(ExpenseCategory.id)
                .filter(
                    ExpenseCategory.id.in_(category_ids),
                    ExpenseCategory.community_id == community_id,
                    ExpenseCategory.kind == kind.value,
                )
                .all()
            }
            missing = sorted(category_ids - found)
            if missing:
                raise NotFoundError(f"Categories {missing} not found in community {community_id}")
        return items

    @staticmethod
    def _weight(unit: Unit) -> UnitWeight:
        coefficient = unit.coefficient if unit.coefficient is not None else Decimal(DEFAULT_UNIT_COEFFICIENT)
        return UnitWeight(unit_id=unit.id, coefficient=coefficient)

    @staticmethod
    def _build_items(declaration_id: int, items: Iterable[DeclarationItemInput]) -> List[DeclarationItem]:
        return [
            DeclarationItem(
                declaration_id=declaration_id,
                name=item.name,
                amount=item.amount,
                description=item.description,
                category_id=item.category_id,
            )
            for item in items
        ]

    @staticmethod
    def _build_obligations(
        declaration_id: int,
        shares: Iterable[ProratedShare],
        concept: str,
        description: str,
        due_date: date,
    ) -> List[UnitObligation]:
        return [
            UnitObligation(
                declaration_id=declaration_id,
                unit_id=share.unit_id,
                amount=share.amount,
                concept=concept,
                description=description,
                due_date=due_date,
                status=ObligationStatus.PENDING.value,
            )
            for share in shares
        ]
