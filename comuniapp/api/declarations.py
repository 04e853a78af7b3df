from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..models.models import DeclarationKind
from ..schemas.schemas import (
    DeclarationCreate,
    DeclarationRead,
    DeclarationSummaryRead,
    DeclarationUpdate,
    UnitObligationRead,
)
from ..services.declarations import DeclarationItemInput, DeclarationPatch, DeclarationService
from ..services.principals import Principal
from .dependencies import get_declaration_service, get_principal


def _item_inputs(items) -> List[DeclarationItemInput]:
    return [
        DeclarationItemInput(
            name=item.name,
            amount=item.amount,
            description=item.description,
            category_id=item.category_id,
        )
        for item in items
    ]


def _build_router(kind: DeclarationKind, prefix: str, tag: str) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[tag])

    @router.post("/", response_model=DeclarationRead)
    def create_declaration(
        payload: DeclarationCreate,
        principal: Principal = Depends(get_principal),
        service: DeclarationService = Depends(get_declaration_service),
    ):
        declaration = service.declare(
            principal,
            kind,
            community_id=payload.community_id,
            period=payload.period,
            due_date=payload.due_date,
            items=_item_inputs(payload.items),
            method=payload.prorate_method,
        )
        return DeclarationRead.model_validate(declaration)

    @router.get("/community/{community_id}", response_model=List[DeclarationSummaryRead])
    def list_declarations(
        community_id: int,
        period: Optional[str] = Query(default=None),
        principal: Principal = Depends(get_principal),
        service: DeclarationService = Depends(get_declaration_service),
    ):
        summaries = service.get_declarations_by_community(principal, kind, community_id, period=period)
        return [DeclarationSummaryRead.model_validate(summary) for summary in summaries]

    @router.get("/{declaration_id}", response_model=DeclarationRead)
    def get_declaration(
        declaration_id: int,
        principal: Principal = Depends(get_principal),
        service: DeclarationService = Depends(get_declaration_service),
    ):
        declaration = service.get_declaration_by_id(principal, declaration_id, kind=kind)
        return DeclarationRead.model_validate(declaration)

    @router.patch("/{declaration_id}", response_model=DeclarationRead)
    def update_declaration(
        declaration_id: int,
        payload: DeclarationUpdate,
        principal: Principal = Depends(get_principal),
        service: DeclarationService = Depends(get_declaration_service),
    ):
        patch = DeclarationPatch(
            period=payload.period,
            due_date=payload.due_date,
            prorate_method=payload.prorate_method,
            items=_item_inputs(payload.items) if payload.items is not None else None,
        )
        declaration = service.update_declaration(principal, declaration_id, patch, kind=kind)
        return DeclarationRead.model_validate(declaration)

    @router.delete("/{declaration_id}/items/{item_id}", response_model=DeclarationRead)
    def delete_declaration_item(
        declaration_id: int,
        item_id: int,
        principal: Principal = Depends(get_principal),
        service: DeclarationService = Depends(get_declaration_service),
    ):
        declaration = service.delete_item(principal, declaration_id, item_id, kind=kind)
        return DeclarationRead.model_validate(declaration)

    @router.post("/{declaration_id}/recompute", response_model=DeclarationRead)
    def recompute_declaration(
        declaration_id: int,
        principal: Principal = Depends(get_principal),
        service: DeclarationService = Depends(get_declaration_service),
    ):
        declaration = service.recompute_obligations(principal, declaration_id, kind=kind)
        return DeclarationRead.model_validate(declaration)

    return router


common_expenses_router = _build_router(DeclarationKind.EXPENSE, "/common-expenses", "common-expenses")
community_income_router = _build_router(DeclarationKind.INCOME, "/community-income", "community-income")

obligations_router = APIRouter(prefix="/units", tags=["obligations"])


@obligations_router.get("/{unit_id}/obligations", response_model=List[UnitObligationRead])
def list_unit_obligations(
    unit_id: int,
    principal: Principal = Depends(get_principal),
    service: DeclarationService = Depends(get_declaration_service),
):
    obligations = service.get_unit_obligations(principal, unit_id)
    return [UnitObligationRead.model_validate(obligation) for obligation in obligations]
