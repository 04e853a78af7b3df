from fastapi import Depends
from sqlalchemy.orm import Session

from ..auth.jwt import get_db, get_principal
from ..services.declarations import DeclarationService

__all__ = ["get_db", "get_principal", "get_declaration_service"]


def get_declaration_service(db: Session = Depends(get_db)) -> DeclarationService:
    return DeclarationService(db)
