from datetime import datetime, timedelta, timezone
from typing import Callable, Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ..config import SessionLocal, settings
from ..core.errors import ForbiddenError
from ..models.models import User
from ..services.access import can_access
from ..services.principals import Principal, build_principal, user_query
from ..services.roles import RoleCatalog
from .permissions import Permission

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def create_access_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes or settings.access_token_expire_minutes)
    to_encode = data.copy()
    to_encode.setdefault("type", "access")
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        user_id: Optional[str] = payload.get("sub")
        token_type = payload.get("type")
        if user_id is None or token_type not in (None, "access"):
            raise credentials_exception
        user_pk = int(user_id)
    except (JWTError, ValueError):
        raise credentials_exception

    user = user_query(db).filter(User.id == user_pk).first()
    if user is None or not user.is_active:
        raise credentials_exception
    return user


def get_principal(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Principal:
    return build_principal(user, RoleCatalog(db))


def require_permission(permission: Permission, scope_param: Optional[str] = None) -> Callable[..., Principal]:
    """Dependency factory: the scope id is read from the named path or query parameter."""

    def permission_checker(request: Request, principal: Principal = Depends(get_principal)) -> Principal:
        scope = None
        if scope_param:
            raw = request.path_params.get(scope_param, request.query_params.get(scope_param))
            try:
                scope = int(raw) if raw is not None else None
            except ValueError:
                scope = None
        if can_access(principal, permission, scope):
            return principal
        raise ForbiddenError()

    return permission_checker
