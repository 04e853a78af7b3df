import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .request_context import get_request_id

logger = logging.getLogger(__name__)

FORBIDDEN_MESSAGE = "Operation not permitted"


class DomainError(Exception):
    """Base class for every error the core raises towards its callers."""

    kind = "ERROR"
    status_code = 400

    def __init__(self, detail: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.context = context or {}


class NotFoundError(DomainError):
    kind = "NOT_FOUND"
    status_code = 404


class ConflictError(DomainError):
    kind = "CONFLICT"
    status_code = 409


class InvalidStateError(ConflictError):
    """Conflict-class error raised when an aggregate cannot accept the operation."""

    kind = "INVALID_STATE"


class ForbiddenError(DomainError):
    kind = "FORBIDDEN"
    status_code = 403

    def __init__(self, detail: str = FORBIDDEN_MESSAGE, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(detail, context=context)


class InvalidInputError(DomainError):
    kind = "INVALID_INPUT"
    status_code = 422


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:  # type: ignore[override]
        logger.info("Domain error %s on %s: %s", exc.kind, request.url.path, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "kind": exc.kind,
                "path": str(request.url),
                "request_id": get_request_id(request),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation failed.",
                "kind": InvalidInputError.kind,
                "errors": jsonable_encoder(exc.errors()),
                "path": str(request.url),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # type: ignore[override]
        payload: Dict[str, Any] = {"detail": exc.detail or "HTTP error.", "path": str(request.url)}
        if exc.headers:
            payload["headers"] = exc.headers
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error.",
                "path": str(request.url),
                "request_id": get_request_id(request),
            },
        )
