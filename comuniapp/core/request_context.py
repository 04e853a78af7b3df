import logging
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def assign_request_id(request: Request) -> str:
    request_id = request.headers.get(REQUEST_ID_HEADER) or request.headers.get(CORRELATION_ID_HEADER)
    if not request_id:
        request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    _request_id.set(request_id)
    return request_id


def get_request_id(request: Optional[Request] = None) -> Optional[str]:
    if request is not None:
        return getattr(request.state, "request_id", None)
    return _request_id.get()


def reset_request_id() -> None:
    _request_id.set(None)


class RequestIdFilter(logging.Filter):
    """Stamp the active request id onto every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        return True
