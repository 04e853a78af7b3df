import logging

from fastapi import FastAPI, Request

from .api import declarations, roles
from .config import Base, SessionLocal, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import REQUEST_ID_HEADER, assign_request_id, reset_request_id
# Registers every table with Base metadata before create_all runs.
from .models import models as _all_models  # noqa: F401
from .services.roles import ensure_default_roles

configure_logging(settings.log_level, settings.log_json)

logger = logging.getLogger(__name__)

app = FastAPI(title="ComuniApp - Community access and prorating core")

register_exception_handlers(app)


@app.on_event("startup")
def startup() -> None:
    # In dev we make sure tables exist. Migrations should be used for real schema evolution.
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        ensure_default_roles(session)
    logger.info("Default roles seeded")


app.include_router(declarations.common_expenses_router)
app.include_router(declarations.community_income_router)
app.include_router(declarations.obligations_router)
app.include_router(roles.router)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = assign_request_id(request)
    try:
        response = await call_next(request)
    finally:
        reset_request_id()
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
