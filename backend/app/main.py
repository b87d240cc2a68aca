# backend/app/main.py
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .logging_config import configure_logging
from .domain.errors import BookingConflict, EntitlementDenied, TokenInvalid, ValidationError

from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router
from .routers.properties import router as properties_router
from .routers.reservations import router as reservations_router
from .routers.locked_dates import router as locked_dates_router
from .routers.calendar import router as calendar_router
from .routers.ical import router as ical_router
from .routers.tokens import router as tokens_router
from .routers.cash import router as cash_router
from .routers.reports import router as reports_router
from .routers.public import router as public_router

API_PREFIX = "/api"


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"error": "validation_error", "detail": str(exc)})

    @app.exception_handler(BookingConflict)
    async def _conflict(request: Request, exc: BookingConflict):
        return JSONResponse(status_code=409, content=exc.as_dict())

    @app.exception_handler(EntitlementDenied)
    async def _denied(request: Request, exc: EntitlementDenied):
        return JSONResponse(status_code=403, content=exc.as_dict())

    @app.exception_handler(TokenInvalid)
    async def _token(request: Request, exc: TokenInvalid):
        # identical for malformed, unknown and revoked tokens
        return JSONResponse(status_code=404, content={"detail": "Not found"})


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="StaySync Availability Engine", version=settings.app_version)

    # Request-ID first (observability baseline)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    # Core
    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(properties_router, prefix=API_PREFIX)

    # Intervals
    app.include_router(reservations_router, prefix=API_PREFIX)
    app.include_router(locked_dates_router, prefix=API_PREFIX)
    app.include_router(calendar_router, prefix=API_PREFIX)

    # iCal import + token management
    app.include_router(ical_router, prefix=API_PREFIX)
    app.include_router(tokens_router, prefix=API_PREFIX)

    # Money
    app.include_router(cash_router, prefix=API_PREFIX)
    app.include_router(reports_router, prefix=API_PREFIX)

    # Token-addressed, unauthenticated
    app.include_router(public_router)

    return app


app = create_app()
