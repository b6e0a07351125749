# funnel/main.py
from __future__ import annotations

import time
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from funnel import __version__
from funnel.core.config import settings
from funnel.core.exceptions import BaseAPIException
from funnel.core.logging import configure_structlog, get_structlog_logger, set_request_id
from funnel.deps import close_lead_transmitter
from funnel.middleware.logging import LoggingMiddleware
from funnel.middleware.request_id import RequestIdMiddleware
from funnel.routes import funnel_router, health_router, ingest_router
from funnel.services.redis import close_redis_pool, init_redis_pool


def _init_sentry() -> None:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"funnel-leads@{__version__}",
        integrations=[FastApiIntegration(), StarletteIntegration()],
        traces_sample_rate=1.0 if settings.is_development else 0.1,
        # Submissions carry emails and phone numbers
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the session backend on startup; release it and the transmitter on shutdown."""
    log = get_structlog_logger(__name__).bind(environment=settings.environment)
    log.info(
        "application.starting",
        session_backend=settings.session_backend,
        sheets_backend=settings.sheets_backend,
        ingest_endpoint=settings.ingest_endpoint_url or None,
    )

    if settings.session_backend == "redis":
        try:
            await init_redis_pool()
        except BaseAPIException as e:
            log.error("session_backend.unavailable", error=e.message)
            if settings.is_production:
                raise

    if settings.sentry_dsn:
        _init_sentry()
        log.info("sentry.initialized")

    yield

    await close_lead_transmitter()
    if settings.session_backend == "redis":
        await close_redis_pool()
    log.info("application.stopped")


configure_structlog()
logger = get_structlog_logger(__name__)

app = FastAPI(
    title="Funnel Leads",
    version=__version__,
    description="Landing-page lead capture and spreadsheet ingestion",
    docs_url="/docs" if settings.is_development else None,
    redoc_url=None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

# Starlette runs the last-added middleware first, so request ids wrap logging.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins(),
    allow_credentials=True,
    allow_methods=settings.methods(),
    allow_headers=settings.allowed_headers.split(","),
    expose_headers=["X-Request-ID", "X-Response-Time"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIdMiddleware)


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    logger.warning(
        "api.exception",
        status_code=exc.status_code,
        code=exc.code,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "loc": list(error.get("loc", [])),
            "msg": error.get("msg", "Validation error"),
            "type": error.get("type", "value_error"),
        }
        for error in exc.errors()
    ]
    logger.warning("request.invalid", path=request.url.path, errors=errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "validation_error",
            "message": "Request validation failed",
            "details": {"errors": errors},
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Last resort: log with an error id the caller can quote."""
    error_id = f"err_{int(time.time())}_{hash(str(exc)) % 10000:04d}"
    set_request_id(error_id)

    logger.error(
        "unhandled.exception",
        error_id=error_id,
        error_type=type(exc).__name__,
        error=str(exc),
        path=request.url.path,
        method=request.method,
    )

    message = f"Internal server error: {exc}" if settings.is_development else "Internal server error"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"code": "internal_error", "message": message, "details": {"error_id": error_id}},
        headers={"X-Error-ID": error_id},
    )


app.include_router(health_router, prefix=settings.api_prefix, tags=["health"])
app.include_router(ingest_router, prefix=settings.api_prefix, tags=["ingest"])
app.include_router(funnel_router)

if not settings.is_testing:
    Instrumentator(excluded_handlers=["/metrics", f"{settings.api_prefix}/health.*"]).instrument(app).expose(
        app, endpoint="/metrics", include_in_schema=False
    )
