import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Dict, cast

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pythonjsonlogger.json import JsonFormatter
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from ticketing.core.database_manager import db_manager
from ticketing.core.errors import DomainError
from ticketing.core.settings import get_settings
from ticketing.middleware.monitoring import (
    MonitoringMiddleware,
    get_health_status,
    get_prometheus_metrics,
    metrics as prometheus_metrics,
)

from .api.api import api_router
from .api.openapi_tags import security_schemes, tags_metadata

settings = get_settings()

# Configure structured logging
log_handler = logging.StreamHandler()
formatter = JsonFormatter(
    "%(levelname)s %(asctime)s %(message)s %(name)s %(filename)s %(lineno)d",
    rename_fields={"levelname": "level", "asctime": "time", "name": "loggerName"},
)
log_handler.setFormatter(formatter)
logging.basicConfig(handlers=[log_handler], level=settings.monitoring.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Starting ticketing API", extra={"environment": settings.ENVIRONMENT})

    db_health = await db_manager.health_check()
    if db_health.get("status") == "healthy":
        logger.info("Database connection verified")
    else:
        logger.warning("Database health check failed", extra={"database": db_health})

    try:
        yield
    finally:
        await db_manager.close()
        logger.info("Database connections closed")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    REST API for an event ticketing platform: user accounts, event listings
    with ticket tiers, checkout through Stripe, bookings and refund requests.

    ## Conventions

    * Every response is wrapped as `{"status": "success", "data": {...}}`;
      failures carry `{"status": "fail" | "error", "message": "..."}`.
    * Request and response fields are camelCase.
    * List endpoints accept filters, `sort`, `fields`, `search`, `loc` and
      `paginate={"page": 1, "limit": 10}`.

    ## Authentication

    ```
    Authorization: Bearer <your_jwt_token>
    ```

    Get a token from `/api/v1/users/signin`.
    """,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url=f"{settings.API_V1_PREFIX}/docs",
    redoc_url=f"{settings.API_V1_PREFIX}/redoc",
    lifespan=lifespan,
)

app.add_middleware(MonitoringMiddleware)

if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "fail" if status_code < 500 else "error", "message": message},
    )


@app.exception_handler(DomainError)  # type: ignore[misc]
async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Domain error: %s",
        exc.message,
        extra={"code": exc.code.value, "status_code": exc.status_code, "path": request.url.path},
    )
    return error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)  # type: ignore[misc]
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = [
        f"{'.'.join(str(part) for part in error['loc'][1:]) or 'body'}: {error['msg']}"
        for error in exc.errors()
    ]
    return error_response(
        status.HTTP_400_BAD_REQUEST, f"Invalid input data. {'. '.join(problems)}"
    )


@app.exception_handler(IntegrityError)  # type: ignore[misc]
async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error: %s", exc.orig, extra={"path": request.url.path})
    text = str(exc.orig).lower()
    if "unique" in text or "duplicate" in text:
        return error_response(
            status.HTTP_400_BAD_REQUEST, "Duplicate field value. Please use another value."
        )
    return error_response(
        status.HTTP_400_BAD_REQUEST, "The request conflicts with existing data."
    )


@app.exception_handler(StarletteHTTPException)  # type: ignore[misc]
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail
    if exc.status_code == status.HTTP_404_NOT_FOUND and message == "Not Found":
        message = f"Can't find {request.url.path} on this server."
    return error_response(exc.status_code, str(message))


@app.exception_handler(Exception)  # type: ignore[misc]
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception occurred: %s", exc)
    prometheus_metrics.record_error(exc.__class__.__name__, request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Something went wrong.")


def custom_openapi() -> Dict[str, Any]:
    if app.openapi_schema:
        return cast(Dict[str, Any], app.openapi_schema)

    from fastapi.openapi.utils import get_openapi

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
        tags=tags_metadata,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = security_schemes

    for path_item in openapi_schema["paths"].values():
        for method_item in path_item.values():
            if isinstance(method_item, dict) and "tags" in method_item:
                if not any(
                    tag in ["Root", "Health", "Monitoring"]
                    for tag in method_item.get("tags", [])
                ):
                    method_item["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return cast(Dict[str, Any], app.openapi_schema)


app.openapi = custom_openapi  # type: ignore[method-assign]


@app.get("/", tags=["Root"], summary="API Welcome Message")  # type: ignore[misc]
async def root() -> dict[str, Any]:
    return {
        "message": f"Welcome to the {settings.PROJECT_NAME} API",
        "version": settings.VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
        "openapi": f"{settings.API_V1_PREFIX}/openapi.json",
        "status": "operational",
    }


@app.get("/health", tags=["Health"], summary="Health Check")  # type: ignore[misc]
async def health_check() -> dict[str, Any]:
    """Service status with a database round trip."""
    return await get_health_status()


@app.get("/metrics", tags=["Monitoring"], summary="Prometheus Metrics")  # type: ignore[misc]
async def metrics() -> Response:
    """
    Prometheus metrics endpoint for monitoring and alerting.

    Returns metrics in Prometheus exposition format.
    """
    if not settings.monitoring.ENABLE_PROMETHEUS:
        return error_response(status.HTTP_404_NOT_FOUND, "Metrics endpoint is disabled")

    metrics_data = await get_prometheus_metrics()
    return PlainTextResponse(
        content=metrics_data, media_type="text/plain; version=0.0.4; charset=utf-8"
    )
