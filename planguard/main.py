"""
FastAPI application factory.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from planguard.config import settings
from planguard.core.cache import cache_manager
from planguard.core.context import get_request_context
from planguard.core.database import db_manager
from planguard.core.error_tracking import error_tracker
from planguard.core.exceptions import PlanGuardError, TechnicalFailureError
from planguard.core.logging_config import get_logger, setup_logging
from planguard.core.metrics import app_info
from planguard.core.middleware import RequestContextMiddleware
from planguard.features.rbac.permissions import validate_permission_table

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Open the database pool and cache for the life of the process."""
    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    db_manager.init()
    await cache_manager.init()

    app_info.info({
        "version": settings.app_version,
        "environment": settings.environment,
        "default_plan": settings.default_plan_name,
    })

    logger.info(
        "application_ready",
        billing_enabled=settings.billing_enabled,
        cache_ready=cache_manager.is_ready,
    )

    yield

    logger.info("application_shutting_down")
    await db_manager.close()
    await cache_manager.close()


def public_validation_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the raw input values (may hold secrets)."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map domain errors to their JSON body.

    Denials and limit rejections are expected outcomes and log at info.
    Only TechnicalFailureError and unhandled exceptions reach Sentry.
    """

    @app.exception_handler(PlanGuardError)
    async def domain_error_handler(request: Request, exc: PlanGuardError) -> JSONResponse:
        technical = isinstance(exc, TechnicalFailureError)
        (logger.error if technical else logger.info)(
            "request_rejected",
            path=request.url.path,
            code=exc.code,
            status_code=exc.status_code,
            detail=exc.message,
            context=exc.details,
        )
        if technical:
            error_tracker.capture_exception(
                exc,
                context={"path": request.url.path, **get_request_context()},
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = public_validation_errors(exc)
        logger.warning("validation_error", path=request.url.path, errors=errors)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": errors, "code": "validation_error"},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        error_tracker.capture_exception(
            exc,
            context={"request_id": request_id, "path": request.url.path, "method": request.method},
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An internal error occurred." if settings.is_production else str(exc),
                "code": "internal_error",
                "request_id": request_id,
            },
        )


def create_application() -> FastAPI:
    """Application factory."""
    # An inconsistent permission table is a deployment error
    validate_permission_table()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Multi-tenant role permissions and subscription plan limits",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Last added = outermost
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    from planguard.api.health_router import router as health_router
    from planguard.api.metrics_router import router as metrics_router
    from planguard.api.v1.router import v1_router

    app.include_router(health_router)
    if settings.metrics_enabled:
        app.include_router(metrics_router)
    app.include_router(v1_router, prefix="/api")

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "default_plan": settings.default_plan_name,
            "billing_enabled": settings.billing_enabled,
        }

    logger.info("application_configured")
    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "planguard.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload and settings.is_development,
        log_level=settings.log_level.lower(),
        access_log=False,
    )
