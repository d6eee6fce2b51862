"""
Main FastAPI application.

Hotspot voucher sales and mobile-money settlement API with:
- CORS configuration
- Error handling in a uniform response envelope
- Request ID tracking
- Structured logging
- Prometheus metrics
- Settlement worker lifecycle
"""
import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mowave import __version__
from mowave.config import Settings, get_settings
from mowave.core.container import Services, build_services
from mowave.core.exceptions import MoWaveError
from mowave.monitoring.logging import setup_logging

from .admin import admin_router
from .routes import auth_router, monitoring_router, payment_router, voucher_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Builds the services on first start, then runs the settlement worker
    and the SMS log pruner for the lifetime of the app.
    """
    settings: Settings = app.state.settings
    logger.info("application_startup", app_name=settings.app_name, env=settings.app_env)

    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
    services: Services = app.state.services
    services.worker.start()
    log_pruner = asyncio.create_task(
        services.notifier.prune_logs_periodically(
            days_old=settings.sms_log_retention_days,
            interval_seconds=settings.sms_log_prune_interval_seconds,
        )
    )

    yield

    logger.info("application_shutdown")
    log_pruner.cancel()
    await asyncio.gather(log_pruner, return_exceptions=True)
    await services.worker.stop()
    await services.notifier.drain()


def _error_response(status_code: int, message: str, error: str, **extra: Any) -> JSONResponse:
    content = {"success": False, "message": message, "error": error}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def create_app(
    services: Optional[Services] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Prebuilt services; built in the lifespan when omitted
        settings: Settings (defaults to the services' or environment settings)
    """
    settings = settings or (services.settings if services else get_settings())
    setup_logging(settings)

    app = FastAPI(
        title="MoWave Hotspot Voucher API",
        description=(
            "Hotspot voucher sales with simulated MTN MoMo and Airtel Money settlement. "
            "Features: voucher lifecycle, asynchronous settlement, SMS notifications, "
            "admin reporting, and monitoring."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.services = services

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """Add a request ID and timing to every request."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(MoWaveError)
    async def mowave_exception_handler(request: Request, exc: MoWaveError) -> JSONResponse:
        """Render domain errors in the response envelope."""
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            "request_rejected",
            error_code=exc.error_code,
            reason=exc.message,
            path=request.url.path,
            **exc.context,
        )
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Render request validation failures as 400s."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg", ""))
        logger.warning("request_validation_failed", path=request.url.path, message=message)
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            message or "Invalid request",
            "VALIDATION_ERROR",
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if isinstance(exc.detail, dict):
            return _error_response(
                exc.status_code, "Request failed", f"HTTP_{exc.status_code}", details=exc.detail
            )
        return _error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
            "INTERNAL_ERROR",
        )

    # Include routers
    app.include_router(voucher_router)
    app.include_router(payment_router)
    app.include_router(auth_router)
    app.include_router(admin_router)
    app.include_router(monitoring_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": __version__,
            "status": "operational",
            "environment": settings.app_env,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "mowave.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
