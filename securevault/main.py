"""
FastAPI Application Entry Point
Main application with all routes and middleware
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from securevault.api import v1
from securevault.core.config import settings
from securevault.core.exceptions import AppException, StorageException, validation_error_details
from securevault.core.logging import get_logger, setup_logging
from securevault.db.session import check_connection, close_db, init_db
from securevault.models.common import ErrorDetail, ErrorResponse, HealthResponse
from securevault.monitoring import MetricsMiddleware, get_metrics
from securevault.storage.client import get_minio_client, init_minio

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan management"""
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")

    # Startup
    try:
        await init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")

    try:
        await init_minio()
    except AppException as e:
        # Uploads and downloads fail with storage_error until MinIO is reachable
        logger.error(f"Failed to initialize object storage: {e.message}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await close_db()
    logger.info("Shutdown complete")


def _error_body(code: str, message: str, details=None, timestamp=None) -> dict:
    error = ErrorDetail(code=code, message=message, details=details or {}, timestamp=timestamp)
    return ErrorResponse(error=error).model_dump()


def create_app() -> FastAPI:
    """Build the application with middleware, handlers and routes"""
    app = FastAPI(
        title=settings.APP_NAME,
        description="Secure file storage with bucket-level access control and audit logging",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # GZip Middleware
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)

    # Exception Handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Handle application-specific exceptions"""
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, exc.details, exc.timestamp),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions raised by routing"""
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail).lower().replace(" ", "_"), str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle request validation errors"""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(
                "validation_error",
                "Invalid request parameters",
                validation_error_details(exc.errors()),
            ),
        )

    @app.exception_handler(IntegrityError)
    async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        """Constraint violations that escaped the services"""
        logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=_error_body("conflict", "Resource conflicts with existing data"),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Anything else is an internal error; details stay in the log"""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("internal_error", "Internal server error"),
        )

    # Include routers
    app.include_router(v1.router, prefix="/api")

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Health check endpoint"""
        services = {}

        services["postgres"] = "healthy" if await check_connection() else "unhealthy"

        try:
            get_minio_client()
            services["minio"] = "healthy"
        except StorageException:
            services["minio"] = "unhealthy"

        healthy = all(value == "healthy" for value in services.values())
        return HealthResponse(
            status="healthy" if healthy else "degraded",
            version=settings.APP_VERSION,
            services=services,
        )

    @app.get("/metrics", tags=["Health"], include_in_schema=False)
    async def metrics():
        """Prometheus metrics"""
        return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "securevault.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info",
    )
