"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from snapmeal_api.api.dependencies import ServiceContainer, build_container
from snapmeal_api.api.routes import analysis, images, providers
from snapmeal_api.core.config import RepositoryBackend, get_settings
from snapmeal_api.core.exceptions import APIError, ValidationError
from snapmeal_api.core.scheduler import start_scheduler, stop_scheduler
from snapmeal_api.db.mongo import MongoDB
from snapmeal_api.services.image_store import GridFSBlobBackend

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} v{settings.api_version}")

    owns_container = getattr(app.state, "container", None) is None
    if owns_container:
        if settings.repository_backend == RepositoryBackend.MONGODB:
            logger.info(f"Connecting to MongoDB at {settings.mongo_uri[:20]}...")
            MongoDB.connect(settings.mongo_uri, settings.db_name)
        app.state.container = build_container(settings)

    container: ServiceContainer = app.state.container
    await container.uow.ensure_indexes()
    if isinstance(container.backend, GridFSBlobBackend):
        await container.backend.ensure_indexes()
    await container.registry.ensure_default_configs()
    await container.registry.refresh()

    start_scheduler(container.store, container.cache, settings)

    yield

    # Shutdown
    logger.info("Shutting down...")
    stop_scheduler()
    if owns_container:
        await container.aclose()
        MongoDB.close()
        logger.info("MongoDB connection closed")


def _error_body(exc: APIError) -> dict:
    return {
        "error": exc.message,
        "code": exc.code,
        "retryable": exc.retryable,
        "details": jsonable_encoder(exc.details),
    }


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Pre-built services (tests); built during startup otherwise

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        description="Food photo ingestion with cached AI nutrition analysis",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    if container is not None:
        app.state.container = container

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError):
        """Handle custom API errors."""
        if exc.status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Render malformed requests in the same shape as other errors."""
        error = ValidationError("Invalid request", details=exc.errors())
        return JSONResponse(status_code=error.status_code, content=_error_body(error))

    # Health check endpoint
    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        container: ServiceContainer = request.app.state.container
        mongodb = await MongoDB.ping() if MongoDB.is_connected() else None
        storage_ok = await container.store.health_check()
        provider = await container.orchestrator.provider_health()

        healthy = storage_ok and mongodb is not False
        return {
            "status": "healthy" if healthy else "degraded",
            "service": settings.app_name,
            "version": settings.api_version,
            "mongodb": mongodb,
            "storage": {"backend": container.backend.name, "healthy": storage_ok},
            "provider": provider,
            "cache": container.cache.stats().as_dict(),
        }

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": settings.app_name,
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    # Include routers
    app.include_router(analysis.router, prefix="/analysis", tags=["Analysis"])
    app.include_router(images.router, prefix="/images", tags=["Images"])
    app.include_router(providers.router, prefix="/providers", tags=["Providers"])

    return app


# Create app instance
app = create_app()
