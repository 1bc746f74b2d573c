"""
ImageStudio API - AI image generation and editing
FastAPI Backend Entry Point
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from imagestudio import __version__
from imagestudio.api import images, jobs
from imagestudio.core.config import Settings, credential_problem, get_settings
from imagestudio.core.errors import (
    ConfigurationError,
    ImageStudioError,
    InternalError,
    RemoteServiceError,
    ValidationError,
)
from imagestudio.core.logging_config import configure_logging
from imagestudio.services.image_provider import ImageProvider, get_image_provider
from imagestudio.services.image_store import ImageStore
from imagestudio.services.staging import UploadStager
from imagestudio.workers.base import RetryPolicy
from imagestudio.workers.queue import JobQueue
from imagestudio.workers.repository import JobRepository, build_job_repository

logger = logging.getLogger(__name__)


def _log_unhandled_async_error(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Keep the server alive when a task fails without anyone awaiting it."""
    exc = context.get("exception")
    logger.error(f"UNHANDLED ASYNC ERROR: {context.get('message', 'unknown')}", exc_info=exc)


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[ImageProvider] = None,
    repository: Optional[JobRepository] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Defaults to the environment-loaded settings
        provider: Remote image service; built from settings when omitted
        repository: Job table; built from settings when omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        configure_logging(settings.LOG_LEVEL)
        logger.info(f"Starting {settings.APP_NAME}...")

        loop = asyncio.get_running_loop()
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(_log_unhandled_async_error)

        Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)

        image_provider = provider or get_image_provider(settings)
        job_repository = repository or build_job_repository(settings)
        image_store = ImageStore()
        job_queue = JobQueue(
            repository=job_repository,
            provider=image_provider,
            image_store=image_store,
            retry_policy=RetryPolicy(
                max_attempts=settings.JOB_MAX_ATTEMPTS,
                base_delay=settings.JOB_RETRY_BASE_DELAY,
            ),
            concurrency=settings.JOB_WORKER_CONCURRENCY,
            retention_seconds=settings.JOB_RETENTION_SECONDS,
            sweep_interval=settings.JOB_SWEEP_INTERVAL_SECONDS,
        )

        app.state.settings = settings
        app.state.provider = image_provider
        app.state.image_store = image_store
        app.state.stager = UploadStager(
            upload_dir=settings.UPLOAD_DIR,
            max_bytes=settings.MAX_UPLOAD_BYTES,
            max_dimension=settings.NORMALIZED_MAX_DIMENSION,
        )
        app.state.job_queue = job_queue

        await job_queue.start()

        # Test the image service connection at startup
        problem = credential_problem(settings)
        if problem:
            logger.warning(f"Server starting with invalid image service configuration: {problem}")
        elif await image_provider.check_connection():
            logger.info(f"Image service connection verified ({image_provider.name})")
        else:
            logger.warning("Image service connection test failed. Image operations will likely fail.")

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.APP_NAME}...")
        await job_queue.stop()
        await job_repository.close()
        if provider is None:
            await image_provider.aclose()
        loop.set_exception_handler(previous_handler)

    app = FastAPI(
        title=settings.APP_NAME,
        description="AI image generation, editing and combining with asynchronous edit jobs",
        version=__version__,
        debug=settings.DEBUG,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_api_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info(f"{request.method} {request.url.path} {response.status_code} in {duration_ms:.0f}ms")
        return response

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Invalid request parameters", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(ImageStudioError)
    async def app_error_handler(request: Request, exc: ImageStudioError):
        status_code = exc.status_code if 400 <= (exc.status_code or 0) < 600 else 500
        content = {"message": exc.message}

        if isinstance(exc, ValidationError):
            if exc.errors:
                content["errors"] = exc.errors
        elif isinstance(exc, ConfigurationError):
            logger.error(f"ERROR: {exc.message}")
            content["api_configured"] = False
        elif isinstance(exc, RemoteServiceError):
            logger.error(f"Image service error on {request.url.path}: {exc.message}")
            content = {
                "message": f"Image service error: {exc.message}",
                "error": exc.payload if exc.payload is not None else exc.message,
            }
        return JSONResponse(status_code=status_code, content=jsonable_encoder(content))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": InternalError().message},
        )

    # Include routers
    app.include_router(images.router, prefix="/api", tags=["Images"])
    app.include_router(jobs.router, prefix="/api/jobs", tags=["Jobs"])

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Health check endpoint for monitoring.
        Returns detailed status of the image service and job queue.
        """
        problem = credential_problem(settings)
        health = {
            "status": "healthy",
            "version": __version__,
            "environment": {
                "provider": settings.IMAGE_PROVIDER,
                "job_store": settings.JOB_STORE,
            },
            "services": {
                "image_service": "ok" if problem is None else f"error: {problem}",
            },
        }
        if problem:
            health["status"] = "degraded"

        try:
            job_queue: JobQueue = request.app.state.job_queue
            health["services"]["job_queue"] = "ok" if job_queue.running else "stopped"
            if await job_queue.repository.ping():
                health["services"]["job_store"] = "ok"
                health["jobs"] = await job_queue.counts()
            else:
                health["services"]["job_store"] = "unreachable"
                health["status"] = "degraded"
            if not job_queue.running:
                health["status"] = "degraded"
        except Exception as e:
            health["services"]["job_queue"] = f"error: {str(e)}"
            health["status"] = "degraded"

        return health

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {
            "message": f"{settings.APP_NAME} - AI image generation",
            "docs": "/docs",
            "health": "/health",
            "upload_limits": {
                "max_bytes": settings.MAX_UPLOAD_BYTES,
                "warn_bytes": settings.CLIENT_WARN_UPLOAD_BYTES,
            },
        }

    return app


app = create_app()
