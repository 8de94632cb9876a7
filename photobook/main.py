"""FastAPI application entry point.

This module initializes the FastAPI application with CORS,
middleware, route registration and the photo pipeline lifecycle.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from photobook.api.endpoints import blobs, health, photos
from photobook.core.config import Settings, get_settings
from photobook.core.logging import setup_logging
from photobook.middleware.error_handler import ErrorHandlerMiddleware, setup_exception_handlers
from photobook.services.pipeline import PhotoPipeline

logger = logging.getLogger(__name__)


def create_application(
    settings: Optional[Settings] = None,
    pipeline: Optional[PhotoPipeline] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use instead of the environment.
        pipeline: Pre-built pipeline, e.g. one pointed at a test database.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start the pipeline on startup and drain its workers on shutdown."""
        setup_logging(settings)
        logger.info("Starting Photobook API...")
        logger.info(f"Environment: {settings.APP_ENV}")
        logger.info(f"Debug mode: {settings.DEBUG}")

        app.state.pipeline = pipeline or PhotoPipeline.from_settings(settings)
        app.state.pipeline.start()

        yield

        logger.info("Shutting down Photobook API...")
        app.state.pipeline.shutdown(wait=True)

    app = FastAPI(
        title="Photobook API",
        description=(
            "Photo ingestion service. Accepts images and zip archives, "
            "stores originals and derives thumbnails and camera metadata "
            "in the background."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handling middleware
    app.add_middleware(ErrorHandlerMiddleware)

    # Setup exception handlers
    setup_exception_handlers(app)

    # Register routers
    app.include_router(health.router)
    app.include_router(blobs.router)
    app.include_router(photos.router, prefix=settings.API_PREFIX)

    return app


# Create the application instance
app = create_application()
