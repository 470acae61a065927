"""
MailPack API - Main FastAPI Application.

Serves scan submission, survey and status endpoints, and runs the
enrichment workers in the same process.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from mailpack import __version__
from mailpack.agents.mail_analyzer import GeminiMailAnalyzer, MailAnalyzer
from mailpack.config import DEFAULT_MODEL, EnrichmentSettings
from mailpack.db import DatabaseConnection, PackageStore
from mailpack.services import IngestionGateway, StatusProjector, SurveyGateway
from mailpack.storage import ScanUploader, create_uploader
from mailpack.utils.logging import setup_logging
from mailpack.worker import EnrichmentQueue, EnrichmentWorkerPool

# Load environment variables
load_dotenv()

# Configure logging early
setup_logging("mailpack-api")

logger = logging.getLogger(__name__)

# OpenAPI tag descriptions (shown in /docs and /openapi.json)
OPENAPI_TAGS = [
    {
        "name": "packages",
        "description": "Mail package scanning, survey and status endpoints",
    },
    {
        "name": "system",
        "description": "System health and information endpoints",
    },
]


def create_app(
    uploader: ScanUploader | None = None,
    analyzer: MailAnalyzer | None = None,
    settings: EnrichmentSettings | None = None,
) -> FastAPI:
    """
    Build the API application.

    Collaborators default to the environment-configured implementations;
    tests pass fakes instead.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        # Startup
        logger.info("Starting MailPack API (model: %s)", DEFAULT_MODEL)

        owns_database = not DatabaseConnection.is_initialized()
        DatabaseConnection.initialize()
        DatabaseConnection.create_schema()

        store = PackageStore()
        queue = EnrichmentQueue()
        pool = EnrichmentWorkerPool(
            queue,
            store,
            analyzer or GeminiMailAnalyzer(),
            settings or EnrichmentSettings.from_env(),
        )

        app.state.store = store
        app.state.queue = queue
        app.state.pool = pool
        app.state.ingestion = IngestionGateway(
            store, uploader or create_uploader(), queue
        )
        app.state.survey = SurveyGateway(store)
        app.state.status = StatusProjector(store)

        await pool.start()

        yield

        # Shutdown
        await pool.stop()
        if owns_database:
            DatabaseConnection.close()
        logger.info("MailPack API stopped")

    app = FastAPI(
        title="MailPack API",
        description=(
            "Documents physical mail: scan images and OCR text are submitted "
            "per package, enriched asynchronously by Gemini via Google ADK, "
            "and completed by a short user survey."
        ),
        version=__version__,
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )

    origins = [
        origin.strip()
        for origin in os.getenv("API_CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", tags=["system"], operation_id="getServiceInfo")
    async def root():
        """Return basic information about the API service."""
        return {
            "service": "MailPack API",
            "version": __version__,
            "status": "operational",
            "description": "Mail package scanning and enrichment",
        }

    @app.get("/health", tags=["system"], operation_id="healthCheck")
    async def health_check(request: Request):
        """Check service health and enrichment queue depth."""
        queue: EnrichmentQueue = request.app.state.queue
        return {
            "status": "healthy",
            "service": "mailpack-api",
            "workers_running": request.app.state.pool.running,
            "queue": {
                "pending": queue.pending_count,
                "in_flight": queue.in_flight_count,
                "closed": queue.closed,
            },
        }

    from mailpack.api.routes import packages

    app.include_router(packages.router, prefix="/api/v1", tags=["packages"])

    return app


app = create_app()
