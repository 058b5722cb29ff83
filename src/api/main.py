"""
FastAPI Main Application
Entry point for the submission lifecycle API
Source: https://fastapi.tiangolo.com/
Verified: 2026-10-18
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.config import settings
from src.api.deps import close_orchestrator
from src.api.routes import health
from src.api.routes.submissions import claim_submission_router, prior_authorization_router
from src.core.config import get_exchange_settings
from src.utils.logging import get_logger, setup_logging

setup_logging(
    level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE,
    json_logs=settings.is_production,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]  # noqa: ARG001
    """
    Application lifespan manager.

    Source: https://fastapi.tiangolo.com/advanced/events/
    """
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")
    logger.info(f"Exchange integration mode: {get_exchange_settings().INTEGRATION_MODE.value}")
    logger.info(f"Submission store: {settings.SUBMISSION_STORE}")

    if settings.uses_database_store and settings.is_development:
        from src.db.connection import init_models

        await init_models()

    yield

    logger.info("Shutting down application")
    await close_orchestrator()
    if settings.uses_database_store:
        from src.db.connection import close_db_connection

        await close_db_connection()
    logger.info("Exchange client and store closed")


app = FastAPI(
    title="Submission Lifecycle API",
    description="Prior authorization and claim submission lifecycle against the health-insurance exchange",
    version="1.0.0",
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
)

app.include_router(health.router)
app.include_router(prior_authorization_router)
app.include_router(claim_submission_router)


@app.get("/")
async def root() -> dict[str, Any]:
    """API information."""
    return {
        "name": "Submission Lifecycle API",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "docs": "/docs" if not settings.is_production else "disabled",
    }
