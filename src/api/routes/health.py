"""
Health Check Routes
Service health monitoring endpoints
Source: https://microservices.io/patterns/observability/health-check-api.html
Verified: 2026-10-18
"""

from typing import Any

from fastapi import APIRouter, Depends

from src.api.config import settings
from src.api.deps import get_orchestrator
from src.core.enums import ProviderStatus
from src.services.lifecycle_orchestrator import LifecycleOrchestrator
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])

SERVICE_NAME = "submission-lifecycle-api"


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Basic liveness check for load balancers."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
    }


@router.get("/health/detailed")
async def detailed_health_check(
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """
    Health of the store and the exchange connection.

    The exchange is reported from the client's recent call history; no
    message is sent to the exchange by this check.
    """
    checks: dict[str, str] = {}

    if settings.uses_database_store:
        from src.db.connection import check_db_connection

        checks["database"] = "healthy" if await check_db_connection() else "unhealthy"
    else:
        checks["store"] = "in-memory"

    health = orchestrator.exchange.health
    checks["exchange"] = health.status.value

    unhealthy = checks.get("database") == "unhealthy" or health.status == ProviderStatus.UNHEALTHY
    return {
        "status": "unhealthy" if unhealthy else "healthy",
        "service": SERVICE_NAME,
        "exchange_provider": orchestrator.exchange.provider_name,
        "checks": checks,
    }
