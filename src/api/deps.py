"""
FastAPI Dependencies
Construction of the lifecycle orchestrator and its collaborators.
Source: https://fastapi.tiangolo.com/tutorial/dependencies/
Verified: 2026-10-18
"""

from typing import Optional

from src.api.config import Settings, settings
from src.core.config import ExchangeSettings, get_exchange_settings
from src.gateways.base import ExchangeClient
from src.gateways.demo_exchange import DemoExchangeClient
from src.gateways.exchange_gateway import HttpExchangeClient
from src.services.bundle import BundleBuilder, MessageIdentity
from src.services.lifecycle_orchestrator import LifecycleOrchestrator
from src.services.master_data import create_demo_directory
from src.services.submission_store import (
    InMemorySubmissionStore,
    SqlSubmissionStore,
    SubmissionStore,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Built once per process and handed to every request
_orchestrator: Optional[LifecycleOrchestrator] = None


def build_exchange_client(exchange_settings: ExchangeSettings) -> ExchangeClient:
    """Demo or live exchange client according to EXCHANGE_INTEGRATION_MODE."""
    if exchange_settings.is_live_mode:
        logger.info(f"Using live exchange at {exchange_settings.process_message_url}")
        return HttpExchangeClient.from_settings(exchange_settings)
    logger.info(f"Using demo exchange (scenario={exchange_settings.DEMO_SCENARIO.value})")
    return DemoExchangeClient.from_settings(exchange_settings)


def build_store(app_settings: Settings) -> SubmissionStore:
    if app_settings.uses_database_store:
        from src.db.connection import get_session_maker

        return SqlSubmissionStore(get_session_maker())
    return InMemorySubmissionStore()


def build_orchestrator(
    app_settings: Optional[Settings] = None,
    exchange_settings: Optional[ExchangeSettings] = None,
) -> LifecycleOrchestrator:
    app_settings = app_settings or settings
    exchange_settings = exchange_settings or get_exchange_settings()
    return LifecycleOrchestrator(
        store=build_store(app_settings),
        exchange_client=build_exchange_client(exchange_settings),
        master_data=create_demo_directory(),
        builder=BundleBuilder(MessageIdentity.from_settings(exchange_settings)),
        command_timeout_seconds=exchange_settings.COMMAND_TIMEOUT_SECONDS,
    )


def get_orchestrator() -> LifecycleOrchestrator:
    """Dependency returning the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


async def close_orchestrator() -> None:
    """Release the exchange client and store on shutdown."""
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.exchange.close()
        await _orchestrator.store.close()
        _orchestrator = None
