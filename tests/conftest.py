"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from src.core.enums import DiagnosisType, DocumentKind, SubmissionKind
from src.schemas.submission import (
    Submission,
    SubmissionCreate,
    SubmissionDiagnosis,
    SubmissionItem,
)
from src.services.bundle import BundleBuilder
from src.services.lifecycle_orchestrator import LifecycleOrchestrator
from src.services.master_data import InMemoryMasterDataDirectory, create_demo_directory
from src.services.submission_store import InMemorySubmissionStore

from tests.fakes import ScriptedExchangeClient


@pytest.fixture
def master_data() -> InMemoryMasterDataDirectory:
    """Directory with PAT-DEMO-1, PRV-DEMO-1/2 and INS-DEMO-1."""
    return create_demo_directory()


@pytest.fixture
def submission_create() -> SubmissionCreate:
    """One office visit (99213) for type 2 diabetes (E11.9)."""
    return SubmissionCreate(
        kind=SubmissionKind.PROFESSIONAL,
        currency="SAR",
        patient_id="PAT-DEMO-1",
        provider_id="PRV-DEMO-1",
        insurer_id="INS-DEMO-1",
        items=[
            SubmissionItem(
                product_or_service_code="99213",
                product_or_service_display="Office visit",
                quantity=Decimal("1"),
                unit_price=Decimal("150"),
            )
        ],
        diagnoses=[SubmissionDiagnosis(code="E11.9", type=DiagnosisType.PRINCIPAL)],
    )


@pytest.fixture
def draft_submission() -> Submission:
    """A stored-shape draft prior authorization."""
    return Submission(
        id="0b8f7f0e-2f4e-4c1b-9a57-6a1f2b1d9c10",
        document_kind=DocumentKind.PRIOR_AUTHORIZATION,
        request_number="PA-20261018-ABC123",
        kind=SubmissionKind.PROFESSIONAL,
        patient_id="PAT-DEMO-1",
        provider_id="PRV-DEMO-1",
        insurer_id="INS-DEMO-1",
        items=[
            SubmissionItem(
                sequence=1,
                product_or_service_code="99213",
                quantity=Decimal("1"),
                unit_price=Decimal("150"),
            )
        ],
        diagnoses=[SubmissionDiagnosis(sequence=1, code="E11.9", type=DiagnosisType.PRINCIPAL)],
    )


@pytest.fixture
def store() -> InMemorySubmissionStore:
    return InMemorySubmissionStore()


@pytest.fixture
def exchange() -> ScriptedExchangeClient:
    return ScriptedExchangeClient()


@pytest.fixture
def orchestrator(store, exchange, master_data) -> LifecycleOrchestrator:
    """Orchestrator wired to the in-memory store and the scripted exchange."""
    return LifecycleOrchestrator(
        store=store,
        exchange_client=exchange,
        master_data=master_data,
        builder=BundleBuilder(),
        command_timeout_seconds=5.0,
    )


@pytest.fixture
def mock_db_session():
    """Create a mock database session."""
    session = AsyncMock()
    session.add = lambda *_args, **_kwargs: None
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.get = AsyncMock()
    session.close = AsyncMock()
    return session


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as an API test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
