"""
Master Data Directory.

Patients, providers and insurers are owned by other parts of the platform.
The lifecycle engine only reads them, through this interface, to stamp
identities onto outgoing messages.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import logging

from src.schemas.master_data import InsurerRecord, PatientRecord, ProviderRecord
from src.schemas.submission import SubmissionPayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Parties:
    """Resolved parties for one submission. Missing lookups are None."""

    patient: Optional[PatientRecord] = None
    provider: Optional[ProviderRecord] = None
    insurer: Optional[InsurerRecord] = None


class MasterDataDirectory(ABC):
    """Read-only lookup of externally owned master data."""

    @abstractmethod
    async def get_patient(self, patient_id: str) -> Optional[PatientRecord]:
        pass

    @abstractmethod
    async def get_provider(self, provider_id: str) -> Optional[ProviderRecord]:
        pass

    @abstractmethod
    async def get_insurer(self, insurer_id: str) -> Optional[InsurerRecord]:
        pass

    async def resolve(self, payload: SubmissionPayload) -> Parties:
        """Look up every party referenced by a submission."""
        return Parties(
            patient=await self.get_patient(payload.patient_id) if payload.patient_id else None,
            provider=await self.get_provider(payload.provider_id) if payload.provider_id else None,
            insurer=await self.get_insurer(payload.insurer_id) if payload.insurer_id else None,
        )


class InMemoryMasterDataDirectory(MasterDataDirectory):
    """Dictionary-backed directory for demo mode and tests."""

    def __init__(
        self,
        patients: Optional[list[PatientRecord]] = None,
        providers: Optional[list[ProviderRecord]] = None,
        insurers: Optional[list[InsurerRecord]] = None,
    ):
        self._patients = {p.patient_id: p for p in patients or []}
        self._providers = {p.provider_id: p for p in providers or []}
        self._insurers = {i.insurer_id: i for i in insurers or []}

    async def get_patient(self, patient_id: str) -> Optional[PatientRecord]:
        return self._patients.get(patient_id)

    async def get_provider(self, provider_id: str) -> Optional[ProviderRecord]:
        return self._providers.get(provider_id)

    async def get_insurer(self, insurer_id: str) -> Optional[InsurerRecord]:
        return self._insurers.get(insurer_id)

    def add_patient(self, patient: PatientRecord) -> None:
        self._patients[patient.patient_id] = patient

    def add_provider(self, provider: ProviderRecord) -> None:
        self._providers[provider.provider_id] = provider

    def add_insurer(self, insurer: InsurerRecord) -> None:
        self._insurers[insurer.insurer_id] = insurer


def create_demo_directory() -> InMemoryMasterDataDirectory:
    """Directory seeded with the exchange's sandbox identities."""
    logger.info("Seeding demo master data directory")
    return InMemoryMasterDataDirectory(
        patients=[
            PatientRecord(
                patient_id="PAT-DEMO-1",
                name="Ahmed Al-Harbi",
                identifier="1012345678",
                identifier_type="NI",
                gender="male",
                member_id="MEM-0001",
            ),
        ],
        providers=[
            ProviderRecord(provider_id="PRV-DEMO-1", name="Demo Clinic", license="1010613708"),
            ProviderRecord(provider_id="PRV-DEMO-2", name="Demo Hospital", license="1010000002"),
        ],
        insurers=[
            InsurerRecord(insurer_id="INS-DEMO-1", name="Demo Insurance", license="INS-FHIR"),
        ],
    )
