"""
Pydantic Schemas for Prior-Authorization and Claim Submissions.
Source: NPHIES FHIR Implementation Guide - Claim / ClaimResponse profiles
Verified: 2026-10-18
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.enums import (
    DiagnosisType,
    DocumentKind,
    EncounterClass,
    SubmissionKind,
    SubmissionPriority,
    SubmissionStatus,
)

ICD10_SYSTEM = "http://hl7.org/fhir/sid/icd-10-am"
PROCEDURES_SYSTEM = "http://nphies.sa/terminology/CodeSystem/procedures"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Payload Entry Schemas
# =============================================================================


class SubmissionItem(BaseModel):
    """A billed or requested service line."""

    sequence: Optional[int] = Field(None, ge=1, description="1-based line sequence")
    product_or_service_code: Optional[str] = Field(None, max_length=50)
    product_or_service_system: str = Field(default=PROCEDURES_SYSTEM)
    product_or_service_display: Optional[str] = Field(None, max_length=500)
    quantity: Decimal = Field(default=Decimal("1"))
    unit_price: Decimal = Field(default=Decimal("0"))
    factor: Decimal = Field(default=Decimal("1"))
    tax: Decimal = Field(default=Decimal("0"))
    patient_share: Decimal = Field(default=Decimal("0"))
    is_package: bool = False
    serviced_date: Optional[date] = None
    diagnosis_sequences: list[int] = Field(default_factory=list)
    information_sequences: list[int] = Field(default_factory=list)

    @property
    def net(self) -> Decimal:
        """Line total: quantity x unit price x factor + tax."""
        return self.quantity * self.unit_price * self.factor + self.tax

    @property
    def payer_share(self) -> Decimal:
        return self.net - self.patient_share


class SubmissionDiagnosis(BaseModel):
    """A coded diagnosis on the submission."""

    sequence: Optional[int] = Field(None, ge=1)
    code: Optional[str] = Field(None, max_length=20)
    code_system: str = Field(default=ICD10_SYSTEM)
    display: Optional[str] = Field(None, max_length=500)
    type: DiagnosisType = Field(default=DiagnosisType.SECONDARY)


class SupportingInfo(BaseModel):
    """Supporting-information entry (vital signs, days supply, chief complaint...)."""

    sequence: Optional[int] = Field(None, ge=1)
    category: Optional[str] = Field(None, max_length=50)
    code: Optional[str] = Field(None, max_length=50)
    code_system: Optional[str] = None
    code_display: Optional[str] = None
    value_string: Optional[str] = None
    value_quantity: Optional[Decimal] = None
    value_unit: Optional[str] = None
    value_boolean: Optional[bool] = None
    timing_date: Optional[date] = None
    reason: Optional[str] = None


class Attachment(BaseModel):
    """Opaque reference to an attached document."""

    content_reference: Optional[str] = Field(None, description="URL or storage key")
    content_type: str = Field(default="application/pdf", max_length=100)
    title: Optional[str] = Field(None, max_length=255)
    data: Optional[str] = Field(None, description="Base64 encoded content sent inline")


EntryT = TypeVar("EntryT", SubmissionItem, SubmissionDiagnosis, SupportingInfo)


def assign_missing_sequences(entries: Sequence[EntryT]) -> list[EntryT]:
    """Fill missing sequence numbers with the entry's 1-based position."""
    return [
        entry if entry.sequence is not None else entry.model_copy(update={"sequence": index})
        for index, entry in enumerate(entries, start=1)
    ]


# =============================================================================
# Command Schemas
# =============================================================================


class SubmissionPayload(BaseModel):
    """Editable submission content shared by create, preview and the record."""

    kind: SubmissionKind = Field(default=SubmissionKind.PROFESSIONAL)
    priority: SubmissionPriority = Field(default=SubmissionPriority.NORMAL)
    currency: str = Field(default="SAR", min_length=3, max_length=3)
    encounter_class: Optional[EncounterClass] = None
    encounter_start: Optional[datetime] = None
    encounter_end: Optional[datetime] = None
    patient_id: Optional[str] = None
    provider_id: Optional[str] = None
    insurer_id: Optional[str] = None
    items: list[SubmissionItem] = Field(default_factory=list)
    diagnoses: list[SubmissionDiagnosis] = Field(default_factory=list)
    supporting_info: list[SupportingInfo] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class SubmissionCreate(SubmissionPayload):
    """Schema for creating a draft submission."""

    pass


class SubmissionUpdate(BaseModel):
    """Schema for editing a draft (or error) submission. Omitted fields are kept."""

    kind: Optional[SubmissionKind] = None
    priority: Optional[SubmissionPriority] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    encounter_class: Optional[EncounterClass] = None
    encounter_start: Optional[datetime] = None
    encounter_end: Optional[datetime] = None
    patient_id: Optional[str] = None
    provider_id: Optional[str] = None
    insurer_id: Optional[str] = None
    items: Optional[list[SubmissionItem]] = None
    diagnoses: Optional[list[SubmissionDiagnosis]] = None
    supporting_info: Optional[list[SupportingInfo]] = None
    attachments: Optional[list[Attachment]] = None


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class TransferRequest(BaseModel):
    target_provider_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500)


class AmendRequest(BaseModel):
    """Replacement payload for an update; omitted collections are copied."""

    items: Optional[list[SubmissionItem]] = None
    diagnoses: Optional[list[SubmissionDiagnosis]] = None
    supporting_info: Optional[list[SupportingInfo]] = None
    attachments: Optional[list[Attachment]] = None
    reason: Optional[str] = Field(None, max_length=500)


class ItemOverride(BaseModel):
    sequence: int = Field(..., ge=1)
    product_or_service_code: Optional[str] = None
    product_or_service_display: Optional[str] = None


class ClaimFromAuthorizationRequest(BaseModel):
    """Options for deriving a claim from an approved prior authorization."""

    item_overrides: list[ItemOverride] = Field(default_factory=list)
    priority: Optional[SubmissionPriority] = None
    serviced_date: Optional[date] = None


# =============================================================================
# Submission Record
# =============================================================================


class Submission(SubmissionPayload):
    """
    Authoritative submission record.

    Owned by the submission store and changed only through
    compare-and-transition.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    document_kind: DocumentKind
    request_number: str
    status: SubmissionStatus = SubmissionStatus.DRAFT

    # Exchange identity
    exchange_reference: Optional[str] = None
    polling_token: Optional[str] = None
    disposition: Optional[str] = None
    authorization_period_end: Optional[date] = None

    # Transfer authorization granted to the receiving provider
    transfer_authorization_number: Optional[str] = None
    transfer_authorization_provider: Optional[str] = None
    transfer_period_start: Optional[date] = None
    transfer_period_end: Optional[date] = None

    # Links
    parent_id: Optional[str] = None
    related_reference: Optional[str] = None
    pre_auth_reference: Optional[str] = None

    # Flags
    is_update: bool = False
    is_transfer: bool = False
    is_cancelled: bool = False
    transfer_provider_id: Optional[str] = None
    cancellation_reason: Optional[str] = None

    # Audit
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_transmitted_at: Optional[datetime] = None
    last_error: Optional[str] = None
    version: int = 1

    def payload_fields(self) -> dict[str, Any]:
        """Editable content only, suitable for copying into a new draft."""
        return self.model_dump(include=set(SubmissionPayload.model_fields))


# =============================================================================
# Response Schemas
# =============================================================================


class FieldErrorResponse(BaseModel):
    field: str
    message: str


class BundleResponse(BaseModel):
    """Built document plus structural errors."""

    document: dict[str, Any]
    errors: list[FieldErrorResponse] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class CommandResponse(BaseModel):
    """Result of a lifecycle command."""

    submission: Submission
    changed: bool = True
    message: Optional[str] = None
