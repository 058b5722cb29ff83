"""
Pydantic Schemas for the Submission Lifecycle Engine.
"""

from src.schemas.master_data import InsurerRecord, PatientRecord, ProviderRecord
from src.schemas.submission import (
    AmendRequest,
    Attachment,
    BundleResponse,
    CancelRequest,
    ClaimFromAuthorizationRequest,
    CommandResponse,
    FieldErrorResponse,
    ItemOverride,
    Submission,
    SubmissionCreate,
    SubmissionDiagnosis,
    SubmissionItem,
    SubmissionPayload,
    SubmissionUpdate,
    SupportingInfo,
    TransferRequest,
    assign_missing_sequences,
)

__all__ = [
    # Master data
    "PatientRecord",
    "ProviderRecord",
    "InsurerRecord",
    # Submission payload
    "SubmissionItem",
    "SubmissionDiagnosis",
    "SupportingInfo",
    "Attachment",
    "SubmissionPayload",
    "assign_missing_sequences",
    # Commands
    "SubmissionCreate",
    "SubmissionUpdate",
    "CancelRequest",
    "TransferRequest",
    "AmendRequest",
    "ItemOverride",
    "ClaimFromAuthorizationRequest",
    # Records and responses
    "Submission",
    "FieldErrorResponse",
    "BundleResponse",
    "CommandResponse",
]
