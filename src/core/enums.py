"""
Core Enumerations for the Submission Lifecycle Engine.
Source: NPHIES FHIR Implementation Guide (ksa-message-events, claim-type, processpriority)
Verified: 2026-10-18
"""

from enum import Enum


# =============================================================================
# Integration Enums
# =============================================================================


class IntegrationMode(str, Enum):
    """Exchange integration mode."""

    DEMO = "demo"  # Simulated exchange, in-memory results
    LIVE = "live"  # Real exchange over HTTP


class ProviderStatus(str, Enum):
    """Health status of the exchange connection."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class DemoScenario(str, Enum):
    """Canned behaviours of the simulated exchange."""

    APPROVE = "approve"
    PARTIAL = "partial"
    DENY = "deny"
    QUEUE = "queue"  # Queued, resolved as approved after N polls
    REJECT = "reject"  # Document rejected as malformed
    TIMEOUT = "timeout"


# =============================================================================
# Submission Enums
# =============================================================================


class DocumentKind(str, Enum):
    """What the bundle asks the exchange for."""

    PRIOR_AUTHORIZATION = "prior_authorization"
    CLAIM = "claim"


class SubmissionKind(str, Enum):
    """Claim type (NPHIES claim-type code system)."""

    INSTITUTIONAL = "institutional"
    PROFESSIONAL = "professional"
    PHARMACY = "pharmacy"
    DENTAL = "dental"  # Sent as "oral" on the wire
    VISION = "vision"


class SubmissionStatus(str, Enum):
    """Lifecycle state of a submission."""

    DRAFT = "draft"
    PENDING = "pending"  # Claimed for transmission
    QUEUED = "queued"  # Exchange will answer asynchronously
    APPROVED = "approved"
    PARTIAL = "partial"
    DENIED = "denied"
    CANCELLED = "cancelled"
    ERROR = "error"  # Rejected by the exchange, editable


class SubmissionPriority(str, Enum):
    """Processing priority (processpriority code system)."""

    STAT = "stat"
    NORMAL = "normal"
    DEFERRED = "deferred"


class EncounterClass(str, Enum):
    """Encounter class for institutional and dental submissions."""

    AMBULATORY = "ambulatory"
    EMERGENCY = "emergency"
    INPATIENT = "inpatient"
    DAYCASE = "daycase"
    HOME = "home"
    TELEMEDICINE = "telemedicine"


class DiagnosisType(str, Enum):
    """Diagnosis role on the claim."""

    PRINCIPAL = "principal"
    SECONDARY = "secondary"
    ADMITTING = "admitting"
    DISCHARGE = "discharge"


class ExchangeDecision(str, Enum):
    """Adjudication decision reported by the exchange."""

    APPROVED = "approved"
    PARTIAL = "partial"
    DENIED = "denied"


class CancelReasonCode(str, Enum):
    """Task reason codes for cancel requests."""

    WRONG_INFORMATION = "WI"
    NOT_PERFORMED = "NP"
    ALREADY_SUBMITTED = "TAS"
    SERVICE_UNAVAILABLE = "SU"
    RESUBMISSION = "resubmission"
