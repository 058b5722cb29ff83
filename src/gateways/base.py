"""
Base Exchange Gateway.

Defines the contract every exchange client honours, the result types it
returns and the error hierarchy it raises.

Contract:
- submit(document) -> ExchangeOutcome | Queued
- poll(token) -> ExchangeOutcome | StillPending
- cancel_request(reference, reason) -> CancelAck
- status_check(request_identifier) -> StatusCheckAck

Every call is bounded by a timeout. Clients never retry internally; retries
are explicit lifecycle commands.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional, Union
import logging

from src.core.enums import ExchangeDecision, ProviderStatus
from src.core.exceptions import LifecycleError

logger = logging.getLogger(__name__)


class GatewayError(LifecycleError):
    """Base exception for exchange gateway errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.original_error = original_error


class TransportError(GatewayError):
    """Network failure, timeout or 5xx talking to the exchange. Retryable."""

    pass


class RejectedError(GatewayError):
    """The exchange reported the document itself as malformed."""

    def __init__(
        self,
        message: str,
        issues: Optional[list[str]] = None,
        reference: Optional[str] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(message, provider=provider)
        self.issues = issues or []
        self.reference = reference


@dataclass
class GatewayConfig:
    """Configuration for an exchange client."""

    provider_name: str
    base_url: str = ""
    endpoint_path: str = "/$process-message"
    timeout_seconds: float = 60.0
    content_type: str = "application/fhir+json"

    @property
    def endpoint_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.endpoint_path}"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class ExchangeOutcome:
    """Adjudication decision returned by the exchange."""

    decision: ExchangeDecision
    reference: Optional[str] = None
    disposition: Optional[str] = None
    authorization_period_end: Optional[date] = None
    transfer_authorization_number: Optional[str] = None
    transfer_authorization_provider: Optional[str] = None
    transfer_period_start: Optional[date] = None
    transfer_period_end: Optional[date] = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class Queued:
    """The exchange will answer asynchronously; poll with the token."""

    token: str
    reference: Optional[str] = None


@dataclass
class StillPending:
    """Poll found no result yet."""

    token: Optional[str] = None


@dataclass
class CancelAck:
    """Exchange acknowledgement of a cancel request."""

    reference: str
    status: str = "accepted"
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class StatusCheckAck:
    """Exchange acknowledgement of a status-check message. The answer arrives by poll."""

    request_identifier: str
    status: str = "accepted"
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


SubmitResult = Union[ExchangeOutcome, Queued]
PollResult = Union[ExchangeOutcome, StillPending]


@dataclass
class ProviderHealth:
    """Health status of the exchange connection."""

    status: ProviderStatus = ProviderStatus.UNKNOWN
    last_check: Optional[datetime] = None
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    request_count: int = 0
    error_count: int = 0

    def record_success(self) -> None:
        """Record a successful request."""
        self.consecutive_failures = 0
        self.request_count += 1
        self.last_check = datetime.now(timezone.utc)
        self.status = ProviderStatus.HEALTHY

    def record_failure(self, error: str, unhealthy_threshold: int = 3) -> None:
        """Record a failed request."""
        self.consecutive_failures += 1
        self.error_count += 1
        self.request_count += 1
        self.last_error = error
        self.last_check = datetime.now(timezone.utc)

        if self.consecutive_failures >= unhealthy_threshold:
            self.status = ProviderStatus.UNHEALTHY
        else:
            self.status = ProviderStatus.DEGRADED


class ExchangeClient(ABC):
    """
    Abstract exchange client.

    Implementations: HttpExchangeClient (live) and DemoExchangeClient (demo).
    """

    def __init__(self, config: GatewayConfig):
        self.config = config
        self.health = ProviderHealth()

    @property
    def provider_name(self) -> str:
        return self.config.provider_name

    @abstractmethod
    async def submit(self, document: dict[str, Any]) -> SubmitResult:
        """Transmit a request bundle."""
        pass

    @abstractmethod
    async def poll(self, token: str) -> PollResult:
        """Ask for the result of a queued submission. Must not change exchange state."""
        pass

    @abstractmethod
    async def cancel_request(
        self,
        reference: str,
        reason: str,
        insurer_license: Optional[str] = None,
        request_identifier: Optional[str] = None,
    ) -> CancelAck:
        """Ask the exchange to cancel a resolved submission."""
        pass

    @abstractmethod
    async def status_check(
        self,
        request_identifier: str,
        insurer_license: Optional[str] = None,
    ) -> StatusCheckAck:
        """Ask the exchange to re-send the processing status of a queued claim."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None

    def _record_failure(self, error: Exception) -> None:
        self.health.record_failure(str(error))
        logger.warning(f"{self.provider_name} call failed: {error}")
