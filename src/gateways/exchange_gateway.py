"""
HTTP Exchange Client.

Posts FHIR message Bundles to the exchange's $process-message endpoint.

Status handling:
- 2xx / 4xx with a JSON body -> parsed (4xx bodies carry OperationOutcome)
- 5xx, timeouts, connection errors -> TransportError
"""

from typing import Any, Optional
import logging

import httpx

from src.core.config import ExchangeSettings, get_exchange_settings
from src.gateways.base import (
    CancelAck,
    ExchangeClient,
    GatewayConfig,
    PollResult,
    RejectedError,
    StatusCheckAck,
    SubmitResult,
    TransportError,
)
from src.services.bundle import (
    MessageIdentity,
    build_cancel_document,
    build_poll_document,
    build_status_check_document,
    parse_cancel_response,
    parse_poll_response,
    parse_status_check_response,
    parse_submit_response,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "nphies"


class HttpExchangeClient(ExchangeClient):
    """
    Live exchange client over httpx.

    One AsyncClient is created per instance and reused; pass http_client to
    supply a preconfigured one (e.g. with a mock transport).
    """

    def __init__(
        self,
        config: GatewayConfig,
        identity: Optional[MessageIdentity] = None,
        poll_count: int = 50,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(config)
        self.identity = identity or MessageIdentity()
        self.poll_count = poll_count
        self._http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            headers={"Accept": config.content_type},
        )

    @classmethod
    def from_settings(cls, settings: Optional[ExchangeSettings] = None) -> "HttpExchangeClient":
        settings = settings or get_exchange_settings()
        config = GatewayConfig(
            provider_name=PROVIDER_NAME,
            base_url=settings.BASE_URL,
            endpoint_path=settings.PROCESS_MESSAGE_PATH,
            timeout_seconds=settings.TIMEOUT_SECONDS,
        )
        return cls(
            config,
            identity=MessageIdentity.from_settings(settings),
            poll_count=settings.POLL_MESSAGE_COUNT,
        )

    async def _post(self, document: dict[str, Any]) -> dict[str, Any]:
        """POST a Bundle and return the JSON response body."""
        try:
            response = await self._http_client.post(
                self.config.endpoint_url,
                json=document,
                headers={"Content-Type": self.config.content_type},
            )
        except httpx.TimeoutException as e:
            self._record_failure(e)
            raise TransportError(
                f"Exchange request timed out after {self.config.timeout_seconds}s",
                provider=self.provider_name,
                original_error=e,
            )
        except httpx.HTTPError as e:
            self._record_failure(e)
            raise TransportError(
                f"Exchange request failed: {e}",
                provider=self.provider_name,
                original_error=e,
            )

        if response.status_code >= 500:
            error = TransportError(
                f"Exchange returned HTTP {response.status_code}",
                provider=self.provider_name,
            )
            self._record_failure(error)
            raise error

        try:
            body = response.json()
        except ValueError as e:
            if response.is_success:
                self._record_failure(e)
                raise TransportError(
                    "Exchange returned a non-JSON response",
                    provider=self.provider_name,
                    original_error=e,
                )
            raise RejectedError(
                f"Exchange returned HTTP {response.status_code}",
                issues=[response.text[:500]],
                provider=self.provider_name,
            )

        self.health.record_success()
        logger.debug(f"Exchange answered HTTP {response.status_code} for bundle {document.get('id')}")
        return body

    async def submit(self, document: dict[str, Any]) -> SubmitResult:
        logger.info(f"Submitting bundle {document.get('id')} to {self.config.endpoint_url}")
        body = await self._post(document)
        return parse_submit_response(body, document)

    async def poll(self, token: str) -> PollResult:
        document = build_poll_document(token, self.identity, count=self.poll_count)
        logger.info(f"Polling exchange for request {token}")
        body = await self._post(document)
        return parse_poll_response(body, token)

    async def cancel_request(
        self,
        reference: str,
        reason: str,
        insurer_license: Optional[str] = None,
        request_identifier: Optional[str] = None,
    ) -> CancelAck:
        document = build_cancel_document(
            reference,
            reason,
            self.identity,
            insurer_license=insurer_license,
            request_identifier=request_identifier,
        )
        logger.info(f"Sending cancel request for {reference}")
        body = await self._post(document)
        return parse_cancel_response(body, reference)

    async def status_check(
        self,
        request_identifier: str,
        insurer_license: Optional[str] = None,
    ) -> StatusCheckAck:
        document = build_status_check_document(
            request_identifier,
            self.identity,
            insurer_license=insurer_license,
        )
        logger.info(f"Sending status check for request {request_identifier}")
        body = await self._post(document)
        return parse_status_check_response(body, request_identifier)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http_client.aclose()
