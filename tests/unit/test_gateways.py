"""
Unit tests for exchange gateways.
"""

import json

import httpx
import pytest

from src.core.config import ExchangeSettings
from src.core.enums import DemoScenario, ExchangeDecision, ProviderStatus
from src.gateways.base import (
    ExchangeOutcome,
    GatewayConfig,
    ProviderHealth,
    Queued,
    RejectedError,
    StatusCheckAck,
    StillPending,
    TransportError,
)
from src.gateways.demo_exchange import DemoExchangeClient
from src.gateways.exchange_gateway import HttpExchangeClient

REQUEST = {
    "resourceType": "Bundle",
    "id": "bundle-1",
    "entry": [
        {"resource": {"resourceType": "MessageHeader"}},
        {"resource": {"resourceType": "Claim", "identifier": [{"value": "PA-20261018-ABC123"}]}},
    ],
}

QUEUED_BODY = {
    "resourceType": "Bundle",
    "entry": [
        {
            "resource": {
                "resourceType": "ClaimResponse",
                "outcome": "queued",
                "request": {"identifier": {"value": "abc"}},
            }
        }
    ],
}


def client_with(handler) -> HttpExchangeClient:
    config = GatewayConfig(provider_name="nphies", base_url="http://exchange.test")
    return HttpExchangeClient(
        config,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestGatewayConfig:
    """Tests for GatewayConfig dataclass."""

    def test_endpoint_url(self):
        config = GatewayConfig(provider_name="nphies", base_url="http://exchange.test/")
        assert config.endpoint_url == "http://exchange.test/$process-message"
        assert config.timeout_seconds == 60.0


class TestProviderHealth:
    """Tests for ProviderHealth tracking."""

    def test_failures_degrade_then_mark_unhealthy(self):
        health = ProviderHealth()

        health.record_failure("boom")
        assert health.status == ProviderStatus.DEGRADED

        health.record_failure("boom")
        health.record_failure("boom")
        assert health.status == ProviderStatus.UNHEALTHY
        assert health.error_count == 3

    def test_success_resets(self):
        health = ProviderHealth()
        health.record_failure("boom")

        health.record_success()

        assert health.status == ProviderStatus.HEALTHY
        assert health.consecutive_failures == 0


class TestHttpExchangeClient:
    """Tests for the live HTTP client."""

    @pytest.mark.asyncio
    async def test_submit_posts_bundle(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=QUEUED_BODY)

        client = client_with(handler)
        result = await client.submit(REQUEST)
        await client.close()

        assert result == Queued(token="abc", reference=None)
        assert seen["url"] == "http://exchange.test/$process-message"
        assert seen["content_type"] == "application/fhir+json"
        assert seen["body"]["id"] == "bundle-1"
        assert client.health.status == ProviderStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_server_error_is_transport_error(self):
        client = client_with(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(TransportError) as exc_info:
            await client.submit(REQUEST)

        assert "503" in exc_info.value.message
        assert client.health.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = client_with(handler)

        with pytest.raises(TransportError):
            await client.submit(REQUEST)

    @pytest.mark.asyncio
    async def test_client_error_with_operation_outcome_is_rejected(self):
        body = {
            "resourceType": "Bundle",
            "entry": [
                {
                    "resource": {
                        "resourceType": "OperationOutcome",
                        "issue": [{"severity": "error", "code": "invalid", "diagnostics": "bad bundle"}],
                    }
                }
            ],
        }
        client = client_with(lambda request: httpx.Response(400, json=body))

        with pytest.raises(RejectedError) as exc_info:
            await client.submit(REQUEST)

        assert exc_info.value.issues == ["invalid: bad bundle"]

    @pytest.mark.asyncio
    async def test_client_error_without_json_is_rejected(self):
        client = client_with(lambda request: httpx.Response(400, text="Bad Request"))

        with pytest.raises(RejectedError):
            await client.submit(REQUEST)

    @pytest.mark.asyncio
    async def test_poll_sends_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"resourceType": "Bundle", "entry": []})

        client = client_with(handler)
        result = await client.poll("abc")

        assert result == StillPending(token="abc")
        header = seen["body"]["entry"][0]["resource"]
        assert header["eventCoding"]["code"] == "poll"

    @pytest.mark.asyncio
    async def test_cancel_request(self):
        body = {"resourceType": "Bundle", "entry": [{"resource": {"resourceType": "Task", "status": "completed"}}]}
        client = client_with(lambda request: httpx.Response(200, json=body))

        ack = await client.cancel_request("REF-1", "wrong information", insurer_license="INS-FHIR")

        assert ack.reference == "REF-1"
        assert ack.status == "completed"

    @pytest.mark.asyncio
    async def test_status_check_posts_task(self):
        seen = {}
        body = {"resourceType": "Bundle", "entry": [{"resource": {"resourceType": "Task", "status": "accepted"}}]}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=body)

        client = client_with(handler)
        ack = await client.status_check("CLM-20261018-ABC123", insurer_license="INS-7")

        assert isinstance(ack, StatusCheckAck)
        assert ack.request_identifier == "CLM-20261018-ABC123"
        assert ack.status == "accepted"
        header = seen["body"]["entry"][0]["resource"]
        assert header["eventCoding"]["code"] == "status-check"

    @pytest.mark.asyncio
    async def test_status_check_server_error_is_transport_error(self):
        client = client_with(lambda request: httpx.Response(503))

        with pytest.raises(TransportError):
            await client.status_check("CLM-1")

    def test_from_settings(self):
        settings = ExchangeSettings(BASE_URL="http://exchange.test/", TIMEOUT_SECONDS=5)

        client = HttpExchangeClient.from_settings(settings)

        assert client.config.endpoint_url == "http://exchange.test/$process-message"
        assert client.config.timeout_seconds == 5


class TestDemoExchangeClient:
    """Tests for the simulated exchange."""

    @pytest.mark.asyncio
    async def test_queue_then_approve_after_polls(self):
        client = DemoExchangeClient(scenario=DemoScenario.QUEUE, polls_until_ready=1)

        queued = await client.submit(REQUEST)
        assert queued == Queued(token="PA-20261018-ABC123")

        assert isinstance(await client.poll(queued.token), StillPending)
        outcome = await client.poll(queued.token)
        assert isinstance(outcome, ExchangeOutcome)
        assert outcome.decision == ExchangeDecision.APPROVED
        assert outcome.reference.startswith("DEMO-")
        assert outcome.authorization_period_end is not None

    @pytest.mark.asyncio
    async def test_unknown_token_still_pending(self):
        client = DemoExchangeClient()
        assert isinstance(await client.poll("nope"), StillPending)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "scenario,decision",
        [
            (DemoScenario.APPROVE, ExchangeDecision.APPROVED),
            (DemoScenario.PARTIAL, ExchangeDecision.PARTIAL),
            (DemoScenario.DENY, ExchangeDecision.DENIED),
        ],
    )
    async def test_immediate_decisions(self, scenario, decision):
        client = DemoExchangeClient(scenario=scenario)
        assert (await client.submit(REQUEST)).decision == decision

    @pytest.mark.asyncio
    async def test_reject_and_timeout(self):
        client = DemoExchangeClient(scenario=DemoScenario.REJECT)
        with pytest.raises(RejectedError):
            await client.submit(REQUEST)

        client.set_scenario(DemoScenario.TIMEOUT)
        with pytest.raises(TransportError):
            await client.submit(REQUEST)
        with pytest.raises(TransportError):
            await client.cancel_request("REF-1", "x")

    @pytest.mark.asyncio
    async def test_cancel(self):
        ack = await DemoExchangeClient().cancel_request("REF-1", "wrong information")
        assert ack.status == "completed"

    @pytest.mark.asyncio
    async def test_status_check_answers_on_next_poll(self):
        client = DemoExchangeClient(scenario=DemoScenario.QUEUE, polls_until_ready=3)
        queued = await client.submit(REQUEST)

        ack = await client.status_check(queued.token)

        assert ack.status == "completed"
        assert isinstance(await client.poll(queued.token), ExchangeOutcome)
