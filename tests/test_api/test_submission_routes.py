"""
Submission Routes Tests.
Covers the lifecycle endpoints for prior authorizations and claims.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from src.api.deps import get_orchestrator
from src.api.main import app
from src.core.enums import ExchangeDecision
from src.gateways.base import ExchangeOutcome, Queued, RejectedError, TransportError

PA_URL = "/api/v1/prior-authorizations"
CLAIM_URL = "/api/v1/claim-submissions"


@pytest.fixture
def client(orchestrator):
    """Test client wired to the in-memory orchestrator."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def payload(submission_create):
    return submission_create.model_dump(mode="json")


def create_pa(client, payload) -> dict:
    response = client.post(PA_URL, json=payload)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


@pytest.mark.api
class TestHealthEndpoints:
    """Test health endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "healthy"

    def test_detailed_health(self, client):
        response = client.get("/health/detailed")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["exchange_provider"] == "scripted"


@pytest.mark.api
class TestDraftEndpoints:
    """Test draft CRUD endpoints."""

    def test_create_and_get(self, client, payload):
        created = create_pa(client, payload)

        assert created["status"] == "draft"
        assert created["request_number"].startswith("PA-")

        response = client.get(f"{PA_URL}/{created['id']}")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["items"][0]["sequence"] == 1

    def test_wrong_document_kind_is_not_found(self, client, payload):
        created = create_pa(client, payload)

        response = client.get(f"{CLAIM_URL}/{created['id']}")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_list_with_status_filter(self, client, payload):
        create_pa(client, payload)

        assert len(client.get(PA_URL).json()) == 1
        assert client.get(PA_URL, params={"status": "queued"}).json() == []
        assert client.get(CLAIM_URL).json() == []

    def test_patch_draft(self, client, payload):
        created = create_pa(client, payload)

        response = client.patch(f"{PA_URL}/{created['id']}", json={"priority": "stat"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["priority"] == "stat"
        assert response.json()["version"] == 2

    def test_patch_explicit_null_is_unprocessable(self, client, payload):
        created = create_pa(client, payload)

        response = client.patch(f"{PA_URL}/{created['id']}", json={"items": None})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["detail"] == [{"field": "items", "message": "must not be null"}]
        assert client.get(f"{PA_URL}/{created['id']}").json()["version"] == 1

    def test_delete_draft(self, client, payload):
        created = create_pa(client, payload)

        response = client.delete(f"{PA_URL}/{created['id']}")

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert client.get(f"{PA_URL}/{created['id']}").status_code == status.HTTP_404_NOT_FOUND

    def test_invalid_body(self, client):
        response = client.post(PA_URL, json={"currency": "TOOLONG"})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.api
class TestBundleEndpoints:
    """Test preview and bundle endpoints."""

    def test_preview_reports_errors_and_stores_nothing(self, client, payload):
        payload["items"] = []

        response = client.post(f"{PA_URL}/preview", json=payload)

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["document"]["resourceType"] == "Bundle"
        assert body["errors"] == [{"field": "items", "message": "At least one service item is required"}]
        assert client.get(PA_URL).json() == []

    def test_bundle_for_stored_submission(self, client, payload):
        created = create_pa(client, payload)

        response = client.get(f"{PA_URL}/{created['id']}/bundle")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["errors"] == []
        assert response.json()["document"]["entry"][0]["resource"]["resourceType"] == "MessageHeader"


@pytest.mark.api
class TestCommandEndpoints:
    """Test send, poll and cancel endpoints."""

    def test_send_poll_then_claim(self, client, exchange, payload):
        exchange.submit_results.append(Queued(token="abc"))
        exchange.poll_results.append(ExchangeOutcome(decision=ExchangeDecision.APPROVED, reference="REF-1"))
        created = create_pa(client, payload)

        sent = client.post(f"{PA_URL}/{created['id']}/send")
        assert sent.status_code == status.HTTP_200_OK
        assert sent.json()["submission"]["status"] == "queued"

        polled = client.post(f"{PA_URL}/{created['id']}/poll")
        assert polled.json()["submission"]["status"] == "approved"
        assert polled.json()["submission"]["exchange_reference"] == "REF-1"

        claim = client.post(f"{PA_URL}/{created['id']}/claim")
        assert claim.status_code == status.HTTP_201_CREATED
        assert claim.json()["document_kind"] == "claim"
        assert claim.json()["pre_auth_reference"] == "REF-1"
        assert client.get(f"{CLAIM_URL}/{claim.json()['id']}").status_code == status.HTTP_200_OK

    def test_send_with_structural_errors(self, client, exchange, payload):
        payload["items"] = []
        created = create_pa(client, payload)

        response = client.post(f"{PA_URL}/{created['id']}/send")

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["detail"] == [
            {"field": "items", "message": "At least one service item is required"}
        ]
        assert exchange.submitted == []

    def test_send_twice_rejected(self, client, exchange, payload):
        exchange.submit_results.append(Queued(token="abc"))
        created = create_pa(client, payload)
        client.post(f"{PA_URL}/{created['id']}/send")

        response = client.post(f"{PA_URL}/{created['id']}/send")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"]["current_status"] == "queued"
        assert "draft or error" in response.json()["detail"]["reason"]

    def test_transport_error_is_bad_gateway(self, client, exchange, payload):
        exchange.submit_results.append(TransportError("connection refused"))
        created = create_pa(client, payload)

        response = client.post(f"{PA_URL}/{created['id']}/send")

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        current = client.get(f"{PA_URL}/{created['id']}").json()
        assert current["status"] == "draft"
        assert current["last_error"] == "connection refused"

    def test_rejection_is_unprocessable(self, client, exchange, payload):
        exchange.submit_results.append(RejectedError("malformed", issues=["GE-00001: invalid"]))
        created = create_pa(client, payload)

        response = client.post(f"{PA_URL}/{created['id']}/send")

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["detail"]["issues"] == ["GE-00001: invalid"]
        assert client.get(f"{PA_URL}/{created['id']}").json()["status"] == "error"

    def test_cancel_twice(self, client, exchange, payload):
        exchange.submit_results.append(ExchangeOutcome(decision=ExchangeDecision.APPROVED, reference="REF-1"))
        created = create_pa(client, payload)
        client.post(f"{PA_URL}/{created['id']}/send")

        first = client.post(f"{PA_URL}/{created['id']}/cancel", json={"reason": "Wrong information"})
        second = client.post(f"{PA_URL}/{created['id']}/cancel", json={"reason": "again"})

        assert first.status_code == status.HTTP_200_OK
        assert first.json()["submission"]["status"] == "cancelled"
        assert second.status_code == status.HTTP_400_BAD_REQUEST
        assert "already cancelled" in second.json()["detail"]["reason"]

    def test_delete_after_send_rejected(self, client, exchange, payload):
        exchange.submit_results.append(ExchangeOutcome(decision=ExchangeDecision.DENIED, reference="REF-1"))
        created = create_pa(client, payload)
        client.post(f"{PA_URL}/{created['id']}/send")

        response = client.delete(f"{PA_URL}/{created['id']}")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.api
class TestLinkedDraftEndpoints:
    """Test transfer and amend endpoints."""

    def test_transfer(self, client, exchange, payload):
        exchange.submit_results.append(ExchangeOutcome(decision=ExchangeDecision.APPROVED, reference="REF-1"))
        created = create_pa(client, payload)
        client.post(f"{PA_URL}/{created['id']}/send")

        response = client.post(f"{PA_URL}/{created['id']}/transfer", json={"target_provider_id": "PRV-DEMO-2"})

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["is_transfer"] is True
        assert response.json()["parent_id"] == created["id"]
        assert client.get(f"{PA_URL}/{created['id']}").json()["status"] == "approved"

    def test_transfer_not_offered_for_claims(self, client, payload):
        created = client.post(CLAIM_URL, json=payload).json()

        response = client.post(f"{CLAIM_URL}/{created['id']}/transfer", json={"target_provider_id": "PRV-DEMO-2"})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_amend_draft_rejected(self, client, payload):
        created = create_pa(client, payload)

        response = client.post(f"{PA_URL}/{created['id']}/amend", json={})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.api
class TestStatusEndpoints:
    """Test poll preview and claim status-check endpoints."""

    def test_poll_preview(self, client, exchange, payload):
        exchange.submit_results.append(Queued(token="abc"))
        created = create_pa(client, payload)
        client.post(f"{PA_URL}/{created['id']}/send")

        response = client.get(f"{PA_URL}/{created['id']}/poll/preview")

        assert response.status_code == status.HTTP_200_OK
        header = response.json()["document"]["entry"][0]["resource"]
        assert header["eventCoding"]["code"] == "poll"
        assert exchange.polled == []

    def test_poll_preview_for_draft_rejected(self, client, payload):
        created = create_pa(client, payload)

        response = client.get(f"{PA_URL}/{created['id']}/poll/preview")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_claim_status_check(self, client, exchange, payload):
        exchange.submit_results.append(Queued(token="CLM-TOKEN"))
        created = client.post(CLAIM_URL, json=payload).json()
        client.post(f"{CLAIM_URL}/{created['id']}/send")

        preview = client.get(f"{CLAIM_URL}/{created['id']}/status-check/preview")
        assert preview.status_code == status.HTTP_200_OK
        assert preview.json()["document"]["entry"][0]["resource"]["eventCoding"]["code"] == "status-check"
        assert exchange.checked == []

        response = client.post(f"{CLAIM_URL}/{created['id']}/status-check")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["changed"] is False
        assert response.json()["submission"]["status"] == "queued"
        assert exchange.checked == [created["request_number"]]

    def test_status_check_not_offered_for_authorizations(self, client, payload):
        created = create_pa(client, payload)

        response = client.post(f"{PA_URL}/{created['id']}/status-check")

        assert response.status_code == status.HTTP_404_NOT_FOUND
