"""
Unit Tests for Exchange Response Parsing
"""

from datetime import date

import pytest

from src.core.enums import ExchangeDecision
from src.gateways.base import ExchangeOutcome, Queued, RejectedError, StatusCheckAck, StillPending
from src.services.bundle import (
    parse_cancel_response,
    parse_poll_response,
    parse_status_check_response,
    parse_submit_response,
)
from src.services.bundle.response_parser import parse_fhir_date

REQUEST = {
    "resourceType": "Bundle",
    "id": "req-1",
    "entry": [
        {"resource": {"resourceType": "MessageHeader"}},
        {"resource": {"resourceType": "Claim", "identifier": [{"value": "PA-20261018-ABC123"}]}},
    ],
}


def claim_response(**fields) -> dict:
    return {"resourceType": "ClaimResponse", "id": "cr-1", **fields}


def response_bundle(*resources) -> dict:
    return {"resourceType": "Bundle", "id": "resp-1", "entry": [{"resource": r} for r in resources]}


def adjudication(code: str) -> list[dict]:
    return [
        {
            "url": "http://nphies.sa/fhir/ksa/nphies-fs/StructureDefinition/extension-adjudication-outcome",
            "valueCodeableConcept": {"coding": [{"code": code}]},
        }
    ]


def transfer_extensions() -> list[dict]:
    base = "http://nphies.sa/fhir/ksa/nphies-fs/StructureDefinition"
    return [
        {"url": f"{base}/extension-transferAuthorizationNumber", "valueString": "TA-778"},
        {
            "url": f"{base}/extension-transferAuthorizationProvider",
            "valueReference": {"identifier": {"value": "PR-FHIR-2"}},
        },
        {
            "url": f"{base}/extension-transferAuthorizationPeriod",
            "valuePeriod": {"start": "2026-10-18", "end": "2026-11-17T23:59:59+03:00"},
        },
    ]


@pytest.mark.unit
class TestSubmitResponse:
    """Test interpretation of the answer to a request message"""

    def test_approved_by_extension(self):
        response = response_bundle(
            claim_response(
                outcome="complete",
                extension=adjudication("approved"),
                preAuthRef="REF-1",
                preAuthPeriod={"start": "2026-10-18", "end": "2026-11-17"},
                disposition="Approved",
            )
        )

        result = parse_submit_response(response, REQUEST)

        assert isinstance(result, ExchangeOutcome)
        assert result.decision == ExchangeDecision.APPROVED
        assert result.reference == "REF-1"
        assert result.authorization_period_end == date(2026, 11, 17)
        assert result.disposition == "Approved"

    def test_transfer_authorization_captured(self):
        response = response_bundle(
            claim_response(
                outcome="complete",
                extension=adjudication("approved") + transfer_extensions(),
                preAuthRef="REF-T",
            )
        )

        result = parse_submit_response(response, REQUEST)

        assert result.transfer_authorization_number == "TA-778"
        assert result.transfer_authorization_provider == "PR-FHIR-2"
        assert result.transfer_period_start == date(2026, 10, 18)
        assert result.transfer_period_end == date(2026, 11, 17)

    def test_plain_response_has_no_transfer_authorization(self):
        result = parse_submit_response(response_bundle(claim_response(outcome="complete")), REQUEST)

        assert result.transfer_authorization_number is None
        assert result.transfer_period_end is None

    def test_malformed_period_end_ignored(self):
        """An unparseable preAuthPeriod.end yields no period instead of an error."""
        response = response_bundle(
            claim_response(outcome="complete", preAuthRef="REF-1", preAuthPeriod={"end": "2026-13-45"})
        )

        result = parse_submit_response(response, REQUEST)

        assert result.decision == ExchangeDecision.APPROVED
        assert result.authorization_period_end is None

    def test_rejected_extension_means_denied(self):
        response = response_bundle(claim_response(outcome="complete", extension=adjudication("rejected")))

        result = parse_submit_response(response, REQUEST)

        assert result.decision == ExchangeDecision.DENIED

    def test_partial_outcome_without_extension(self):
        result = parse_submit_response(response_bundle(claim_response(outcome="partial")), REQUEST)
        assert result.decision == ExchangeDecision.PARTIAL

    def test_reference_falls_back_to_identifier(self):
        response = response_bundle(claim_response(outcome="complete", identifier=[{"value": "CR-77"}]))
        assert parse_submit_response(response, REQUEST).reference == "CR-77"

    def test_queued_uses_request_identifier(self):
        response = response_bundle(
            claim_response(outcome="queued", request={"identifier": {"value": "abc"}})
        )

        result = parse_submit_response(response, REQUEST)

        assert result == Queued(token="abc", reference=None)

    def test_queued_falls_back_to_claim_identifier(self):
        result = parse_submit_response(response_bundle(claim_response(outcome="queued")), REQUEST)
        assert result.token == "PA-20261018-ABC123"

    def test_error_outcome_rejected(self):
        response = response_bundle(
            claim_response(
                outcome="error",
                disposition="Invalid coverage",
                error=[{"code": {"coding": [{"code": "BV-00163"}]}}],
            )
        )

        with pytest.raises(RejectedError) as exc_info:
            parse_submit_response(response, REQUEST)

        assert exc_info.value.issues == ["BV-00163"]
        assert exc_info.value.message == "Invalid coverage"

    def test_operation_outcome_only_rejected(self):
        response = response_bundle(
            {
                "resourceType": "OperationOutcome",
                "issue": [
                    {"severity": "warning", "code": "informational"},
                    {
                        "severity": "error",
                        "code": "structure",
                        "details": {"coding": [{"code": "GE-00013"}], "text": "Invalid bundle"},
                    },
                ],
            }
        )

        with pytest.raises(RejectedError) as exc_info:
            parse_submit_response(response, REQUEST)

        assert exc_info.value.issues == ["GE-00013: Invalid bundle"]

    def test_missing_claim_response_rejected(self):
        with pytest.raises(RejectedError):
            parse_submit_response(response_bundle(), REQUEST)


@pytest.mark.unit
class TestPollResponse:
    """Test poll results, including nested message Bundles"""

    def test_nested_claim_response_for_token(self):
        nested = response_bundle(
            claim_response(
                outcome="complete",
                extension=adjudication("approved"),
                preAuthRef="REF-1",
                request={"identifier": {"value": "abc"}},
            )
        )

        result = parse_poll_response(response_bundle(nested), "abc")

        assert result.decision == ExchangeDecision.APPROVED
        assert result.reference == "REF-1"

    def test_other_token_ignored(self):
        response = response_bundle(
            claim_response(outcome="complete", request={"identifier": {"value": "other"}})
        )

        assert parse_poll_response(response, "abc") == StillPending(token="abc")

    def test_still_queued(self):
        response = response_bundle(claim_response(outcome="queued", request={"identifier": {"value": "abc"}}))
        assert isinstance(parse_poll_response(response, "abc"), StillPending)

    def test_empty_response(self):
        assert isinstance(parse_poll_response(response_bundle(), "abc"), StillPending)


@pytest.mark.unit
class TestCancelResponse:
    """Test cancel acknowledgements"""

    def test_completed_task(self):
        ack = parse_cancel_response(response_bundle({"resourceType": "Task", "status": "completed"}), "REF-1")

        assert ack.reference == "REF-1"
        assert ack.status == "completed"

    def test_no_task_defaults_to_accepted(self):
        assert parse_cancel_response(response_bundle(), "REF-1").status == "accepted"

    def test_rejected_task(self):
        with pytest.raises(RejectedError) as exc_info:
            parse_cancel_response(response_bundle({"resourceType": "Task", "status": "rejected"}), "REF-1")

        assert exc_info.value.issues == ["rejected"]


@pytest.mark.unit
class TestStatusCheckResponse:
    """Test status-check acknowledgements"""

    def test_accepted_task(self):
        ack = parse_status_check_response(
            response_bundle({"resourceType": "Task", "status": "accepted"}), "CLM-20261018-ABC123"
        )

        assert isinstance(ack, StatusCheckAck)
        assert ack.request_identifier == "CLM-20261018-ABC123"
        assert ack.status == "accepted"

    def test_operation_outcome_rejected(self):
        response = response_bundle(
            {
                "resourceType": "OperationOutcome",
                "issue": [{"severity": "error", "code": "invalid", "details": {"text": "unknown claim"}}],
            }
        )

        with pytest.raises(RejectedError) as exc_info:
            parse_status_check_response(response, "CLM-1")

        assert exc_info.value.issues == ["invalid: unknown claim"]
        assert exc_info.value.reference == "CLM-1"

    def test_failed_task_rejected(self):
        with pytest.raises(RejectedError):
            parse_status_check_response(response_bundle({"resourceType": "Task", "status": "failed"}), "CLM-1")


@pytest.mark.unit
class TestDateParsing:
    """Test lenient FHIR date parsing"""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2026-11-17", date(2026, 11, 17)),
            ("2026-11-17T10:00:00+03:00", date(2026, 11, 17)),
            ("2026-13-45", None),
            ("not-a-date", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse_fhir_date(self, value, expected):
        assert parse_fhir_date(value) == expected
