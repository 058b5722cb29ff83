"""
Unit Tests for Poll, Cancel and Status-Check Messages
"""

from datetime import datetime, timezone

import pytest

from src.core.enums import CancelReasonCode
from src.services.bundle import (
    MessageIdentity,
    build_cancel_document,
    build_poll_document,
    build_status_check_document,
    map_cancel_reason,
)
from src.services.bundle.response_parser import first_resource

NOW = datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestCancelReasonMapping:
    """Test free-text to task-reason-code mapping"""

    @pytest.mark.parametrize(
        "reason,expected",
        [
            ("WI", CancelReasonCode.WRONG_INFORMATION),
            ("tas", CancelReasonCode.ALREADY_SUBMITTED),
            ("Wrong patient selected", CancelReasonCode.WRONG_INFORMATION),
            ("Procedure not performed", CancelReasonCode.NOT_PERFORMED),
            ("duplicate request", CancelReasonCode.ALREADY_SUBMITTED),
            ("drug unavailable", CancelReasonCode.SERVICE_UNAVAILABLE),
            ("will resubmit", CancelReasonCode.RESUBMISSION),
        ],
    )
    def test_mapping(self, reason, expected):
        assert map_cancel_reason(reason) == expected

    def test_default_is_not_performed(self):
        assert map_cancel_reason("patient changed mind") == CancelReasonCode.NOT_PERFORMED
        assert map_cancel_reason(None) == CancelReasonCode.NOT_PERFORMED


@pytest.mark.unit
class TestPollDocument:
    """Test poll request messages"""

    def test_addressed_to_exchange(self):
        document = build_poll_document("abc", MessageIdentity(), count=10, now=NOW)
        header = document["entry"][0]["resource"]
        parameters = first_resource(document, "Parameters")

        assert header["eventCoding"]["code"] == "poll"
        assert header["destination"][0]["receiver"]["identifier"]["value"] == "NPHIES"
        assert {"name": "count", "valuePositiveInt": 10} in parameters["parameter"]
        assert {"name": "request-identifier", "valueIdentifier": {"value": "abc"}} in parameters["parameter"]

    def test_stable_content_per_token(self):
        first = build_poll_document("abc", MessageIdentity(), now=NOW)
        second = build_poll_document("abc", MessageIdentity(), now=NOW)

        assert first["id"] != second["id"]
        assert first["entry"] == second["entry"]


@pytest.mark.unit
class TestCancelDocument:
    """Test cancel request messages"""

    def test_task_focuses_request_identifier(self):
        document = build_cancel_document(
            "REF-1",
            "wrong information",
            MessageIdentity(),
            insurer_license="INS-7",
            request_identifier="PA-20261018-ABC123",
            now=NOW,
        )
        task = first_resource(document, "Task")
        header = document["entry"][0]["resource"]

        assert header["eventCoding"]["code"] == "cancel-request"
        assert header["destination"][0]["receiver"]["identifier"]["value"] == "INS-7"
        assert task["focus"]["identifier"]["value"] == "PA-20261018-ABC123"
        assert task["reasonCode"]["coding"][0]["code"] == "WI"
        assert task["authoredOn"] == "2026-10-18"

    def test_task_focuses_reference_without_identifier(self):
        document = build_cancel_document("REF-1", "not performed", MessageIdentity(), now=NOW)
        task = first_resource(document, "Task")
        header = document["entry"][0]["resource"]

        assert task["focus"]["identifier"]["value"] == "REF-1"
        assert header["destination"][0]["receiver"]["identifier"]["value"] == "INS-FHIR"


@pytest.mark.unit
class TestStatusCheckDocument:
    """Test claim status-check messages"""

    def test_task_focuses_claim_identifier(self):
        identity = MessageIdentity()
        document = build_status_check_document("CLM-20261018-ABC123", identity, insurer_license="INS-7", now=NOW)
        header = document["entry"][0]["resource"]
        task = first_resource(document, "Task")

        assert header["eventCoding"]["code"] == "status-check"
        assert header["destination"][0]["receiver"]["identifier"]["value"] == "INS-7"
        assert task["code"]["coding"][0]["code"] == "status"
        assert task["focus"]["identifier"] == {
            "system": f"{identity.identifier_system}/claim",
            "value": "CLM-20261018-ABC123",
        }
        assert "reasonCode" not in task
        assert [e["resource"]["resourceType"] for e in document["entry"]] == [
            "MessageHeader",
            "Task",
            "Organization",
            "Organization",
        ]

    def test_defaults_to_configured_insurer(self):
        document = build_status_check_document("CLM-1", MessageIdentity(), now=NOW)
        header = document["entry"][0]["resource"]

        assert header["destination"][0]["receiver"]["identifier"]["value"] == "INS-FHIR"
