"""
Poll, Cancel and Status-Check Messages.

Source: NPHIES use cases "poll", "cancel" and "status-check"
Verified: 2026-10-18

None of these messages depends on submission content beyond an identifier, so
the exchange client can build them from the arguments of poll(),
cancel_request() or status_check() alone.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import NAMESPACE_URL, uuid4, uuid5

from src.core.enums import CancelReasonCode
from src.services.bundle.fhir_resources import (
    NPHIES_LICENSE_SYSTEM,
    PAYER_LICENSE_SYSTEM,
    PRIORAUTH_IDENTIFIER_SYSTEM,
    PROVIDER_LICENSE_SYSTEM,
    TASK_PROFILE,
    TERMINOLOGY,
    MessageIdentity,
    build_message_header,
    codeable,
    format_date,
    full_url,
    wrap_bundle,
)

POLL_EVENT = "poll"
CANCEL_EVENT = "cancel-request"
STATUS_CHECK_EVENT = "status-check"
POLL_MESSAGE_TYPES = ("priorauth-response", "claim-response", "communication-request")

CANCEL_REASON_DISPLAYS = {
    CancelReasonCode.WRONG_INFORMATION: "wrong information",
    CancelReasonCode.NOT_PERFORMED: "service not performed",
    CancelReasonCode.ALREADY_SUBMITTED: "transaction already submitted",
    CancelReasonCode.SERVICE_UNAVAILABLE: "Product/Service is unavailable",
    CancelReasonCode.RESUBMISSION: "Claim Re-submission.",
}

# Checked in order; first keyword hit wins
_REASON_KEYWORDS: list[tuple[CancelReasonCode, tuple[str, ...]]] = [
    (CancelReasonCode.WRONG_INFORMATION, ("wrong", "incorrect", "error")),
    (CancelReasonCode.NOT_PERFORMED, ("not performed", "not done", "cancelled")),
    (CancelReasonCode.ALREADY_SUBMITTED, ("already", "duplicate", "submitted")),
    (CancelReasonCode.SERVICE_UNAVAILABLE, ("unavailable", "not available")),
    (CancelReasonCode.RESUBMISSION, ("resubmit", "re-submit")),
]


def map_cancel_reason(reason: Optional[str]) -> CancelReasonCode:
    """
    Map free-text cancel reason to a task-reason-code.

    Accepts a code directly (case-insensitive), otherwise matches keywords.
    Defaults to NP (service not performed).
    """
    text = (reason or "").strip().lower()
    for code in CancelReasonCode:
        if text == code.value.lower():
            return code
    for code, keywords in _REASON_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return code
    return CancelReasonCode.NOT_PERFORMED


def _stable_id(*parts: str) -> str:
    return str(uuid5(NAMESPACE_URL, ":".join(parts)))


def build_poll_document(
    token: str,
    identity: MessageIdentity,
    count: int = 50,
    message_types: tuple[str, ...] = POLL_MESSAGE_TYPES,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Poll request addressed to the exchange for the queued request identifier."""
    now = now or datetime.now(timezone.utc)
    parameters_id = _stable_id("poll", token, "parameters")

    parameters = {
        "resourceType": "Parameters",
        "id": parameters_id,
        "parameter": [
            *({"name": "message-type", "valueCode": message_type} for message_type in message_types),
            {"name": "count", "valuePositiveInt": count},
            {"name": "request-identifier", "valueIdentifier": {"value": token}},
        ],
    }

    header = build_message_header(
        _stable_id("poll", token, "header"),
        POLL_EVENT,
        sender_license=identity.provider_license,
        receiver_license=identity.exchange_license,
        focus_url=full_url("Parameters", parameters_id),
        receiver_system=NPHIES_LICENSE_SYSTEM,
    )
    return wrap_bundle(
        str(uuid4()),
        now,
        [header, {"fullUrl": full_url("Parameters", parameters_id), "resource": parameters}],
    )


def build_cancel_document(
    reference: str,
    reason: str,
    identity: MessageIdentity,
    insurer_license: Optional[str] = None,
    request_identifier: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Cancel request: MessageHeader, Task, provider and insurer Organizations.

    The Task focuses the original request by its provider identifier when
    known, otherwise by the exchange reference.
    """
    now = now or datetime.now(timezone.utc)
    insurer_license = insurer_license or identity.insurer_license
    task_id = _stable_id("cancel", reference, "task")
    provider_id = _stable_id("cancel", reference, "provider")
    insurer_id = _stable_id("cancel", reference, "insurer")
    reason_code = map_cancel_reason(reason)

    if request_identifier:
        focus_identifier = {
            "system": f"{identity.identifier_system}/authorization",
            "value": request_identifier,
        }
    else:
        focus_identifier = {"system": PRIORAUTH_IDENTIFIER_SYSTEM, "value": reference}

    task = {
        "resourceType": "Task",
        "id": task_id,
        "meta": {"profile": [TASK_PROFILE]},
        "identifier": [
            {"system": f"{identity.identifier_system}/task", "value": f"Cancel_{request_identifier or reference}"}
        ],
        "status": "requested",
        "intent": "order",
        "priority": "routine",
        "code": codeable(f"{TERMINOLOGY}/task-code", "cancel"),
        "focus": {"type": "Claim", "identifier": focus_identifier},
        "authoredOn": format_date(now),
        "lastModified": format_date(now),
        "requester": {"reference": f"Organization/{provider_id}"},
        "owner": {"reference": f"Organization/{insurer_id}"},
        "reasonCode": codeable(
            f"{TERMINOLOGY}/task-reason-code",
            reason_code.value,
            CANCEL_REASON_DISPLAYS[reason_code],
        ),
    }

    entries = [
        build_message_header(
            _stable_id("cancel", reference, "header"),
            CANCEL_EVENT,
            sender_license=identity.provider_license,
            receiver_license=insurer_license,
            focus_url=full_url("Task", task_id),
        ),
        {"fullUrl": full_url("Task", task_id), "resource": task},
        {
            "fullUrl": full_url("Organization", provider_id),
            "resource": {
                "resourceType": "Organization",
                "id": provider_id,
                "identifier": [{"system": PROVIDER_LICENSE_SYSTEM, "value": identity.provider_license}],
                "active": True,
            },
        },
        {
            "fullUrl": full_url("Organization", insurer_id),
            "resource": {
                "resourceType": "Organization",
                "id": insurer_id,
                "identifier": [{"system": PAYER_LICENSE_SYSTEM, "value": insurer_license}],
                "active": True,
            },
        },
    ]
    return wrap_bundle(str(uuid4()), now, entries)


def _organization_entry(resource_id: str, system: str, license_number: str) -> dict[str, Any]:
    return {
        "fullUrl": full_url("Organization", resource_id),
        "resource": {
            "resourceType": "Organization",
            "id": resource_id,
            "identifier": [{"system": system, "value": license_number}],
            "active": True,
        },
    }


def build_status_check_document(
    request_identifier: str,
    identity: MessageIdentity,
    insurer_license: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Status-check request for a queued claim.

    The Task focuses the claim by its provider identifier. The exchange
    acknowledges the Task and delivers the claim's processing status
    through the poll queue.
    """
    now = now or datetime.now(timezone.utc)
    insurer_license = insurer_license or identity.insurer_license
    task_id = _stable_id("status-check", request_identifier, "task")
    provider_id = _stable_id("status-check", request_identifier, "provider")
    insurer_id = _stable_id("status-check", request_identifier, "insurer")

    task = {
        "resourceType": "Task",
        "id": task_id,
        "meta": {"profile": [TASK_PROFILE]},
        "identifier": [
            {"system": f"{identity.identifier_system}/task", "value": f"StatusCheck_{request_identifier}"}
        ],
        "status": "requested",
        "intent": "order",
        "priority": "routine",
        "code": codeable(f"{TERMINOLOGY}/task-code", "status"),
        "focus": {
            "type": "Claim",
            "identifier": {"system": f"{identity.identifier_system}/claim", "value": request_identifier},
        },
        "authoredOn": format_date(now),
        "lastModified": format_date(now),
        "requester": {"reference": f"Organization/{provider_id}"},
        "owner": {"reference": f"Organization/{insurer_id}"},
    }

    entries = [
        build_message_header(
            _stable_id("status-check", request_identifier, "header"),
            STATUS_CHECK_EVENT,
            sender_license=identity.provider_license,
            receiver_license=insurer_license,
            focus_url=full_url("Task", task_id),
        ),
        {"fullUrl": full_url("Task", task_id), "resource": task},
        _organization_entry(provider_id, PROVIDER_LICENSE_SYSTEM, identity.provider_license),
        _organization_entry(insurer_id, PAYER_LICENSE_SYSTEM, insurer_license),
    ]
    return wrap_bundle(str(uuid4()), now, entries)
