"""
Exchange Response Parser.

Turns response Bundles into gateway result types:

- ClaimResponse.outcome "queued"             -> Queued
- adjudication-outcome extension             -> approved / partial / denied
- ClaimResponse.outcome "partial"            -> partial (no extension)
- ClaimResponse.outcome "complete"           -> approved (no extension)
- ClaimResponse.outcome "error", or an
  OperationOutcome with error/fatal issues   -> RejectedError

Transfer authorizations additionally carry the receiving provider's
authorization number and period as ClaimResponse extensions.
"""

from datetime import date
from typing import Any, Iterator, Optional

from src.core.enums import ExchangeDecision
from src.gateways.base import (
    CancelAck,
    ExchangeOutcome,
    PollResult,
    Queued,
    RejectedError,
    StatusCheckAck,
    StillPending,
    SubmitResult,
)

ADJUDICATION_OUTCOME_EXTENSION = "extension-adjudication-outcome"
TRANSFER_AUTH_NUMBER_EXTENSION = "extension-transferAuthorizationNumber"
TRANSFER_AUTH_PROVIDER_EXTENSION = "extension-transferAuthorizationProvider"
TRANSFER_AUTH_PERIOD_EXTENSION = "extension-transferAuthorizationPeriod"

ADJUDICATION_DECISIONS = {
    "approved": ExchangeDecision.APPROVED,
    "partial": ExchangeDecision.PARTIAL,
    "rejected": ExchangeDecision.DENIED,
    "denied": ExchangeDecision.DENIED,
}

REJECTED_TASK_STATUSES = {"rejected", "failed"}


def iter_resources(bundle: dict[str, Any], resource_type: str) -> Iterator[dict[str, Any]]:
    """Yield resources of a type, descending into nested Bundles (poll responses)."""
    for entry in bundle.get("entry") or []:
        resource = entry.get("resource") or {}
        if resource.get("resourceType") == resource_type:
            yield resource
        if resource.get("resourceType") == "Bundle":
            yield from iter_resources(resource, resource_type)


def first_resource(bundle: dict[str, Any], resource_type: str) -> Optional[dict[str, Any]]:
    return next(iter_resources(bundle, resource_type), None)


def collect_issues(bundle: dict[str, Any]) -> list[str]:
    """Error/fatal OperationOutcome issues as 'code: text' strings."""
    issues: list[str] = []
    for outcome in iter_resources(bundle, "OperationOutcome"):
        for issue in outcome.get("issue") or []:
            if issue.get("severity") not in ("error", "fatal"):
                continue
            code = _first_code(issue.get("details")) or issue.get("code") or "error"
            text = (issue.get("details") or {}).get("text") or issue.get("diagnostics") or ""
            issues.append(f"{code}: {text}".rstrip(": "))
    return issues


def _first_code(concept: Optional[dict[str, Any]]) -> Optional[str]:
    codings = (concept or {}).get("coding") or []
    return codings[0].get("code") if codings else None


def _extension(resource: dict[str, Any], url_suffix: str) -> Optional[dict[str, Any]]:
    for extension in resource.get("extension") or []:
        if url_suffix in (extension.get("url") or ""):
            return extension
    return None


def _adjudication_outcome(claim_response: dict[str, Any]) -> Optional[str]:
    extension = _extension(claim_response, ADJUDICATION_OUTCOME_EXTENSION)
    return _first_code(extension.get("valueCodeableConcept")) if extension else None


def _request_identifier(claim_response: dict[str, Any]) -> Optional[str]:
    return ((claim_response.get("request") or {}).get("identifier") or {}).get("value")


def _response_reference(claim_response: dict[str, Any]) -> Optional[str]:
    if claim_response.get("preAuthRef"):
        return claim_response["preAuthRef"]
    identifiers = claim_response.get("identifier") or []
    if identifiers and identifiers[0].get("value"):
        return identifiers[0]["value"]
    return claim_response.get("id")


def parse_fhir_date(value: Optional[str]) -> Optional[date]:
    """Date part of a FHIR date/dateTime; None when missing or unparseable."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _transfer_fields(claim_response: dict[str, Any]) -> dict[str, Any]:
    number = _extension(claim_response, TRANSFER_AUTH_NUMBER_EXTENSION)
    provider = _extension(claim_response, TRANSFER_AUTH_PROVIDER_EXTENSION)
    period = (_extension(claim_response, TRANSFER_AUTH_PERIOD_EXTENSION) or {}).get("valuePeriod") or {}
    return {
        "transfer_authorization_number": (number or {}).get("valueString"),
        "transfer_authorization_provider": (
            ((provider or {}).get("valueReference") or {}).get("identifier") or {}
        ).get("value"),
        "transfer_period_start": parse_fhir_date(period.get("start")),
        "transfer_period_end": parse_fhir_date(period.get("end")),
    }


def _claim_identifier(request_document: dict[str, Any]) -> Optional[str]:
    claim = first_resource(request_document, "Claim")
    if not claim:
        return None
    identifiers = claim.get("identifier") or []
    return identifiers[0].get("value") if identifiers else None


def outcome_from_claim_response(claim_response: dict[str, Any]) -> Optional[ExchangeOutcome]:
    """Decision from a ClaimResponse, or None when it is still queued."""
    outcome = claim_response.get("outcome")
    reference = _response_reference(claim_response)

    if outcome == "queued":
        return None
    if outcome == "error":
        raise RejectedError(
            claim_response.get("disposition") or "Exchange reported an error outcome",
            issues=[_first_code(e.get("code")) or "error" for e in claim_response.get("error") or []],
            reference=reference,
        )

    adjudication = _adjudication_outcome(claim_response)
    if adjudication in ADJUDICATION_DECISIONS:
        decision = ADJUDICATION_DECISIONS[adjudication]
    elif outcome == "partial":
        decision = ExchangeDecision.PARTIAL
    else:
        decision = ExchangeDecision.APPROVED

    return ExchangeOutcome(
        decision=decision,
        reference=reference,
        disposition=claim_response.get("disposition"),
        authorization_period_end=parse_fhir_date((claim_response.get("preAuthPeriod") or {}).get("end")),
        raw=claim_response,
        **_transfer_fields(claim_response),
    )


def parse_submit_response(
    response: dict[str, Any],
    request_document: dict[str, Any],
) -> SubmitResult:
    """Interpret the exchange's answer to a request message."""
    issues = collect_issues(response)
    claim_response = first_resource(response, "ClaimResponse")

    if issues and claim_response is None:
        raise RejectedError(
            f"Exchange rejected the document: {issues[0]}",
            issues=issues,
            reference=response.get("id"),
        )
    if claim_response is None:
        raise RejectedError("Response contains no ClaimResponse", reference=response.get("id"))

    outcome = outcome_from_claim_response(claim_response)
    if outcome is None:
        token = _request_identifier(claim_response) or _claim_identifier(request_document)
        if not token:
            raise RejectedError("Queued response carries no request identifier")
        return Queued(token=token, reference=claim_response.get("preAuthRef"))
    return outcome


def parse_poll_response(response: dict[str, Any], token: str) -> PollResult:
    """Find the ClaimResponse answering the token; StillPending when absent."""
    for claim_response in iter_resources(response, "ClaimResponse"):
        identifier = _request_identifier(claim_response)
        if identifier is not None and identifier != token:
            continue
        outcome = outcome_from_claim_response(claim_response)
        if outcome is not None:
            return outcome
    return StillPending(token=token)


def _task_status(response: dict[str, Any], default: str) -> tuple[list[str], str]:
    issues = collect_issues(response)
    task = first_resource(response, "Task")
    return issues, (task or {}).get("status", default)


def parse_cancel_response(response: dict[str, Any], reference: str) -> CancelAck:
    issues, status = _task_status(response, "accepted")

    if issues or status in REJECTED_TASK_STATUSES:
        raise RejectedError(
            f"Exchange refused the cancel request for {reference}",
            issues=issues or [status],
            reference=reference,
        )
    return CancelAck(reference=reference, status=status, raw=response)


def parse_status_check_response(response: dict[str, Any], request_identifier: str) -> StatusCheckAck:
    issues, status = _task_status(response, "accepted")

    if issues or status in REJECTED_TASK_STATUSES:
        raise RejectedError(
            f"Exchange refused the status check for {request_identifier}",
            issues=issues or [status],
            reference=request_identifier,
        )
    return StatusCheckAck(request_identifier=request_identifier, status=status, raw=response)
