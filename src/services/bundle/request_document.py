"""
Request Message Assembly.

Builds the priorauth-request / claim-request message Bundle for a
submission. Kind-specific values (event code, Claim.use, profiles) come
from the DocumentKindStrategy passed in.
"""

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional
from uuid import uuid4

from src.core.enums import EncounterClass, SubmissionKind
from src.schemas.submission import Submission, SubmissionItem
from src.services.bundle.fhir_resources import (
    CLAIM_SUBTYPE_CODES,
    CLAIM_TYPE_CODES,
    DIAGNOSIS_TYPE_SYSTEM,
    EXT_ENCOUNTER,
    EXT_PACKAGE,
    EXT_PATIENT_SHARE,
    EXT_PAYER_SHARE,
    EXT_TAX,
    EXT_TRANSFER,
    RELATED_CLAIM_SYSTEM,
    MessageIdentity,
    build_binary,
    build_coverage,
    build_encounter,
    build_insurer_organization,
    build_message_header,
    build_patient,
    build_provider_organization,
    build_supporting_info,
    codeable,
    format_date,
    format_datetime,
    full_url,
    money,
    resource_id,
    wrap_bundle,
)
from src.services.master_data import Parties

if TYPE_CHECKING:
    from src.services.bundle.document_kinds import DocumentKindStrategy

# Kinds that carry an Encounter resource when an encounter class is set
ENCOUNTER_KINDS = {SubmissionKind.INSTITUTIONAL, SubmissionKind.PROFESSIONAL, SubmissionKind.DENTAL}


def _build_item(item: SubmissionItem, submission: Submission) -> dict[str, Any]:
    currency = submission.currency
    element: dict[str, Any] = {
        "extension": [
            {"url": EXT_PACKAGE, "valueBoolean": item.is_package},
            {"url": EXT_PATIENT_SHARE, "valueMoney": money(item.patient_share, currency)},
            {"url": EXT_PAYER_SHARE, "valueMoney": money(item.payer_share, currency)},
            {"url": EXT_TAX, "valueMoney": money(item.tax, currency)},
        ],
        "sequence": item.sequence,
        "careTeamSequence": [1],
        "diagnosisSequence": item.diagnosis_sequences
        or [d.sequence for d in submission.diagnoses if d.sequence is not None][:1],
        "productOrService": codeable(
            item.product_or_service_system,
            item.product_or_service_code or "",
            item.product_or_service_display,
        ),
        "quantity": {"value": float(item.quantity)},
        "unitPrice": money(item.unit_price, currency),
        "net": money(item.net, currency),
    }
    if item.information_sequences:
        element["informationSequence"] = item.information_sequences

    serviced = item.serviced_date or submission.encounter_start or submission.created_at
    element["servicedDate"] = format_date(serviced)
    if item.factor != 1:
        element["factor"] = float(item.factor)
    return element


def build_claim(
    submission: Submission,
    strategy: "DocumentKindStrategy",
    identity: MessageIdentity,
) -> dict[str, Any]:
    """The Claim resource at the focus of the request message."""
    sid = submission.id
    claim_rid = resource_id(sid, "claim")
    patient_rid = resource_id(sid, "patient")
    provider_rid = resource_id(sid, "provider")
    insurer_rid = resource_id(sid, "insurer")

    extensions: list[dict[str, Any]] = []
    if _has_encounter(submission):
        extensions.append(
            {"url": EXT_ENCOUNTER, "valueReference": {"reference": f"Encounter/{resource_id(sid, 'encounter')}"}}
        )
    if submission.is_transfer:
        extensions.append({"url": EXT_TRANSFER, "valueBoolean": True})

    encounter_class = submission.encounter_class or EncounterClass.AMBULATORY
    claim: dict[str, Any] = {
        "resourceType": "Claim",
        "id": claim_rid,
        "meta": {"profile": [strategy.profile_for(submission.kind)]},
    }
    if extensions:
        claim["extension"] = extensions

    claim.update(
        {
            "identifier": [
                {
                    "system": f"{identity.identifier_system}/{strategy.identifier_segment}",
                    "value": submission.request_number,
                }
            ],
            "status": "active",
            "type": codeable("http://terminology.hl7.org/CodeSystem/claim-type", CLAIM_TYPE_CODES[submission.kind]),
            "subType": codeable(
                "http://nphies.sa/terminology/CodeSystem/claim-subtype",
                CLAIM_SUBTYPE_CODES[encounter_class],
            ),
            "use": strategy.claim_use,
            "patient": {"reference": f"Patient/{patient_rid}"},
            "created": format_datetime(submission.created_at),
            "insurer": {"reference": f"Organization/{insurer_rid}"},
            "provider": {"reference": f"Organization/{provider_rid}"},
            "priority": codeable(
                "http://terminology.hl7.org/CodeSystem/processpriority", submission.priority.value
            ),
            "payee": {"type": codeable("http://terminology.hl7.org/CodeSystem/payeetype", "provider")},
        }
    )

    if submission.is_update and submission.related_reference:
        claim["related"] = [
            {
                "claim": {
                    "identifier": {
                        "system": strategy.related_identifier_system(identity),
                        "value": submission.related_reference,
                    }
                },
                "relationship": codeable(RELATED_CLAIM_SYSTEM, "prior"),
            }
        ]

    claim["careTeam"] = [
        {
            "sequence": 1,
            "provider": {"reference": f"Organization/{provider_rid}"},
            "role": codeable("http://terminology.hl7.org/CodeSystem/claimcareteamrole", "primary"),
        }
    ]

    if submission.diagnoses:
        claim["diagnosis"] = [
            {
                "sequence": diagnosis.sequence,
                "diagnosisCodeableConcept": codeable(
                    diagnosis.code_system, diagnosis.code or "", diagnosis.display
                ),
                "type": [codeable(DIAGNOSIS_TYPE_SYSTEM, diagnosis.type.value)],
            }
            for diagnosis in submission.diagnoses
        ]

    if submission.supporting_info:
        claim["supportingInfo"] = [build_supporting_info(info) for info in submission.supporting_info]

    insurance: dict[str, Any] = {
        "sequence": 1,
        "focal": True,
        "coverage": {"reference": f"Coverage/{resource_id(sid, 'coverage')}"},
    }
    if strategy.carries_pre_auth_reference and submission.pre_auth_reference:
        insurance["preAuthRef"] = [submission.pre_auth_reference]
    claim["insurance"] = [insurance]

    claim["item"] = [_build_item(item, submission) for item in submission.items]
    claim["total"] = money(sum((item.net for item in submission.items), Decimal("0")), submission.currency)
    return claim


def _has_encounter(submission: Submission) -> bool:
    return (
        submission.kind in ENCOUNTER_KINDS
        and submission.encounter_class is not None
        and submission.encounter_start is not None
    )


def assemble_request_document(
    submission: Submission,
    parties: Parties,
    strategy: "DocumentKindStrategy",
    identity: MessageIdentity,
    bundle_id: Optional[str] = None,
) -> dict[str, Any]:
    """Full request Bundle: MessageHeader, Claim, then referenced resources."""
    sid = submission.id
    claim_rid = resource_id(sid, "claim")
    patient_rid = resource_id(sid, "patient")
    provider_rid = resource_id(sid, "provider")
    insurer_rid = resource_id(sid, "insurer")

    sender = parties.provider.license if parties.provider else identity.provider_license
    receiver = parties.insurer.license if parties.insurer else identity.insurer_license

    entries: list[dict[str, Any]] = [
        build_message_header(
            resource_id(sid, "message-header"),
            strategy.request_event,
            sender_license=sender,
            receiver_license=receiver,
            focus_url=full_url("Claim", claim_rid),
        ),
        {"fullUrl": full_url("Claim", claim_rid), "resource": build_claim(submission, strategy, identity)},
    ]

    if parties.patient:
        entries.append(build_patient(patient_rid, parties.patient))
    if parties.provider:
        entries.append(build_provider_organization(provider_rid, parties.provider))
    if parties.insurer:
        entries.append(build_insurer_organization(insurer_rid, parties.insurer))
    if parties.patient and parties.insurer:
        entries.append(
            build_coverage(resource_id(sid, "coverage"), patient_rid, insurer_rid, parties.patient)
        )
    if _has_encounter(submission):
        entries.append(
            build_encounter(
                resource_id(sid, "encounter"),
                patient_rid,
                provider_rid,
                submission.encounter_class,
                submission.encounter_start,
                submission.encounter_end,
            )
        )
    for index, attachment in enumerate(submission.attachments, start=1):
        if attachment.data:
            entries.append(build_binary(resource_id(sid, f"binary-{index}"), attachment))

    return wrap_bundle(bundle_id or str(uuid4()), submission.updated_at, entries)

