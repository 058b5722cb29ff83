"""
FHIR Resource Builders for Exchange Messages.

Source: NPHIES FHIR Implementation Guide (nphies-fs profiles 1.0.0)
Verified: 2026-10-18

Pure helpers shared by the request, poll and cancel message builders.
Resource ids are derived from the submission id so rebuilding the same
snapshot yields the same resources; only Bundle.id is fresh per build.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import NAMESPACE_URL, uuid5

from src.core.enums import EncounterClass, SubmissionKind
from src.schemas.master_data import InsurerRecord, PatientRecord, ProviderRecord
from src.schemas.submission import Attachment, SupportingInfo


# =============================================================================
# Systems and Profiles
# =============================================================================

STRUCTURE_DEFINITION = "http://nphies.sa/fhir/ksa/nphies-fs/StructureDefinition"
TERMINOLOGY = "http://nphies.sa/terminology/CodeSystem"

BUNDLE_PROFILE = f"{STRUCTURE_DEFINITION}/bundle|1.0.0"
MESSAGE_HEADER_PROFILE = f"{STRUCTURE_DEFINITION}/message-header|1.0.0"
PATIENT_PROFILE = f"{STRUCTURE_DEFINITION}/patient|1.0.0"
PROVIDER_PROFILE = f"{STRUCTURE_DEFINITION}/provider-organization|1.0.0"
INSURER_PROFILE = f"{STRUCTURE_DEFINITION}/insurer-organization|1.0.0"
COVERAGE_PROFILE = f"{STRUCTURE_DEFINITION}/coverage|1.0.0"
ENCOUNTER_PROFILE = f"{STRUCTURE_DEFINITION}/encounter|1.0.0"
TASK_PROFILE = f"{STRUCTURE_DEFINITION}/task|1.0.0"
POLL_PROFILE = f"{STRUCTURE_DEFINITION}/poll-request|1.0.0"

MESSAGE_EVENTS_SYSTEM = f"{TERMINOLOGY}/ksa-message-events"
PROVIDER_LICENSE_SYSTEM = "http://nphies.sa/license/provider-license"
PAYER_LICENSE_SYSTEM = "http://nphies.sa/license/payer-license"
NPHIES_LICENSE_SYSTEM = "http://nphies.sa/license/nphies"
CLAIM_INFO_CATEGORY_SYSTEM = f"{TERMINOLOGY}/claim-information-category"
DIAGNOSIS_TYPE_SYSTEM = f"{TERMINOLOGY}/diagnosis-type"
RELATED_CLAIM_SYSTEM = f"{TERMINOLOGY}/related-claim-relationship"
PRIORAUTH_IDENTIFIER_SYSTEM = "http://nphies.sa/identifiers/priorauth"
UCUM_SYSTEM = "http://unitsofmeasure.org"

PATIENT_IDENTIFIER_SYSTEMS = {
    "NI": "http://nphies.sa/identifier/nationalid",
    "PRC": "http://nphies.sa/identifier/iqama",
    "PPN": "http://nphies.sa/identifier/passportnumber",
}

# Wire code for the claim-type system
CLAIM_TYPE_CODES = {
    SubmissionKind.INSTITUTIONAL: "institutional",
    SubmissionKind.PROFESSIONAL: "professional",
    SubmissionKind.PHARMACY: "pharmacy",
    SubmissionKind.DENTAL: "oral",
    SubmissionKind.VISION: "vision",
}

CLAIM_SUBTYPE_CODES = {
    EncounterClass.INPATIENT: "ip",
    EncounterClass.DAYCASE: "ip",
    EncounterClass.EMERGENCY: "emr",
    EncounterClass.AMBULATORY: "op",
    EncounterClass.HOME: "op",
    EncounterClass.TELEMEDICINE: "op",
}

ENCOUNTER_CLASS_CODES = {
    EncounterClass.AMBULATORY: ("AMB", "ambulatory"),
    EncounterClass.EMERGENCY: ("EMER", "emergency"),
    EncounterClass.INPATIENT: ("IMP", "inpatient encounter"),
    EncounterClass.DAYCASE: ("SS", "short stay"),
    EncounterClass.HOME: ("HH", "home health"),
    EncounterClass.TELEMEDICINE: ("VR", "virtual"),
}

UCUM_CODES = {
    "day": "d",
    "days": "d",
    "d": "d",
    "kg": "kg",
    "g": "g",
    "cm": "cm",
    "mmhg": "mm[Hg]",
    "mm[hg]": "mm[Hg]",
    "/min": "/min",
    "bpm": "/min",
    "celsius": "Cel",
    "cel": "Cel",
    "%": "%",
    "hour": "h",
    "hours": "h",
}

# Item-level extensions
EXT_PACKAGE = f"{STRUCTURE_DEFINITION}/extension-package"
EXT_PATIENT_SHARE = f"{STRUCTURE_DEFINITION}/extension-patient-share"
EXT_PAYER_SHARE = f"{STRUCTURE_DEFINITION}/extension-payer-share"
EXT_TAX = f"{STRUCTURE_DEFINITION}/extension-tax"
# Claim-level extensions
EXT_ENCOUNTER = f"{STRUCTURE_DEFINITION}/extension-encounter"
EXT_TRANSFER = f"{STRUCTURE_DEFINITION}/extension-transfer"

PROVIDER_BASE_URL = "http://provider.com"


# =============================================================================
# Primitive Helpers
# =============================================================================


def resource_id(submission_id: str, role: str) -> str:
    """Stable resource id for a submission and resource role."""
    return str(uuid5(NAMESPACE_URL, f"submission:{submission_id}:{role}"))


def full_url(resource_type: str, rid: str) -> str:
    return f"{PROVIDER_BASE_URL}/{resource_type}/{rid}"


def format_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat(timespec="seconds")


def format_date(value: date | datetime) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def money(value: Decimal, currency: str) -> dict[str, Any]:
    return {"value": float(value), "currency": currency}


def coding(system: str, code: str, display: Optional[str] = None) -> dict[str, Any]:
    entry: dict[str, Any] = {"system": system, "code": code}
    if display:
        entry["display"] = display
    return entry


def codeable(system: str, code: str, display: Optional[str] = None) -> dict[str, Any]:
    return {"coding": [coding(system, code, display)]}


def ucum_code(unit: Optional[str]) -> str:
    if not unit:
        return "d"
    return UCUM_CODES.get(unit.strip().lower(), unit)


def provider_identifier_system(provider_domain: str) -> str:
    """Base system for provider-assigned identifiers."""
    return f"http://{provider_domain.lower()}.com.sa/identifiers"


# =============================================================================
# Resource Builders
# =============================================================================


def build_message_header(
    header_id: str,
    event_code: str,
    sender_license: str,
    receiver_license: str,
    focus_url: Optional[str] = None,
    receiver_system: str = PAYER_LICENSE_SYSTEM,
) -> dict[str, Any]:
    """MessageHeader entry addressed from the provider to the receiver license."""
    header: dict[str, Any] = {
        "resourceType": "MessageHeader",
        "id": header_id,
        "meta": {"profile": [MESSAGE_HEADER_PROFILE]},
        "eventCoding": coding(MESSAGE_EVENTS_SYSTEM, event_code),
        "destination": [
            {
                "endpoint": f"{receiver_system}/{receiver_license}",
                "receiver": {
                    "type": "Organization",
                    "identifier": {"system": receiver_system, "value": receiver_license},
                },
            }
        ],
        "sender": {
            "type": "Organization",
            "identifier": {"system": PROVIDER_LICENSE_SYSTEM, "value": sender_license},
        },
        "source": {"endpoint": PROVIDER_BASE_URL},
    }
    if focus_url:
        header["focus"] = [{"reference": focus_url}]
    return {"fullUrl": f"urn:uuid:{header_id}", "resource": header}


def build_patient(rid: str, patient: PatientRecord) -> dict[str, Any]:
    system = PATIENT_IDENTIFIER_SYSTEMS.get(patient.identifier_type, PATIENT_IDENTIFIER_SYSTEMS["NI"])
    resource: dict[str, Any] = {
        "resourceType": "Patient",
        "id": rid,
        "meta": {"profile": [PATIENT_PROFILE]},
        "identifier": [
            {
                "type": codeable("http://terminology.hl7.org/CodeSystem/v2-0203", patient.identifier_type),
                "system": system,
                "value": patient.identifier,
            }
        ],
        "active": True,
        "name": [{"use": "official", "text": patient.name}],
        "gender": patient.gender,
    }
    if patient.birth_date:
        resource["birthDate"] = format_date(patient.birth_date)
    if patient.phone:
        resource["telecom"] = [{"system": "phone", "value": patient.phone}]
    return {"fullUrl": full_url("Patient", rid), "resource": resource}


def build_provider_organization(rid: str, provider: ProviderRecord) -> dict[str, Any]:
    resource = {
        "resourceType": "Organization",
        "id": rid,
        "meta": {"profile": [PROVIDER_PROFILE]},
        "identifier": [{"system": PROVIDER_LICENSE_SYSTEM, "value": provider.license}],
        "active": True,
        "type": [codeable("http://nphies.sa/terminology/CodeSystem/organization-type", "prov")],
        "name": provider.name,
        "extension": [
            {
                "url": f"{STRUCTURE_DEFINITION}/extension-provider-type",
                "valueCodeableConcept": codeable(f"{TERMINOLOGY}/provider-type", provider.provider_type),
            }
        ],
    }
    return {"fullUrl": full_url("Organization", rid), "resource": resource}


def build_insurer_organization(rid: str, insurer: InsurerRecord) -> dict[str, Any]:
    resource = {
        "resourceType": "Organization",
        "id": rid,
        "meta": {"profile": [INSURER_PROFILE]},
        "identifier": [{"system": PAYER_LICENSE_SYSTEM, "value": insurer.license}],
        "active": True,
        "type": [codeable("http://nphies.sa/terminology/CodeSystem/organization-type", "ins")],
        "name": insurer.name,
    }
    return {"fullUrl": full_url("Organization", rid), "resource": resource}


def build_coverage(
    rid: str,
    patient_rid: str,
    insurer_rid: str,
    patient: PatientRecord,
) -> dict[str, Any]:
    patient_ref = {"reference": f"Patient/{patient_rid}"}
    resource = {
        "resourceType": "Coverage",
        "id": rid,
        "meta": {"profile": [COVERAGE_PROFILE]},
        "identifier": [
            {"system": "http://payer.com/memberid", "value": patient.member_id or patient.identifier}
        ],
        "status": "active",
        "type": codeable(f"{TERMINOLOGY}/coverage-type", "EHCPOL", "extended healthcare"),
        "policyHolder": patient_ref,
        "subscriber": patient_ref,
        "beneficiary": patient_ref,
        "relationship": codeable(
            "http://terminology.hl7.org/CodeSystem/subscriber-relationship", "self"
        ),
        "payor": [{"reference": f"Organization/{insurer_rid}"}],
    }
    return {"fullUrl": full_url("Coverage", rid), "resource": resource}


def build_encounter(
    rid: str,
    patient_rid: str,
    provider_rid: str,
    encounter_class: EncounterClass,
    start: datetime,
    end: Optional[datetime] = None,
) -> dict[str, Any]:
    code, display = ENCOUNTER_CLASS_CODES[encounter_class]
    period: dict[str, str] = {"start": format_datetime(start)}
    if end:
        period["end"] = format_datetime(end)
    resource = {
        "resourceType": "Encounter",
        "id": rid,
        "meta": {"profile": [ENCOUNTER_PROFILE]},
        "status": "planned",
        "class": coding("http://terminology.hl7.org/CodeSystem/v3-ActCode", code, display),
        "subject": {"reference": f"Patient/{patient_rid}"},
        "period": period,
        "serviceProvider": {"reference": f"Organization/{provider_rid}"},
    }
    return {"fullUrl": full_url("Encounter", rid), "resource": resource}


def build_binary(rid: str, attachment: Attachment) -> dict[str, Any]:
    resource = {
        "resourceType": "Binary",
        "id": rid,
        "contentType": attachment.content_type,
        "data": attachment.data,
    }
    return {"fullUrl": full_url("Binary", rid), "resource": resource}


def build_supporting_info(info: SupportingInfo) -> dict[str, Any]:
    """supportingInfo element; value[x] picks the first populated value field."""
    category = info.category or ""
    element: dict[str, Any] = {
        "sequence": info.sequence,
        "category": codeable(CLAIM_INFO_CATEGORY_SYSTEM, category),
    }
    if category == "chief-complaint" and not info.code:
        element["code"] = {"text": info.value_string or "Chief complaint"}
    elif info.code:
        element["code"] = codeable(
            info.code_system or f"{TERMINOLOGY}/supporting-info-code",
            info.code,
            info.code_display,
        )

    if info.timing_date:
        element["timingDate"] = format_date(info.timing_date)

    if info.value_string is not None and category != "chief-complaint":
        element["valueString"] = info.value_string
    elif info.value_quantity is not None:
        element["valueQuantity"] = {
            "value": float(info.value_quantity),
            "system": UCUM_SYSTEM,
            "code": ucum_code(info.value_unit),
        }
    elif info.value_boolean is not None:
        element["valueBoolean"] = info.value_boolean

    if info.reason:
        element["reason"] = codeable(f"{TERMINOLOGY}/supporting-info-reason", info.reason)
    return element


def wrap_bundle(
    bundle_id: str,
    timestamp: datetime,
    entries: list[dict[str, Any]],
) -> dict[str, Any]:
    """Message Bundle around the given entries (MessageHeader first)."""
    return {
        "resourceType": "Bundle",
        "id": bundle_id,
        "meta": {"profile": [BUNDLE_PROFILE]},
        "type": "message",
        "timestamp": format_datetime(timestamp),
        "entry": entries,
    }


class MessageIdentity:
    """Licenses and domain stamped on every outgoing message."""

    def __init__(
        self,
        provider_domain: str = "PR-FHIR",
        provider_license: str = "1010613708",
        insurer_license: str = "INS-FHIR",
        exchange_license: str = "NPHIES",
    ):
        self.provider_domain = provider_domain
        self.provider_license = provider_license
        self.insurer_license = insurer_license
        self.exchange_license = exchange_license

    @classmethod
    def from_settings(cls, settings: Any) -> "MessageIdentity":
        """Build from ExchangeSettings."""
        return cls(
            provider_domain=settings.PROVIDER_DOMAIN,
            provider_license=settings.PROVIDER_LICENSE,
            insurer_license=settings.DEFAULT_INSURER_LICENSE,
            exchange_license=settings.EXCHANGE_LICENSE,
        )

    @property
    def identifier_system(self) -> str:
        return provider_identifier_system(self.provider_domain)
