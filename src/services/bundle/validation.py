"""
Structural validation for request documents.

Only the rules the engine must enforce before transmission. Every rule
reports field-scoped errors and never raises; list indices are 0-based.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from src.core.enums import SubmissionKind
from src.schemas.submission import (
    Submission,
    SubmissionDiagnosis,
    SubmissionItem,
    SupportingInfo,
)
from src.services.master_data import Parties

DAYS_SUPPLY_CATEGORY = "days-supply"


@dataclass(frozen=True)
class FieldError:
    """A structural problem with one field of the submission."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def check_sequences(
    name: str,
    entries: Sequence[SubmissionItem | SubmissionDiagnosis | SupportingInfo],
) -> list[FieldError]:
    """Sequences must be present, unique and contiguous from 1."""
    errors: list[FieldError] = []
    seen: set[int] = set()
    for index, entry in enumerate(entries):
        if entry.sequence is None:
            errors.append(FieldError(f"{name}[{index}].sequence", "required"))
        elif entry.sequence in seen:
            errors.append(FieldError(f"{name}[{index}].sequence", f"duplicate sequence {entry.sequence}"))
        else:
            seen.add(entry.sequence)

    if not errors and seen != set(range(1, len(entries) + 1)):
        errors.append(FieldError(name, "sequences must be contiguous starting at 1"))
    return errors


def check_parties(submission: Submission, parties: Parties) -> list[FieldError]:
    errors: list[FieldError] = []
    lookups = (
        ("patient_id", submission.patient_id, parties.patient, "patient"),
        ("provider_id", submission.provider_id, parties.provider, "provider"),
        ("insurer_id", submission.insurer_id, parties.insurer, "insurer"),
    )
    for field_name, reference, record, label in lookups:
        if _blank(reference):
            errors.append(FieldError(field_name, "required"))
        elif record is None:
            errors.append(FieldError(field_name, f"unknown {label} '{reference}'"))
    return errors


def check_items(submission: Submission) -> list[FieldError]:
    if not submission.items:
        return [FieldError("items", "At least one service item is required")]

    errors = check_sequences("items", submission.items)
    diagnosis_sequences = {d.sequence for d in submission.diagnoses}
    info_sequences = {s.sequence for s in submission.supporting_info}

    for index, item in enumerate(submission.items):
        prefix = f"items[{index}]"
        if _blank(item.product_or_service_code):
            errors.append(FieldError(f"{prefix}.product_or_service_code", "required"))
        if item.quantity <= 0:
            errors.append(FieldError(f"{prefix}.quantity", "must be greater than zero"))
        if item.unit_price < 0:
            errors.append(FieldError(f"{prefix}.unit_price", "must not be negative"))
        if item.factor <= 0:
            errors.append(FieldError(f"{prefix}.factor", "must be greater than zero"))
        if item.patient_share < 0 or item.patient_share > item.net:
            errors.append(FieldError(f"{prefix}.patient_share", "must be between zero and the line total"))
        for linked in item.diagnosis_sequences:
            if linked not in diagnosis_sequences:
                errors.append(
                    FieldError(f"{prefix}.diagnosis_sequences", f"unknown diagnosis sequence {linked}")
                )
        for linked in item.information_sequences:
            if linked not in info_sequences:
                errors.append(
                    FieldError(f"{prefix}.information_sequences", f"unknown supporting info sequence {linked}")
                )
    return errors


def check_diagnoses(submission: Submission) -> list[FieldError]:
    errors = check_sequences("diagnoses", submission.diagnoses)
    for index, diagnosis in enumerate(submission.diagnoses):
        if _blank(diagnosis.code):
            errors.append(FieldError(f"diagnoses[{index}].code", "required"))
    return errors


def check_supporting_info(submission: Submission) -> list[FieldError]:
    errors = check_sequences("supporting_info", submission.supporting_info)
    for index, info in enumerate(submission.supporting_info):
        if _blank(info.category):
            errors.append(FieldError(f"supporting_info[{index}].category", "required"))

    if submission.kind == SubmissionKind.PHARMACY and not any(
        info.category == DAYS_SUPPLY_CATEGORY for info in submission.supporting_info
    ):
        errors.append(
            FieldError("supporting_info", "A days-supply entry is required for pharmacy submissions")
        )
    return errors


def check_attachments(submission: Submission) -> list[FieldError]:
    return [
        FieldError(f"attachments[{index}]", "content reference or inline data is required")
        for index, attachment in enumerate(submission.attachments)
        if _blank(attachment.content_reference) and _blank(attachment.data)
    ]


def check_encounter(submission: Submission) -> list[FieldError]:
    errors: list[FieldError] = []
    if submission.kind == SubmissionKind.INSTITUTIONAL and submission.encounter_class is None:
        errors.append(FieldError("encounter_class", "required for institutional submissions"))
    if (
        submission.encounter_start
        and submission.encounter_end
        and submission.encounter_end < submission.encounter_start
    ):
        errors.append(FieldError("encounter_end", "must not be before encounter_start"))
    return errors


def check_links(submission: Submission) -> list[FieldError]:
    errors: list[FieldError] = []
    if submission.is_update and _blank(submission.related_reference):
        errors.append(FieldError("related_reference", "required for update submissions"))
    if submission.is_update and submission.parent_id is None:
        errors.append(FieldError("parent_id", "required for update submissions"))
    return errors


def validate_submission(submission: Submission, parties: Parties) -> list[FieldError]:
    """Rules shared by every document kind."""
    return [
        *check_items(submission),
        *check_parties(submission, parties),
        *check_diagnoses(submission),
        *check_supporting_info(submission),
        *check_attachments(submission),
        *check_encounter(submission),
        *check_links(submission),
    ]
