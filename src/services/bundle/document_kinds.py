"""
Document-Kind Strategies.

Prior authorizations and claims share one lifecycle and one request layout.
What differs is captured here as data plus a small set of extra rules:

- request/response event codes
- Claim.use and profile family
- identifier segment and the related-claim identifier (system and value)
- kind-specific validation
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from src.core.enums import DocumentKind, SubmissionKind
from src.schemas.submission import Submission
from src.services.bundle.fhir_resources import (
    CLAIM_TYPE_CODES,
    PRIORAUTH_IDENTIFIER_SYSTEM,
    STRUCTURE_DEFINITION,
    MessageIdentity,
)
from src.services.bundle.request_document import assemble_request_document
from src.services.bundle.validation import FieldError, validate_submission
from src.services.master_data import Parties

KindRule = Callable[[Submission], list[FieldError]]


def _require_diagnosis(submission: Submission) -> list[FieldError]:
    if submission.diagnoses:
        return []
    return [FieldError("diagnoses", "At least one diagnosis is required for claims")]


def _require_transfer_target(submission: Submission) -> list[FieldError]:
    if submission.is_transfer and not submission.transfer_provider_id:
        return [FieldError("transfer_provider_id", "required for transfer submissions")]
    return []


@dataclass(frozen=True)
class DocumentKindStrategy:
    """Capabilities for one document kind: validate and build_document."""

    document_kind: DocumentKind
    request_event: str
    response_event: str
    claim_use: str
    profile_suffix: str
    identifier_segment: str
    request_number_prefix: str
    carries_pre_auth_reference: bool = False
    relates_by_request_number: bool = False
    rules: tuple[KindRule, ...] = field(default_factory=tuple)

    def profile_for(self, kind: SubmissionKind) -> str:
        return f"{STRUCTURE_DEFINITION}/{CLAIM_TYPE_CODES[kind]}-{self.profile_suffix}|1.0.0"

    def related_identifier_system(self, identity: MessageIdentity) -> str:
        if self.document_kind == DocumentKind.PRIOR_AUTHORIZATION:
            return PRIORAUTH_IDENTIFIER_SYSTEM
        return f"{identity.identifier_system}/{self.identifier_segment}"

    def related_reference(self, parent: Submission) -> Optional[str]:
        """Value paired with related_identifier_system when superseding parent."""
        if self.relates_by_request_number:
            return parent.request_number
        return parent.exchange_reference

    def validate(self, submission: Submission, parties: Parties) -> list[FieldError]:
        errors = validate_submission(submission, parties)
        for rule in self.rules:
            errors.extend(rule(submission))
        return errors

    def build_document(
        self,
        submission: Submission,
        parties: Parties,
        identity: MessageIdentity,
        bundle_id: Optional[str] = None,
    ) -> dict[str, Any]:
        return assemble_request_document(submission, parties, self, identity, bundle_id)


PRIOR_AUTHORIZATION = DocumentKindStrategy(
    document_kind=DocumentKind.PRIOR_AUTHORIZATION,
    request_event="priorauth-request",
    response_event="priorauth-response",
    claim_use="preauthorization",
    profile_suffix="priorauth",
    identifier_segment="authorization",
    request_number_prefix="PA",
    rules=(_require_transfer_target,),
)

CLAIM = DocumentKindStrategy(
    document_kind=DocumentKind.CLAIM,
    request_event="claim-request",
    response_event="claim-response",
    claim_use="claim",
    profile_suffix="claim",
    identifier_segment="claim",
    request_number_prefix="CLM",
    carries_pre_auth_reference=True,
    relates_by_request_number=True,
    rules=(_require_diagnosis,),
)

STRATEGIES: dict[DocumentKind, DocumentKindStrategy] = {
    DocumentKind.PRIOR_AUTHORIZATION: PRIOR_AUTHORIZATION,
    DocumentKind.CLAIM: CLAIM,
}


def get_strategy(document_kind: DocumentKind) -> DocumentKindStrategy:
    return STRATEGIES[document_kind]
