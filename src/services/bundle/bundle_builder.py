"""
Bundle Builder.

Pure transformation from a submission snapshot to an exchange-ready
message Bundle plus structural errors. No I/O, so it backs both
transmission and the read-only preview/bundle operations.

Rebuilding the same snapshot yields the same document except Bundle.id.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
import logging

from src.core.exceptions import LifecycleError
from src.schemas.submission import Submission
from src.services.bundle.document_kinds import get_strategy
from src.services.bundle.fhir_resources import MessageIdentity
from src.services.bundle.validation import FieldError
from src.services.master_data import Parties

logger = logging.getLogger(__name__)


class SubmissionValidationError(LifecycleError):
    """Submission failed structural validation; nothing was transmitted."""

    def __init__(self, errors: list[FieldError], submission_id: Optional[str] = None):
        summary = "; ".join(str(error) for error in errors)
        super().__init__(f"Submission has {len(errors)} validation error(s): {summary}", submission_id)
        self.errors = errors


@dataclass
class BuildResult:
    """Built document and the structural errors found while building it."""

    document: dict[str, Any]
    errors: list[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def document_id(self) -> str:
        return self.document["id"]

    def raise_for_errors(self, submission_id: Optional[str] = None) -> None:
        if self.errors:
            raise SubmissionValidationError(self.errors, submission_id)


class BundleBuilder:
    """Builds request documents with the strategy for the submission's document kind."""

    def __init__(self, identity: Optional[MessageIdentity] = None):
        self.identity = identity or MessageIdentity()

    def build(self, submission: Submission, parties: Optional[Parties] = None) -> BuildResult:
        """
        Build the request Bundle for a submission.

        Args:
            submission: Snapshot to render
            parties: Resolved patient/provider/insurer records

        Returns:
            BuildResult; the document is produced even when errors are reported
        """
        parties = parties or Parties()
        strategy = get_strategy(submission.document_kind)

        errors = strategy.validate(submission, parties)
        document = strategy.build_document(submission, parties, self.identity)

        if errors:
            logger.debug(f"Submission {submission.id} built with {len(errors)} structural error(s)")
        return BuildResult(document=document, errors=errors)
