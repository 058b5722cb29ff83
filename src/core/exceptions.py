"""
Base exception for the submission lifecycle.

Concrete errors live beside the component that raises them:
gateways.base (TransportError, RejectedError), services.submission_store
(SubmissionNotFoundError, ConflictError), services.submission_state_machine
(GuardViolation) and services.bundle.bundle_builder (SubmissionValidationError).
"""

from typing import Optional


class LifecycleError(Exception):
    """Base exception for rejected lifecycle commands."""

    def __init__(self, message: str, submission_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.submission_id = submission_id
