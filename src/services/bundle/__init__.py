"""
Exchange message building and parsing.
"""

from src.services.bundle.bundle_builder import BuildResult, BundleBuilder, SubmissionValidationError
from src.services.bundle.document_kinds import (
    CLAIM,
    PRIOR_AUTHORIZATION,
    DocumentKindStrategy,
    get_strategy,
)
from src.services.bundle.exchange_messages import (
    build_cancel_document,
    build_poll_document,
    build_status_check_document,
    map_cancel_reason,
)
from src.services.bundle.fhir_resources import MessageIdentity
from src.services.bundle.response_parser import (
    parse_cancel_response,
    parse_poll_response,
    parse_status_check_response,
    parse_submit_response,
)
from src.services.bundle.validation import FieldError

__all__ = [
    "BundleBuilder",
    "BuildResult",
    "SubmissionValidationError",
    "FieldError",
    "MessageIdentity",
    "DocumentKindStrategy",
    "PRIOR_AUTHORIZATION",
    "CLAIM",
    "get_strategy",
    "build_poll_document",
    "build_cancel_document",
    "build_status_check_document",
    "map_cancel_reason",
    "parse_submit_response",
    "parse_poll_response",
    "parse_cancel_response",
    "parse_status_check_response",
]
