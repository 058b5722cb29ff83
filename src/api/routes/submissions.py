"""
Submission Lifecycle Routes.

Provides, per document kind:
- Draft CRUD (create, read, edit, delete)
- Read-only preview and bundle building
- Exchange commands (send, poll, cancel; status check for claims)
- Read-only poll and status-check message previews
- Linked drafts (transfer, amend, claim from authorization)

Prior authorizations live under /api/v1/prior-authorizations and claims
under /api/v1/claim-submissions; both routers come from one factory.

Source: FastAPI bigger applications guide - https://fastapi.tiangolo.com/tutorial/bigger-applications/
Verified: 2026-10-18
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.deps import get_orchestrator
from src.core.enums import DocumentKind, SubmissionStatus
from src.core.exceptions import LifecycleError
from src.gateways.base import RejectedError, TransportError
from src.schemas.submission import (
    AmendRequest,
    BundleResponse,
    CancelRequest,
    ClaimFromAuthorizationRequest,
    CommandResponse,
    FieldErrorResponse,
    Submission,
    SubmissionCreate,
    SubmissionUpdate,
    TransferRequest,
)
from src.services.bundle import BuildResult, SubmissionValidationError
from src.services.lifecycle_orchestrator import LifecycleOrchestrator
from src.services.submission_state_machine import GuardViolation
from src.services.submission_store import ConflictError, SubmissionNotFoundError
from src.utils.errors import (
    CommandRejectedError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from src.utils.errors import ConflictError as HTTPConflictError
from src.utils.logging import get_logger

logger = get_logger(__name__)

ROUTE_PREFIXES = {
    DocumentKind.PRIOR_AUTHORIZATION: "/api/v1/prior-authorizations",
    DocumentKind.CLAIM: "/api/v1/claim-submissions",
}


def to_http_error(error: LifecycleError) -> HTTPException:
    """Map a lifecycle exception to the HTTP error returned to the caller."""
    if isinstance(error, SubmissionNotFoundError):
        return NotFoundError(error.message)
    if isinstance(error, SubmissionValidationError):
        return ValidationError([e.to_dict() for e in error.errors])
    if isinstance(error, GuardViolation):
        current = error.current_status.value if error.current_status else None
        return CommandRejectedError({"reason": error.reason, "current_status": current})
    if isinstance(error, ConflictError):
        return HTTPConflictError(error.message)
    if isinstance(error, RejectedError):
        return ValidationError({"message": error.message, "issues": error.issues})
    if isinstance(error, TransportError):
        return UpstreamError(error.message)
    return CommandRejectedError(error.message)


def _bundle_response(result: BuildResult) -> BundleResponse:
    return BundleResponse(
        document=result.document,
        errors=[FieldErrorResponse(**e.to_dict()) for e in result.errors],
    )


def build_submission_router(document_kind: DocumentKind) -> APIRouter:
    """Create the lifecycle router for one document kind."""
    label = document_kind.value.replace("_", " ")
    router = APIRouter(prefix=ROUTE_PREFIXES[document_kind], tags=[label])

    async def load_owned(orchestrator: LifecycleOrchestrator, submission_id: str) -> Submission:
        submission = await orchestrator.get(submission_id)
        if submission.document_kind != document_kind:
            raise SubmissionNotFoundError(submission_id)
        return submission

    @router.post("", response_model=Submission, status_code=status.HTTP_201_CREATED)
    async def create_submission(
        data: SubmissionCreate,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> Submission:
        """Create a draft."""
        return await orchestrator.create(document_kind, data)

    @router.get("", response_model=list[Submission])
    async def list_submissions(
        status_filter: Optional[SubmissionStatus] = Query(None, alias="status"),
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> list[Submission]:
        return await orchestrator.list_submissions(document_kind=document_kind, status=status_filter)

    @router.post("/preview", response_model=BundleResponse)
    async def preview_submission(
        data: SubmissionCreate,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> BundleResponse:
        """Build the document for unsaved form data. Nothing is stored."""
        result = await orchestrator.preview(document_kind, data)
        return _bundle_response(result)

    @router.get("/{submission_id}", response_model=Submission)
    async def get_submission(
        submission_id: str,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> Submission:
        try:
            return await load_owned(orchestrator, submission_id)
        except LifecycleError as e:
            raise to_http_error(e) from e

    @router.patch("/{submission_id}", response_model=Submission)
    async def update_submission(
        submission_id: str,
        data: SubmissionUpdate,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> Submission:
        """Edit a draft or error submission in place."""
        try:
            await load_owned(orchestrator, submission_id)
            return await orchestrator.update(submission_id, data)
        except LifecycleError as e:
            raise to_http_error(e) from e

    @router.delete("/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_submission(
        submission_id: str,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> None:
        """Delete a draft. Anything already transmitted is kept."""
        try:
            await load_owned(orchestrator, submission_id)
            await orchestrator.delete(submission_id)
        except LifecycleError as e:
            raise to_http_error(e) from e

    @router.get("/{submission_id}/bundle", response_model=BundleResponse)
    async def get_submission_bundle(
        submission_id: str,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> BundleResponse:
        try:
            await load_owned(orchestrator, submission_id)
            result = await orchestrator.get_bundle(submission_id)
        except LifecycleError as e:
            raise to_http_error(e) from e
        return _bundle_response(result)

    @router.post("/{submission_id}/send", response_model=CommandResponse)
    async def send_submission(
        submission_id: str,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> CommandResponse:
        """Transmit a draft, or retransmit an error submission."""
        try:
            await load_owned(orchestrator, submission_id)
            return await orchestrator.send(submission_id)
        except LifecycleError as e:
            raise to_http_error(e) from e

    @router.post("/{submission_id}/poll", response_model=CommandResponse)
    async def poll_submission(
        submission_id: str,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> CommandResponse:
        try:
            await load_owned(orchestrator, submission_id)
            return await orchestrator.poll(submission_id)
        except LifecycleError as e:
            raise to_http_error(e) from e

    @router.get("/{submission_id}/poll/preview", response_model=BundleResponse)
    async def preview_poll(
        submission_id: str,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> BundleResponse:
        """Build the poll message for a queued submission. Nothing is transmitted."""
        try:
            await load_owned(orchestrator, submission_id)
            document = await orchestrator.preview_poll(submission_id)
        except LifecycleError as e:
            raise to_http_error(e) from e
        return BundleResponse(document=document)

    @router.post("/{submission_id}/cancel", response_model=CommandResponse)
    async def cancel_submission(
        submission_id: str,
        request: CancelRequest,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> CommandResponse:
        try:
            await load_owned(orchestrator, submission_id)
            return await orchestrator.cancel(submission_id, request)
        except LifecycleError as e:
            raise to_http_error(e) from e

    @router.post(
        "/{submission_id}/amend",
        response_model=Submission,
        status_code=status.HTTP_201_CREATED,
    )
    async def amend_submission(
        submission_id: str,
        request: AmendRequest,
        orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
    ) -> Submission:
        """Create an update draft linked to a resolved submission."""
        try:
            await load_owned(orchestrator, submission_id)
            return await orchestrator.amend(submission_id, request)
        except LifecycleError as e:
            raise to_http_error(e) from e

    if document_kind == DocumentKind.CLAIM:

        @router.post("/{submission_id}/status-check", response_model=CommandResponse)
        async def status_check_submission(
            submission_id: str,
            orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
        ) -> CommandResponse:
            """Ask the exchange to re-send the status of a queued claim."""
            try:
                await load_owned(orchestrator, submission_id)
                return await orchestrator.status_check(submission_id)
            except LifecycleError as e:
                raise to_http_error(e) from e

        @router.get("/{submission_id}/status-check/preview", response_model=BundleResponse)
        async def preview_status_check(
            submission_id: str,
            orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
        ) -> BundleResponse:
            try:
                await load_owned(orchestrator, submission_id)
                document = await orchestrator.preview_status_check(submission_id)
            except LifecycleError as e:
                raise to_http_error(e) from e
            return BundleResponse(document=document)

    if document_kind == DocumentKind.PRIOR_AUTHORIZATION:

        @router.post(
            "/{submission_id}/transfer",
            response_model=Submission,
            status_code=status.HTTP_201_CREATED,
        )
        async def transfer_submission(
            submission_id: str,
            request: TransferRequest,
            orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
        ) -> Submission:
            """Create a transfer draft addressed to another provider."""
            try:
                await load_owned(orchestrator, submission_id)
                return await orchestrator.transfer(submission_id, request)
            except LifecycleError as e:
                raise to_http_error(e) from e

        @router.post(
            "/{submission_id}/claim",
            response_model=Submission,
            status_code=status.HTTP_201_CREATED,
        )
        async def create_claim_from_authorization(
            submission_id: str,
            request: Optional[ClaimFromAuthorizationRequest] = None,
            orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
        ) -> Submission:
            """Create a claim draft from an approved prior authorization."""
            try:
                await load_owned(orchestrator, submission_id)
                return await orchestrator.create_claim_from_authorization(submission_id, request)
            except LifecycleError as e:
                raise to_http_error(e) from e

    return router


prior_authorization_router = build_submission_router(DocumentKind.PRIOR_AUTHORIZATION)
claim_submission_router = build_submission_router(DocumentKind.CLAIM)
