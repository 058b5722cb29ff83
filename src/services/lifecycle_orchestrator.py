"""
Submission Lifecycle Orchestrator.

Receives lifecycle commands (create, edit, delete, send, poll, status check,
cancel, transfer, amend, claim-from-authorization) and exchange outcomes, checks
them against the state machine, runs the bundle builder and exchange client,
and advances the submission store.

Ordering for commands that reach the exchange:
1. load + guard check
2. build (send only; structural errors abort before any write)
3. claim the submission via compare-and-transition (send: -> PENDING,
   cancel: is_cancelled set)
4. exchange call bounded by command_timeout_seconds
5. persist the outcome, or restore the prior status with last_error set

One generic engine serves prior authorizations and claims; the document kind
strategy supplies validation and document building.
"""

from datetime import date, datetime, timezone
from typing import Any, Optional
from uuid import uuid4
import asyncio
import logging

from src.core.enums import DocumentKind, SubmissionPriority, SubmissionStatus
from src.gateways.base import (
    ExchangeClient,
    ExchangeOutcome,
    GatewayError,
    Queued,
    RejectedError,
    StillPending,
    TransportError,
)
from src.schemas.submission import (
    AmendRequest,
    CancelRequest,
    ClaimFromAuthorizationRequest,
    CommandResponse,
    Submission,
    SubmissionCreate,
    SubmissionUpdate,
    TransferRequest,
    assign_missing_sequences,
    utc_now,
)
from src.services.bundle import (
    BuildResult,
    BundleBuilder,
    FieldError,
    SubmissionValidationError,
    build_poll_document,
    build_status_check_document,
    get_strategy,
)
from src.services.master_data import MasterDataDirectory
from src.services.submission_state_machine import (
    GuardViolation,
    SubmissionStateMachine,
    TransitionEvent,
    get_submission_state_machine,
)
from src.services.submission_store import ConflictError, SubmissionStore

logger = logging.getLogger(__name__)

SEQUENCED_FIELDS = ("items", "diagnoses", "supporting_info")
NON_NULLABLE_FIELDS = ("kind", "priority", "currency", "items", "diagnoses", "supporting_info", "attachments")
INTERRUPTED = "Transmission interrupted"
PREVIEW_SUBMISSION_ID = "00000000-0000-0000-0000-000000000000"


def generate_request_number(prefix: str) -> str:
    """Provider-side request number, e.g. PA-20261018-3F9A1C."""
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"{prefix}-{today}-{uuid4().hex[:6].upper()}"


def _transfer_authorization(outcome: ExchangeOutcome) -> dict[str, Any]:
    """Transfer authorization fields present on the outcome."""
    fields = {
        "transfer_authorization_number": outcome.transfer_authorization_number,
        "transfer_authorization_provider": outcome.transfer_authorization_provider,
        "transfer_period_start": outcome.transfer_period_start,
        "transfer_period_end": outcome.transfer_period_end,
    }
    return {name: value for name, value in fields.items() if value is not None}


def _sequenced(fields: dict[str, Any]) -> dict[str, Any]:
    """Fill missing sequence numbers in any entry lists present."""
    for name in SEQUENCED_FIELDS:
        if fields.get(name) is not None:
            fields[name] = assign_missing_sequences(fields[name])
    return fields


class LifecycleOrchestrator:
    """
    Lifecycle engine for prior authorizations and claim submissions.

    All collaborators are passed in explicitly so tests can drive the
    state machine with a fake exchange client step by step.
    """

    def __init__(
        self,
        store: SubmissionStore,
        exchange_client: ExchangeClient,
        master_data: MasterDataDirectory,
        builder: Optional[BundleBuilder] = None,
        command_timeout_seconds: float = 90.0,
        state_machine: Optional[SubmissionStateMachine] = None,
    ):
        self.store = store
        self.exchange = exchange_client
        self.master_data = master_data
        self.builder = builder or BundleBuilder()
        self.command_timeout_seconds = command_timeout_seconds
        self.state_machine = state_machine or get_submission_state_machine()

    # =========================================================================
    # Drafts
    # =========================================================================

    async def create(self, document_kind: DocumentKind, data: SubmissionCreate) -> Submission:
        """Create a new draft submission."""
        strategy = get_strategy(document_kind)
        fields = _sequenced(dict(data))
        submission = Submission(
            id=str(uuid4()),
            document_kind=document_kind,
            request_number=generate_request_number(strategy.request_number_prefix),
            status=SubmissionStatus.DRAFT,
            **fields,
        )
        created = await self.store.create(submission)
        logger.info(f"Created {document_kind.value} draft {created.id} ({created.request_number})")
        return created

    async def get(self, submission_id: str) -> Submission:
        return await self.store.load(submission_id)

    async def list_submissions(
        self,
        document_kind: Optional[DocumentKind] = None,
        status: Optional[SubmissionStatus] = None,
    ) -> list[Submission]:
        return await self.store.list_submissions(document_kind=document_kind, status=status)

    async def update(self, submission_id: str, data: SubmissionUpdate) -> Submission:
        """Edit a draft or error submission in place. Omitted fields are kept."""
        current = await self.store.load(submission_id)
        self.state_machine.require(current.status, TransitionEvent.EDIT, submission_id)

        patch = {name: getattr(data, name) for name in data.model_fields_set}
        nulls = [
            FieldError(name, "must not be null")
            for name in NON_NULLABLE_FIELDS
            if name in patch and patch[name] is None
        ]
        if nulls:
            raise SubmissionValidationError(nulls, submission_id)
        patch = _sequenced(patch)
        if not patch:
            return current

        updated = await self.store.compare_and_transition(
            submission_id,
            current.status,
            current.status,
            patch=patch,
            expected_version=current.version,
        )
        logger.info(f"Edited submission {submission_id}: {sorted(patch)}")
        return updated

    async def delete(self, submission_id: str) -> None:
        """Delete a draft. Transmitted submissions are never removed."""
        current = await self.store.load(submission_id)
        self.state_machine.require(current.status, TransitionEvent.DELETE, submission_id)
        await self.store.delete(submission_id, SubmissionStatus.DRAFT)
        logger.info(f"Deleted draft {submission_id}")

    # =========================================================================
    # Read-only Building
    # =========================================================================

    async def preview(self, document_kind: DocumentKind, data: SubmissionCreate) -> BuildResult:
        """Build a document from unsaved form data without touching the store."""
        strategy = get_strategy(document_kind)
        submission = Submission(
            id=PREVIEW_SUBMISSION_ID,
            document_kind=document_kind,
            request_number=f"{strategy.request_number_prefix}-PREVIEW",
            **_sequenced(dict(data)),
        )
        parties = await self.master_data.resolve(submission)
        return self.builder.build(submission, parties)

    async def get_bundle(self, submission_id: str) -> BuildResult:
        """Build the document for a stored submission as it stands now."""
        submission = await self.store.load(submission_id)
        parties = await self.master_data.resolve(submission)
        return self.builder.build(submission, parties)

    # =========================================================================
    # Exchange Commands
    # =========================================================================

    async def send(self, submission_id: str) -> CommandResponse:
        """
        Transmit a draft or error submission.

        Raises:
            GuardViolation: Not in draft or error
            SubmissionValidationError: Structural errors; nothing transmitted
            ConflictError: Another command claimed the submission first
            TransportError: Exchange unreachable; prior status restored
            RejectedError: Exchange rejected the document; status -> error
        """
        current = await self.store.load(submission_id)
        self.state_machine.require(current.status, TransitionEvent.SEND, submission_id)

        parties = await self.master_data.resolve(current)
        build = self.builder.build(current, parties)
        build.raise_for_errors(submission_id)

        previous_status = current.status
        pending = await self.store.compare_and_transition(
            submission_id,
            previous_status,
            SubmissionStatus.PENDING,
            expected_version=current.version,
        )
        logger.info(f"Sending submission {submission_id} as bundle {build.document_id}")

        # Writes after the claim are shielded; a cancelled caller never leaves it PENDING.
        try:
            result = await self._call_exchange(self.exchange.submit(build.document))
        except TransportError as e:
            await asyncio.shield(self._restore(pending, previous_status, str(e)))
            e.submission_id = submission_id
            raise
        except RejectedError as e:
            await asyncio.shield(self._record_rejection(pending, e))
            e.submission_id = submission_id
            raise
        except BaseException as e:
            reason = INTERRUPTED if isinstance(e, asyncio.CancelledError) else f"Unexpected error: {e}"
            await asyncio.shield(self._restore(pending, previous_status, reason))
            raise

        if isinstance(result, Queued):
            transition = self.state_machine.require(pending.status, TransitionEvent.EXCHANGE_QUEUED, submission_id)
            updated = await asyncio.shield(
                self.store.compare_and_transition(
                    submission_id,
                    SubmissionStatus.PENDING,
                    transition.to_status,
                    patch={
                        "polling_token": result.token,
                        "exchange_reference": result.reference or pending.exchange_reference or result.token,
                        "last_transmitted_at": utc_now(),
                        "last_error": None,
                    },
                )
            )
            logger.info(f"Submission {submission_id} queued by the exchange (token {result.token})")
            return CommandResponse(submission=updated, message="Queued by the exchange; poll for the result")

        updated = await asyncio.shield(self._apply_outcome(pending, result, transmitted=True))
        return CommandResponse(submission=updated, message=f"Exchange decision: {result.decision.value}")

    async def poll(self, submission_id: str) -> CommandResponse:
        """
        Ask the exchange for the result of a queued submission.

        StillPending leaves the submission queued and unchanged.
        """
        current = await self.store.load(submission_id)
        self.state_machine.require(current.status, TransitionEvent.POLL, submission_id)
        if not current.polling_token:
            raise GuardViolation("queued submission has no polling token", current.status, submission_id)

        try:
            result = await self._call_exchange(self.exchange.poll(current.polling_token))
        except TransportError as e:
            await self._annotate_error(current, str(e))
            e.submission_id = submission_id
            raise
        except RejectedError as e:
            await self._record_rejection(current, e)
            e.submission_id = submission_id
            raise

        if isinstance(result, StillPending):
            logger.info(f"Submission {submission_id} still pending at the exchange")
            return CommandResponse(submission=current, changed=False, message="No result yet")

        updated = await asyncio.shield(self._apply_outcome(current, result))
        return CommandResponse(submission=updated, message=f"Exchange decision: {result.decision.value}")

    async def status_check(self, submission_id: str) -> CommandResponse:
        """
        Ask the exchange to re-send the status of a queued claim.

        The submission stays queued; the answer arrives through poll.
        """
        current = await self._queued_claim(submission_id)
        insurer_license = await self._insurer_license(current)

        try:
            ack = await self._call_exchange(
                self.exchange.status_check(current.request_number, insurer_license=insurer_license)
            )
        except (TransportError, RejectedError) as e:
            await self._annotate_error(current, str(e))
            e.submission_id = submission_id
            raise

        logger.info(f"Status check for claim {submission_id} {ack.status}")
        return CommandResponse(
            submission=current, changed=False, message=f"Status check {ack.status}; poll for the result"
        )

    async def preview_poll(self, submission_id: str) -> dict[str, Any]:
        """Poll message poll() would send for a queued submission. Nothing is transmitted."""
        current = await self.store.load(submission_id)
        self.state_machine.require(current.status, TransitionEvent.POLL, submission_id)
        token = current.polling_token or current.exchange_reference or current.request_number
        return build_poll_document(token, self.builder.identity)

    async def preview_status_check(self, submission_id: str) -> dict[str, Any]:
        """Status-check message status_check() would send. Nothing is transmitted."""
        current = await self._queued_claim(submission_id)
        insurer_license = await self._insurer_license(current)
        return build_status_check_document(
            current.request_number, self.builder.identity, insurer_license=insurer_license
        )

    async def cancel(self, submission_id: str, request: CancelRequest) -> CommandResponse:
        """
        Cancel a resolved submission at the exchange. The record is flagged, never deleted.

        The submission is claimed (is_cancelled set, status unchanged) before
        the exchange is contacted, so concurrent cancels send one request.
        A failed or interrupted call releases the claim.
        """
        current = await self.store.load(submission_id)
        self.state_machine.require(current.status, TransitionEvent.CANCEL, submission_id)
        if current.is_cancelled:
            raise GuardViolation("a cancel request is already in progress", current.status, submission_id)
        if not current.exchange_reference:
            raise GuardViolation("submission has no exchange reference to cancel", current.status, submission_id)
        if current.authorization_period_end and current.authorization_period_end < date.today():
            raise GuardViolation(
                f"authorization period ended on {current.authorization_period_end.isoformat()}",
                current.status,
                submission_id,
            )

        insurer_license = await self._insurer_license(current)

        claimed = await self.store.compare_and_transition(
            submission_id,
            current.status,
            current.status,
            patch={"is_cancelled": True, "cancellation_reason": request.reason},
            expected_version=current.version,
        )

        try:
            ack = await self._call_exchange(
                self.exchange.cancel_request(
                    claimed.exchange_reference,
                    request.reason,
                    insurer_license=insurer_license,
                    request_identifier=claimed.request_number,
                )
            )
        except BaseException as e:
            error = str(e) if isinstance(e, Exception) else "Cancel request interrupted"
            await asyncio.shield(self._release_cancel(claimed, error))
            if isinstance(e, GatewayError):
                e.submission_id = submission_id
            raise

        updated = await asyncio.shield(
            self.store.compare_and_transition(
                submission_id,
                claimed.status,
                SubmissionStatus.CANCELLED,
                patch={"last_transmitted_at": utc_now(), "last_error": None},
                expected_version=claimed.version,
            )
        )
        logger.info(f"Cancelled submission {submission_id} ({ack.status})")
        return CommandResponse(submission=updated, message=f"Cancel request {ack.status}")

    # =========================================================================
    # Linked Drafts
    # =========================================================================

    async def transfer(self, submission_id: str, request: TransferRequest) -> Submission:
        """Create a transfer draft re-addressing a resolved authorization to another provider."""
        current = await self.store.load(submission_id)
        self.state_machine.require(current.status, TransitionEvent.TRANSFER, submission_id)
        if current.document_kind != DocumentKind.PRIOR_AUTHORIZATION:
            raise GuardViolation("only prior authorizations can be transferred", current.status, submission_id)
        if request.target_provider_id == current.provider_id:
            raise GuardViolation(
                "target provider must differ from the current provider", current.status, submission_id
            )
        if await self.master_data.get_provider(request.target_provider_id) is None:
            raise SubmissionValidationError(
                [FieldError("target_provider_id", f"unknown provider '{request.target_provider_id}'")],
                submission_id,
            )

        strategy = get_strategy(current.document_kind)
        draft = self._linked_draft(
            current,
            current.payload_fields(),
            request_number=generate_request_number(f"{strategy.request_number_prefix}-TRF"),
            is_update=True,
            is_transfer=True,
            transfer_provider_id=request.target_provider_id,
        )
        created = await self.store.create(draft)
        logger.info(f"Transfer draft {created.id} created from {submission_id} to {request.target_provider_id}")
        return created

    async def amend(self, submission_id: str, request: AmendRequest) -> Submission:
        """Create an update draft superseding a resolved submission."""
        current = await self.store.load(submission_id)
        self.state_machine.require(current.status, TransitionEvent.AMEND, submission_id)

        fields = current.payload_fields()
        replacements = {
            name: getattr(request, name)
            for name in ("items", "diagnoses", "supporting_info", "attachments")
            if getattr(request, name) is not None
        }
        fields.update(_sequenced(replacements))

        strategy = get_strategy(current.document_kind)
        draft = self._linked_draft(
            current,
            fields,
            request_number=generate_request_number(f"{strategy.request_number_prefix}-UPD"),
            is_update=True,
        )
        created = await self.store.create(draft)
        logger.info(f"Update draft {created.id} created from {submission_id}")
        return created

    async def create_claim_from_authorization(
        self,
        authorization_id: str,
        request: Optional[ClaimFromAuthorizationRequest] = None,
    ) -> Submission:
        """Derive a claim draft from an approved prior authorization. The authorization is not touched."""
        request = request or ClaimFromAuthorizationRequest()
        authorization = await self.store.load(authorization_id)
        if authorization.document_kind != DocumentKind.PRIOR_AUTHORIZATION:
            raise GuardViolation(
                "claims can only be created from an approved prior authorization",
                authorization.status,
                authorization_id,
            )
        self.state_machine.require(authorization.status, TransitionEvent.CREATE_CLAIM, authorization_id)

        overrides = {o.sequence: o for o in request.item_overrides}
        items = []
        for item in authorization.items:
            update: dict[str, Any] = {}
            override = overrides.get(item.sequence)
            if override is not None:
                if override.product_or_service_code:
                    update["product_or_service_code"] = override.product_or_service_code
                if override.product_or_service_display:
                    update["product_or_service_display"] = override.product_or_service_display
            if request.serviced_date is not None:
                update["serviced_date"] = request.serviced_date
            items.append(item.model_copy(update=update))

        fields = authorization.payload_fields()
        fields["items"] = items
        fields["priority"] = request.priority or authorization.priority or SubmissionPriority.NORMAL

        claim = Submission(
            id=str(uuid4()),
            document_kind=DocumentKind.CLAIM,
            request_number=generate_request_number(get_strategy(DocumentKind.CLAIM).request_number_prefix),
            parent_id=authorization.id,
            pre_auth_reference=authorization.exchange_reference,
            **fields,
        )
        created = await self.store.create(claim)
        logger.info(f"Claim draft {created.id} created from authorization {authorization_id}")
        return created

    # =========================================================================
    # Internals
    # =========================================================================

    def _linked_draft(self, source: Submission, fields: dict[str, Any], **links: Any) -> Submission:
        return Submission(
            id=str(uuid4()),
            document_kind=source.document_kind,
            parent_id=source.id,
            related_reference=get_strategy(source.document_kind).related_reference(source),
            pre_auth_reference=source.pre_auth_reference,
            **fields,
            **links,
        )

    async def _queued_claim(self, submission_id: str) -> Submission:
        current = await self.store.load(submission_id)
        if current.document_kind != DocumentKind.CLAIM:
            raise GuardViolation("status checks apply to claims only", current.status, submission_id)
        self.state_machine.require(current.status, TransitionEvent.STATUS_CHECK, submission_id)
        return current

    async def _insurer_license(self, submission: Submission) -> Optional[str]:
        parties = await self.master_data.resolve(submission)
        return parties.insurer.license if parties.insurer else None

    async def _call_exchange(self, call: Any) -> Any:
        """Await an exchange coroutine with the command timeout."""
        try:
            return await asyncio.wait_for(call, timeout=self.command_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Exchange call timed out after {self.command_timeout_seconds}s",
                provider=self.exchange.provider_name,
                original_error=e,
            ) from e

    async def _apply_outcome(
        self, current: Submission, outcome: ExchangeOutcome, transmitted: bool = False
    ) -> Submission:
        event, _ = self.state_machine.decision_target(outcome.decision)
        transition = self.state_machine.require(current.status, event, current.id)
        updated = await self.store.compare_and_transition(
            current.id,
            current.status,
            transition.to_status,
            patch={
                "exchange_reference": outcome.reference or current.exchange_reference or current.request_number,
                "disposition": outcome.disposition,
                "authorization_period_end": outcome.authorization_period_end,
                "polling_token": None,
                "last_transmitted_at": utc_now() if transmitted else current.last_transmitted_at,
                "last_error": None,
                **_transfer_authorization(outcome),
            },
            expected_version=current.version,
        )
        logger.info(f"Submission {current.id} resolved as {updated.status.value} ({updated.exchange_reference})")
        return updated

    async def _restore(self, pending: Submission, previous_status: SubmissionStatus, error: str) -> Submission:
        """Undo a PENDING claim after a failed transmission."""
        transition = self.state_machine.require(
            pending.status, TransitionEvent.TRANSMISSION_FAILED, pending.id, previous_status=previous_status
        )
        restored = await self.store.compare_and_transition(
            pending.id,
            SubmissionStatus.PENDING,
            transition.to_status,
            patch={"last_error": error},
        )
        logger.warning(f"Transmission of {pending.id} failed, restored to {previous_status.value}: {error}")
        return restored

    async def _record_rejection(self, current: Submission, error: RejectedError) -> Submission:
        transition = self.state_machine.require(current.status, TransitionEvent.EXCHANGE_REJECTED, current.id)
        detail = "; ".join(error.issues) if error.issues else error.message
        updated = await self.store.compare_and_transition(
            current.id,
            current.status,
            transition.to_status,
            patch={
                "exchange_reference": error.reference or current.exchange_reference or current.request_number,
                "polling_token": None,
                "last_transmitted_at": utc_now(),
                "last_error": f"Rejected by exchange: {detail}",
            },
        )
        logger.warning(f"Exchange rejected submission {current.id}: {detail}")
        return updated

    async def _release_cancel(self, claimed: Submission, error: str) -> Submission:
        """Clear the cancel claim after a failed or interrupted cancel request."""
        released = await self.store.compare_and_transition(
            claimed.id,
            claimed.status,
            claimed.status,
            patch={"is_cancelled": False, "cancellation_reason": None, "last_error": error},
            expected_version=claimed.version,
        )
        logger.warning(f"Cancel request for {claimed.id} failed: {error}")
        return released

    async def _annotate_error(self, current: Submission, error: str) -> None:
        """Record last_error without changing status. A lost race keeps the winner's write."""
        try:
            await self.store.compare_and_transition(
                current.id,
                current.status,
                current.status,
                patch={"last_error": error},
                expected_version=current.version,
            )
        except ConflictError:
            logger.warning(f"Could not record error on {current.id}; submission changed concurrently")
        logger.warning(f"Exchange call for {current.id} failed: {error}")
