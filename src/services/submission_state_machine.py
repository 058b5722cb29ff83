"""
Submission Status State Machine.

Provides:
- Valid status transitions per command and exchange event
- Guard checks with user-facing reasons

State Diagram:
    DRAFT -> PENDING (send)
    ERROR -> PENDING (send)
    PENDING -> APPROVED | PARTIAL | DENIED (immediate decision)
    PENDING -> QUEUED (asynchronous decision)
    PENDING -> ERROR (document rejected)
    PENDING -> DRAFT | ERROR (transmission failed, prior status restored)
    QUEUED -> APPROVED | PARTIAL | DENIED | ERROR (poll result)
    QUEUED -> QUEUED (poll with no result, claim status check)
    APPROVED | PARTIAL | DENIED -> CANCELLED (cancel)

Transfer, amend and claim-from-authorization leave the source unchanged
and create a new linked DRAFT.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.core.enums import ExchangeDecision, SubmissionStatus
from src.core.exceptions import LifecycleError

logger = logging.getLogger(__name__)


class GuardViolation(LifecycleError):
    """Command is not legal for the submission's current status."""

    def __init__(
        self,
        reason: str,
        current_status: Optional[SubmissionStatus] = None,
        submission_id: Optional[str] = None,
    ):
        super().__init__(reason, submission_id)
        self.reason = reason
        self.current_status = current_status


class TransitionEvent(str, Enum):
    """Commands and exchange events that move a submission."""

    EDIT = "edit"
    DELETE = "delete"
    SEND = "send"
    EXCHANGE_APPROVED = "exchange_approved"
    EXCHANGE_PARTIAL = "exchange_partial"
    EXCHANGE_DENIED = "exchange_denied"
    EXCHANGE_QUEUED = "exchange_queued"
    EXCHANGE_REJECTED = "exchange_rejected"
    TRANSMISSION_FAILED = "transmission_failed"
    POLL = "poll"
    STATUS_CHECK = "status_check"
    CANCEL = "cancel"
    TRANSFER = "transfer"
    AMEND = "amend"
    CREATE_CLAIM = "create_claim"


@dataclass(frozen=True)
class Transition:
    """Represents a valid state transition."""

    from_status: SubmissionStatus
    event: TransitionEvent
    to_status: Optional[SubmissionStatus] = None
    restores_previous: bool = False  # Target is the status before the claim
    creates_linked: bool = False  # Source unchanged, new draft created

    def target(self, previous_status: Optional[SubmissionStatus] = None) -> Optional[SubmissionStatus]:
        if self.restores_previous:
            return previous_status
        if self.creates_linked:
            return self.from_status
        return self.to_status


@dataclass
class TransitionResult:
    """Result of a transition check."""

    success: bool
    from_status: SubmissionStatus
    to_status: Optional[SubmissionStatus] = None
    error: Optional[str] = None
    transition: Optional[Transition] = None


# =============================================================================
# Valid Transitions Definition
# =============================================================================

EDITABLE_STATUSES = (SubmissionStatus.DRAFT, SubmissionStatus.ERROR)
RESOLVED_STATUSES = (SubmissionStatus.APPROVED, SubmissionStatus.PARTIAL, SubmissionStatus.DENIED)
AWAITING_STATUSES = (SubmissionStatus.PENDING, SubmissionStatus.QUEUED)

DECISION_EVENTS = {
    ExchangeDecision.APPROVED: (TransitionEvent.EXCHANGE_APPROVED, SubmissionStatus.APPROVED),
    ExchangeDecision.PARTIAL: (TransitionEvent.EXCHANGE_PARTIAL, SubmissionStatus.PARTIAL),
    ExchangeDecision.DENIED: (TransitionEvent.EXCHANGE_DENIED, SubmissionStatus.DENIED),
}


def _build_transitions() -> list[Transition]:
    transitions: list[Transition] = []

    for status in EDITABLE_STATUSES:
        transitions.append(Transition(status, TransitionEvent.EDIT, to_status=status))
        transitions.append(Transition(status, TransitionEvent.SEND, to_status=SubmissionStatus.PENDING))
    transitions.append(Transition(SubmissionStatus.DRAFT, TransitionEvent.DELETE))

    # Exchange answers
    for event, status in DECISION_EVENTS.values():
        for source in AWAITING_STATUSES:
            transitions.append(Transition(source, event, to_status=status))
    for source in AWAITING_STATUSES:
        transitions.append(Transition(source, TransitionEvent.EXCHANGE_REJECTED, to_status=SubmissionStatus.ERROR))
    transitions.append(
        Transition(SubmissionStatus.PENDING, TransitionEvent.EXCHANGE_QUEUED, to_status=SubmissionStatus.QUEUED)
    )
    transitions.append(
        Transition(SubmissionStatus.PENDING, TransitionEvent.TRANSMISSION_FAILED, restores_previous=True)
    )
    transitions.append(
        Transition(SubmissionStatus.QUEUED, TransitionEvent.POLL, to_status=SubmissionStatus.QUEUED)
    )
    transitions.append(
        Transition(SubmissionStatus.QUEUED, TransitionEvent.STATUS_CHECK, to_status=SubmissionStatus.QUEUED)
    )

    # Side paths from a resolved submission
    for status in RESOLVED_STATUSES:
        transitions.append(Transition(status, TransitionEvent.CANCEL, to_status=SubmissionStatus.CANCELLED))
        transitions.append(Transition(status, TransitionEvent.TRANSFER, creates_linked=True))
        transitions.append(Transition(status, TransitionEvent.AMEND, creates_linked=True))
    transitions.append(
        Transition(SubmissionStatus.APPROVED, TransitionEvent.CREATE_CLAIM, creates_linked=True)
    )
    return transitions


VALID_TRANSITIONS: list[Transition] = _build_transitions()

GUARD_REASONS: dict[TransitionEvent, str] = {
    TransitionEvent.EDIT: "cannot edit a transmitted submission",
    TransitionEvent.DELETE: "cannot delete a non-draft submission",
    TransitionEvent.SEND: "can only send a submission in draft or error status",
    TransitionEvent.POLL: "can only poll a queued submission",
    TransitionEvent.STATUS_CHECK: "can only request the status of a queued submission",
    TransitionEvent.CANCEL: "can only cancel an approved, partial or denied submission",
    TransitionEvent.TRANSFER: "can only transfer an approved, partial or denied submission",
    TransitionEvent.AMEND: "can only amend an approved, partial or denied submission",
    TransitionEvent.CREATE_CLAIM: "claims can only be created from an approved prior authorization",
}


# =============================================================================
# State Machine
# =============================================================================


class SubmissionStateMachine:
    """
    State machine for submission status transitions.

    Pure lookup; persistence of the transition is the caller's job.
    """

    def __init__(self):
        """Initialize state machine with transition map."""
        self._transitions: dict[tuple[SubmissionStatus, TransitionEvent], Transition] = {}
        self._from_status_map: dict[SubmissionStatus, list[Transition]] = {}

        self._build_transition_maps()

    def _build_transition_maps(self) -> None:
        """Build lookup maps for transitions."""
        for transition in VALID_TRANSITIONS:
            key = (transition.from_status, transition.event)
            self._transitions[key] = transition
            self._from_status_map.setdefault(transition.from_status, []).append(transition)

    def get_valid_transitions(self, status: SubmissionStatus) -> list[Transition]:
        """Get all valid transitions from a given status."""
        return self._from_status_map.get(status, [])

    def get_valid_events(self, status: SubmissionStatus) -> list[TransitionEvent]:
        """Get all valid events for a given status."""
        return [t.event for t in self.get_valid_transitions(status)]

    def get_transition(
        self,
        from_status: SubmissionStatus,
        event: TransitionEvent,
    ) -> Optional[Transition]:
        """Get transition for a status and event combination."""
        return self._transitions.get((from_status, event))

    def validate_transition(
        self,
        current_status: SubmissionStatus,
        event: TransitionEvent,
        previous_status: Optional[SubmissionStatus] = None,
    ) -> TransitionResult:
        """
        Check whether an event is legal from the current status.

        Args:
            current_status: Stored status
            event: Command or exchange event
            previous_status: Status before PENDING, for TRANSMISSION_FAILED

        Returns:
            TransitionResult indicating success/failure
        """
        transition = self.get_transition(current_status, event)

        if not transition:
            reason = GUARD_REASONS.get(
                event, f"Invalid transition: {current_status.value} + {event.value}"
            )
            if event == TransitionEvent.CANCEL and current_status == SubmissionStatus.CANCELLED:
                reason = "submission is already cancelled"
            return TransitionResult(
                success=False,
                from_status=current_status,
                error=f"{reason} (current status: {current_status.value})",
            )

        target = transition.target(previous_status)
        if transition.restores_previous and target not in EDITABLE_STATUSES:
            return TransitionResult(
                success=False,
                from_status=current_status,
                error=f"Cannot restore status {previous_status}",
            )

        return TransitionResult(
            success=True,
            from_status=current_status,
            to_status=target,
            transition=transition,
        )

    def require(
        self,
        current_status: SubmissionStatus,
        event: TransitionEvent,
        submission_id: Optional[str] = None,
        previous_status: Optional[SubmissionStatus] = None,
    ) -> TransitionResult:
        """Validate a transition, raising GuardViolation when it is illegal."""
        result = self.validate_transition(current_status, event, previous_status)
        if not result.success:
            logger.info(f"Rejected {event.value} on submission {submission_id}: {result.error}")
            raise GuardViolation(result.error, current_status, submission_id)
        return result

    def decision_target(self, decision: ExchangeDecision) -> tuple[TransitionEvent, SubmissionStatus]:
        """Event and status for an exchange decision."""
        return DECISION_EVENTS[decision]


# Singleton instance
_state_machine: Optional[SubmissionStateMachine] = None


def get_submission_state_machine() -> SubmissionStateMachine:
    """Get or create the singleton state machine instance."""
    global _state_machine
    if _state_machine is None:
        _state_machine = SubmissionStateMachine()
    return _state_machine
