"""
Simulated exchange for demo mode.

Scenario-driven: every submission gets the same canned behaviour. Queued
submissions resolve as approved after a configurable number of polls.
"""

from datetime import date, timedelta
from typing import Any, Optional
from uuid import uuid4
import logging

from src.core.config import ExchangeSettings, get_exchange_settings
from src.core.enums import DemoScenario, ExchangeDecision
from src.gateways.base import (
    CancelAck,
    ExchangeClient,
    ExchangeOutcome,
    GatewayConfig,
    PollResult,
    Queued,
    RejectedError,
    StatusCheckAck,
    StillPending,
    SubmitResult,
    TransportError,
)
from src.services.bundle.response_parser import first_resource

logger = logging.getLogger(__name__)

SCENARIO_DECISIONS = {
    DemoScenario.APPROVE: ExchangeDecision.APPROVED,
    DemoScenario.PARTIAL: ExchangeDecision.PARTIAL,
    DemoScenario.DENY: ExchangeDecision.DENIED,
}


class DemoExchangeClient(ExchangeClient):
    """In-memory exchange that never leaves the process."""

    def __init__(
        self,
        scenario: DemoScenario = DemoScenario.QUEUE,
        polls_until_ready: int = 1,
        authorization_days: int = 30,
    ):
        super().__init__(GatewayConfig(provider_name="demo"))
        self.scenario = scenario
        self.polls_until_ready = polls_until_ready
        self.authorization_days = authorization_days
        self._queued: dict[str, int] = {}
        self._cancelled: set[str] = set()
        self.submitted: list[dict[str, Any]] = []
        logger.info(f"Demo exchange initialized with scenario={scenario.value}")

    @classmethod
    def from_settings(cls, settings: Optional[ExchangeSettings] = None) -> "DemoExchangeClient":
        settings = settings or get_exchange_settings()
        return cls(scenario=settings.DEMO_SCENARIO, polls_until_ready=settings.DEMO_POLLS_UNTIL_READY)

    def set_scenario(self, scenario: DemoScenario) -> None:
        self.scenario = scenario
        logger.info(f"Demo exchange scenario changed to {scenario.value}")

    def _outcome(self, decision: ExchangeDecision) -> ExchangeOutcome:
        reference = f"DEMO-{uuid4().hex[:10].upper()}"
        return ExchangeOutcome(
            decision=decision,
            reference=reference,
            disposition=f"Demo exchange: {decision.value}",
            authorization_period_end=date.today() + timedelta(days=self.authorization_days),
        )

    async def submit(self, document: dict[str, Any]) -> SubmitResult:
        self.submitted.append(document)
        self.health.record_success()

        if self.scenario == DemoScenario.TIMEOUT:
            raise TransportError("Demo exchange timed out", provider=self.provider_name)
        if self.scenario == DemoScenario.REJECT:
            raise RejectedError(
                "Demo exchange rejected the document",
                issues=["GE-00001: Demo rejection"],
                provider=self.provider_name,
            )
        if self.scenario == DemoScenario.QUEUE:
            claim = first_resource(document, "Claim") or {}
            identifiers = claim.get("identifier") or [{}]
            token = identifiers[0].get("value") or document["id"]
            self._queued[token] = 0
            return Queued(token=token)
        return self._outcome(SCENARIO_DECISIONS[self.scenario])

    async def poll(self, token: str) -> PollResult:
        if self.scenario == DemoScenario.TIMEOUT:
            raise TransportError("Demo exchange timed out", provider=self.provider_name)
        if token not in self._queued:
            return StillPending(token=token)

        self._queued[token] += 1
        if self._queued[token] <= self.polls_until_ready:
            return StillPending(token=token)
        del self._queued[token]
        return self._outcome(ExchangeDecision.APPROVED)

    async def cancel_request(
        self,
        reference: str,
        reason: str,
        insurer_license: Optional[str] = None,
        request_identifier: Optional[str] = None,
    ) -> CancelAck:
        if self.scenario == DemoScenario.TIMEOUT:
            raise TransportError("Demo exchange timed out", provider=self.provider_name)
        self._cancelled.add(reference)
        return CancelAck(reference=reference, status="completed")

    async def status_check(
        self,
        request_identifier: str,
        insurer_license: Optional[str] = None,
    ) -> StatusCheckAck:
        if self.scenario == DemoScenario.TIMEOUT:
            raise TransportError("Demo exchange timed out", provider=self.provider_name)
        if request_identifier in self._queued:
            # Next poll answers
            self._queued[request_identifier] = self.polls_until_ready
        return StatusCheckAck(request_identifier=request_identifier, status="completed")
