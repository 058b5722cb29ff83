"""
Test doubles shared across test modules.
"""

import asyncio
from typing import Any, Optional, Union

from src.gateways.base import (
    CancelAck,
    ExchangeClient,
    ExchangeOutcome,
    GatewayConfig,
    PollResult,
    StatusCheckAck,
    StillPending,
    SubmitResult,
)

Scripted = Union[ExchangeOutcome, StillPending, CancelAck, Exception, Any]


class ScriptedExchangeClient(ExchangeClient):
    """
    Fake exchange returning pre-scripted results in order.

    An Exception in a script is raised instead of returned. Set `gate` to an
    asyncio.Event to hold submit(), poll() and cancel_request() until the
    test releases it.
    """

    def __init__(
        self,
        submit_results: Optional[list[Scripted]] = None,
        poll_results: Optional[list[Scripted]] = None,
        cancel_results: Optional[list[Scripted]] = None,
        status_check_results: Optional[list[Scripted]] = None,
    ):
        super().__init__(GatewayConfig(provider_name="scripted"))
        self.submit_results = list(submit_results or [])
        self.poll_results = list(poll_results or [])
        self.cancel_results = list(cancel_results or [])
        self.status_check_results = list(status_check_results or [])
        self.submitted: list[dict[str, Any]] = []
        self.polled: list[str] = []
        self.cancelled: list[dict[str, Any]] = []
        self.checked: list[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    @staticmethod
    def _next(script: list[Scripted]) -> Any:
        result = script.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def submit(self, document: dict[str, Any]) -> SubmitResult:
        self.submitted.append(document)
        if self.gate is not None:
            await self.gate.wait()
        return self._next(self.submit_results)

    async def poll(self, token: str) -> PollResult:
        self.polled.append(token)
        if self.gate is not None:
            await self.gate.wait()
        return self._next(self.poll_results)

    async def cancel_request(
        self,
        reference: str,
        reason: str,
        insurer_license: Optional[str] = None,
        request_identifier: Optional[str] = None,
    ) -> CancelAck:
        self.cancelled.append(
            {
                "reference": reference,
                "reason": reason,
                "insurer_license": insurer_license,
                "request_identifier": request_identifier,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if not self.cancel_results:
            return CancelAck(reference=reference, status="completed")
        return self._next(self.cancel_results)

    async def status_check(
        self,
        request_identifier: str,
        insurer_license: Optional[str] = None,
    ) -> StatusCheckAck:
        self.checked.append(request_identifier)
        if not self.status_check_results:
            return StatusCheckAck(request_identifier=request_identifier)
        return self._next(self.status_check_results)

    async def close(self) -> None:
        self.closed = True

