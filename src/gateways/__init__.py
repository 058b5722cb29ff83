"""
Exchange Gateway Module.

Live (HTTP) and demo exchange clients behind one ExchangeClient contract.
The clients are imported from their own modules
(src.gateways.exchange_gateway, src.gateways.demo_exchange); only the
contract and result types are re-exported here, since the response parser
depends on them.
"""

from src.gateways.base import (
    CancelAck,
    ExchangeClient,
    ExchangeOutcome,
    GatewayConfig,
    GatewayError,
    PollResult,
    ProviderHealth,
    Queued,
    RejectedError,
    StatusCheckAck,
    StillPending,
    SubmitResult,
    TransportError,
)

__all__ = [
    # Base
    "ExchangeClient",
    "GatewayConfig",
    "GatewayError",
    "TransportError",
    "RejectedError",
    "ProviderHealth",
    # Results
    "ExchangeOutcome",
    "Queued",
    "StillPending",
    "CancelAck",
    "StatusCheckAck",
    "SubmitResult",
    "PollResult",
]
