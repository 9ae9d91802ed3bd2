"""
Core package.

Round lifecycle model, error taxonomy and the collaborator interfaces the
state machine depends on.
"""

from vault_keeper.core.errors import (
    ChainConnectionError,
    KeeperError,
    PricingServiceError,
    PricingServiceUnavailable,
    TransactionFailed,
    UnexpectedChainResponse,
)
from vault_keeper.core.interfaces import ChainClient, PricingClient
from vault_keeper.core.models import (
    CheckOutcome,
    CheckResult,
    LatestBlock,
    PricingRequest,
    RawPricingRequest,
    RoundState,
    TickSummary,
    TimeWindow,
    decode_round_state,
    pricing_data_available,
)

__all__ = [
    "ChainClient",
    "ChainConnectionError",
    "CheckOutcome",
    "CheckResult",
    "KeeperError",
    "LatestBlock",
    "PricingClient",
    "PricingRequest",
    "PricingServiceError",
    "PricingServiceUnavailable",
    "RawPricingRequest",
    "RoundState",
    "TickSummary",
    "TimeWindow",
    "TransactionFailed",
    "UnexpectedChainResponse",
    "decode_round_state",
    "pricing_data_available",
]
