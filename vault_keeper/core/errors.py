"""
Error taxonomy for the keeper.

"Not ready yet" (a timing window or the pricing data horizon not reached) is
never an exception; it is a successful check with a waiting outcome.
"""

from __future__ import annotations

from typing import Optional


class KeeperError(Exception):
    """Base class for every error raised by the keeper."""


class ChainConnectionError(KeeperError):
    """The Starknet RPC endpoint could not be reached."""


class UnexpectedChainResponse(KeeperError):
    """A contract returned a value that cannot be interpreted (unknown enum tag, malformed struct)."""


class TransactionFailed(KeeperError):
    """A transaction was rejected on submission or reverted while waiting for acceptance."""

    def __init__(self, message: str, tx_hash: Optional[str] = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class PricingServiceError(KeeperError):
    """The pricing service answered with a non-2xx status or an unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PricingServiceUnavailable(PricingServiceError):
    """The pricing service could not be reached at all."""
