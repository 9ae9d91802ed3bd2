"""
Collaborator interfaces consumed by the round state machine.

Each RoundStateMachine owns its own ChainClient (bound to one vault and one
signing account) and its own PricingClient, so concurrent checks share no
mutable client state and tests can substitute fakes.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from vault_keeper.core.models import LatestBlock, PricingRequest, RoundState


@runtime_checkable
class ChainClient(Protocol):
    """Read and write access to one vault and its current option round."""

    @property
    def vault_address(self) -> str: ...

    async def block_number(self) -> int: ...

    async def current_round_id(self) -> int: ...

    async def round_address(self, round_id: int) -> str: ...

    async def round_state(self, round_address: str) -> RoundState: ...

    async def reserve_price(self, round_address: str) -> int: ...

    async def auction_start_date(self, round_address: str) -> int: ...

    async def auction_end_date(self, round_address: str) -> int: ...

    async def option_settlement_date(self, round_address: str) -> int: ...

    async def fossil_client_address(self) -> str: ...

    async def round_duration(self) -> int: ...

    async def request_to_start_first_round(self) -> Any: ...

    async def request_to_settle_round(self) -> Any: ...

    async def start_auction(self) -> str: ...

    async def end_auction(self) -> str: ...

    async def wait_for_transaction(self, tx_hash: str) -> None: ...


@runtime_checkable
class PricingClient(Protocol):
    """Off-chain pricing service (Fossil)."""

    async def latest_block(self) -> LatestBlock: ...

    async def submit_pricing_request(self, request: PricingRequest) -> str: ...

    async def close(self) -> None: ...
