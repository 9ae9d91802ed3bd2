"""
Pytest configuration and fixtures.
Adds the repo root to sys.path and provides in-memory chain / pricing fakes.
"""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import pytest

repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from vault_keeper.core.models import LatestBlock, PricingRequest, RoundState, decode_round_state  # noqa: E402

VAULT = "0x5a11"
ROUND = "0xabc1"
FOSSIL_CLIENT = "0xf0551"
IDENTIFIER = 0x50494e47  # arbitrary felt


@dataclass
class FakeChain:
    """In-memory vault + current round. Mutate fields between checks to simulate the chain moving."""
    vault_address: str = VAULT
    round_id: int = 1
    round_addr: str = ROUND
    state: Any = RoundState.OPEN
    reserve: int = 1_000
    auction_start: int = 2_000
    auction_end: int = 3_000
    settlement: int = 4_000
    duration: int = 3600
    client_address: str = FOSSIL_CLIENT
    first_round_request: Any = (0x5A11, 1000, IDENTIFIER)
    settle_request: Any = (0x5A11, 4000, IDENTIFIER)
    fail_on: Optional[str] = None
    calls: List[str] = field(default_factory=list)
    submitted: List[str] = field(default_factory=list)
    confirmed: List[str] = field(default_factory=list)

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise RuntimeError(f"{name} exploded")

    async def block_number(self) -> int:
        self._record("block_number")
        return 123

    async def current_round_id(self) -> int:
        self._record("current_round_id")
        return self.round_id

    async def round_address(self, round_id: int) -> str:
        self._record("round_address")
        return self.round_addr

    async def round_state(self, round_address: str) -> RoundState:
        self._record("round_state")
        # Same decode the Starknet adapter applies to the raw enum
        return decode_round_state(self.state)

    async def reserve_price(self, round_address: str) -> int:
        self._record("reserve_price")
        return self.reserve

    async def auction_start_date(self, round_address: str) -> int:
        self._record("auction_start_date")
        return self.auction_start

    async def auction_end_date(self, round_address: str) -> int:
        self._record("auction_end_date")
        return self.auction_end

    async def option_settlement_date(self, round_address: str) -> int:
        self._record("option_settlement_date")
        return self.settlement

    async def fossil_client_address(self) -> str:
        self._record("fossil_client_address")
        return self.client_address

    async def round_duration(self) -> int:
        self._record("round_duration")
        return self.duration

    async def request_to_start_first_round(self) -> Any:
        self._record("request_to_start_first_round")
        return self.first_round_request

    async def request_to_settle_round(self) -> Any:
        self._record("request_to_settle_round")
        return self.settle_request

    async def start_auction(self) -> str:
        self._record("start_auction")
        tx = f"0x{len(self.submitted) + 1:x}"
        self.submitted.append("start_auction")
        return tx

    async def end_auction(self) -> str:
        self._record("end_auction")
        tx = f"0x{len(self.submitted) + 1:x}"
        self.submitted.append("end_auction")
        return tx

    async def wait_for_transaction(self, tx_hash: str) -> None:
        self._record("wait_for_transaction")
        self.confirmed.append(tx_hash)


@dataclass
class FakePricing:
    """Pricing service with a settable data horizon."""
    horizon: int = 10_000
    block_number: int = 77
    requests: List[PricingRequest] = field(default_factory=list)
    closed: bool = False

    async def latest_block(self) -> LatestBlock:
        return LatestBlock(block_number=self.block_number, block_timestamp=self.horizon)

    async def submit_pricing_request(self, request: PricingRequest) -> str:
        self.requests.append(request)
        return f"job-{len(self.requests)}"

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def pricing():
    return FakePricing()


@pytest.fixture
def clock():
    return FakeClock(0.0)
