"""
Tests for StarknetChainClient.

Tests cover:
- Read retry on transient node errors, no retry on JSON-RPC errors
- Invokes submitted exactly once, failures mapped to TransactionFailed
- Unwrapping of starknet-py call results (single values, enums, spans)
"""

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from starknet_py.contract import Contract
from starknet_py.net.client_errors import ClientError
from starknet_py.transaction_errors import TransactionFailedError
from starknet_py.serialization.tuple_dataclass import TupleDataclass

from vault_keeper.core.errors import ChainConnectionError, TransactionFailed, UnexpectedChainResponse
from vault_keeper.core.models import RawPricingRequest, RoundState
from vault_keeper.infra.starknet_client import StarknetChainClient, is_transient_client_error

VAULT = "0x5a11"
ROUND = "0xabc1"


def make_fn(call_result=None, invoke_result=None):
    fn = MagicMock()
    fn.call = AsyncMock(return_value=call_result)
    fn.invoke_v3 = AsyncMock(return_value=invoke_result)
    return fn


@pytest.fixture
def account():
    account = MagicMock()
    account.client = MagicMock()
    account.client.get_block_number = AsyncMock(return_value=812)
    account.client.wait_for_tx = AsyncMock(return_value=None)
    return account


@pytest.fixture
def contract():
    contract = MagicMock()
    contract.functions = {}
    return contract


@pytest.fixture(autouse=True)
def patched_contract(contract):
    with patch.object(Contract, "from_address", new=AsyncMock(return_value=contract)) as from_address:
        yield from_address


@pytest.fixture(autouse=True)
def no_backoff():
    with patch("vault_keeper.infra.starknet_client.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


@pytest.fixture
def client(account):
    return StarknetChainClient(VAULT, account, timeout=5.0, retries=2)


class TestReadRetry:

    @pytest.mark.asyncio
    async def test_transient_http_error_retried(self, client, account, no_backoff):
        account.client.get_block_number.side_effect = [
            ClientError(message="Service Unavailable", code="503"),
            42,
        ]
        assert await client.block_number() == 42
        assert account.client.get_block_number.await_count == 2
        assert no_backoff.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_exhausts_retries(self, client, account):
        account.client.get_block_number.side_effect = ClientError(message="Too Many Requests", code="429")
        with pytest.raises(ChainConnectionError):
            await client.block_number()
        assert account.client.get_block_number.await_count == 3

    @pytest.mark.asyncio
    async def test_connection_error_retried(self, client, account):
        account.client.get_block_number.side_effect = [aiohttp.ClientConnectionError("reset"), 7]
        assert await client.block_number() == 7

    @pytest.mark.asyncio
    async def test_timeout_retried(self, client, account):
        account.client.get_block_number.side_effect = [TimeoutError(), 9]
        assert await client.block_number() == 9

    @pytest.mark.asyncio
    async def test_rpc_error_not_retried(self, client, account):
        account.client.get_block_number.side_effect = ClientError(message="Contract not found", code=20)
        with pytest.raises(UnexpectedChainResponse):
            await client.block_number()
        assert account.client.get_block_number.await_count == 1

    @pytest.mark.asyncio
    async def test_decode_error_not_retried(self, client, contract):
        contract.functions["get_current_round_id"] = make_fn()
        contract.functions["get_current_round_id"].call.side_effect = ValueError("bad abi output")
        with pytest.raises(UnexpectedChainResponse):
            await client.current_round_id()
        assert contract.functions["get_current_round_id"].call.await_count == 1

    @pytest.mark.parametrize("code,transient", [
        ("429", True),
        ("500", True),
        ("502", True),
        ("503", True),
        ("404", False),
        (-32603, False),
        (20, False),
        (None, False),
    ])
    def test_transient_classification(self, code, transient):
        assert is_transient_client_error(ClientError(message="x", code=code)) is transient


class TestReads:

    @pytest.mark.asyncio
    async def test_single_value_unwrapped(self, client, contract):
        contract.functions["get_current_round_id"] = make_fn(TupleDataclass.from_dict({"round_id": 7}))
        assert await client.current_round_id() == 7

    @pytest.mark.asyncio
    async def test_round_address_rendered_hex(self, client, contract):
        contract.functions["get_round_address"] = make_fn(TupleDataclass.from_dict({"address": 0xABC1}))
        assert await client.round_address(7) == ROUND
        contract.functions["get_round_address"].call.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_enum_state_decoded(self, client, contract):
        state = TupleDataclass.from_dict({"variant": "Running", "value": None})
        contract.functions["get_state"] = make_fn(TupleDataclass.from_dict({"state": state}))
        assert await client.round_state(ROUND) is RoundState.RUNNING

    @pytest.mark.asyncio
    async def test_unknown_enum_variant_rejected(self, client, contract):
        state = TupleDataclass.from_dict({"variant": "Liquidating", "value": None})
        contract.functions["get_state"] = make_fn(TupleDataclass.from_dict({"state": state}))
        with pytest.raises(UnexpectedChainResponse):
            await client.round_state(ROUND)

    @pytest.mark.asyncio
    async def test_span_descriptor(self, client, contract):
        span = [0x5A11, 1000, 0x1D]
        contract.functions["get_request_to_settle_round"] = make_fn(TupleDataclass.from_dict({"request": span}))
        raw = await client.request_to_settle_round()
        assert RawPricingRequest.from_chain(raw) == RawPricingRequest("0x5a11", 1000, "0x1d")

    @pytest.mark.asyncio
    async def test_contract_resolved_once_per_address(self, client, contract, patched_contract):
        contract.functions["get_round_duration"] = make_fn(TupleDataclass.from_dict({"duration": 3600}))
        contract.functions["get_reserve_price"] = make_fn(TupleDataclass.from_dict({"price": 5}))
        await client.round_duration()
        await client.round_duration()
        await client.reserve_price(ROUND)
        assert patched_contract.await_count == 2


class TestInvokes:

    @pytest.mark.asyncio
    async def test_start_auction_returns_hash(self, client, contract):
        contract.functions["start_auction"] = make_fn(invoke_result=MagicMock(hash=0xBEEF))
        assert await client.start_auction() == "0xbeef"
        contract.functions["start_auction"].invoke_v3.assert_awaited_once_with(auto_estimate=True)

    @pytest.mark.asyncio
    async def test_invoke_never_retried(self, client, contract):
        contract.functions["end_auction"] = make_fn()
        contract.functions["end_auction"].invoke_v3.side_effect = ClientError(message="Bad Gateway", code="502")
        with pytest.raises(TransactionFailed):
            await client.end_auction()
        assert contract.functions["end_auction"].invoke_v3.await_count == 1

    @pytest.mark.asyncio
    async def test_invoke_connection_drop_not_retried(self, client, contract):
        contract.functions["start_auction"] = make_fn()
        contract.functions["start_auction"].invoke_v3.side_effect = aiohttp.ClientConnectionError("reset")
        with pytest.raises(TransactionFailed):
            await client.start_auction()
        assert contract.functions["start_auction"].invoke_v3.await_count == 1

    @pytest.mark.asyncio
    async def test_rejected_transaction(self, client, contract):
        contract.functions["start_auction"] = make_fn()
        contract.functions["start_auction"].invoke_v3.side_effect = TransactionFailedError(message="rejected")
        with pytest.raises(TransactionFailed):
            await client.start_auction()

    @pytest.mark.asyncio
    async def test_wait_for_transaction(self, client, account):
        await client.wait_for_transaction("0xbeef")
        account.client.wait_for_tx.assert_awaited_once_with(0xBEEF)

    @pytest.mark.asyncio
    async def test_reverted_transaction_carries_hash(self, client, account):
        account.client.wait_for_tx.side_effect = TransactionFailedError(message="reverted")
        with pytest.raises(TransactionFailed) as exc_info:
            await client.wait_for_transaction("0xbeef")
        assert exc_info.value.tx_hash == "0xbeef"
