"""
Starknet adapter for one vault: contract reads, start/end auction invokes and
transaction confirmation, on top of starknet-py.

Reads are retried with jittered exponential backoff. Invokes are never
retried, since a retried invoke can land twice; a failed submission surfaces
as TransactionFailed and the next tick re-reads state before trying again.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict

import aiohttp
from starknet_py.contract import Contract
from starknet_py.net.account.account import Account
from starknet_py.net.client_errors import ClientError
from starknet_py.net.full_node_client import FullNodeClient
from starknet_py.net.models import StarknetChainId
from starknet_py.net.signer.stark_curve_signer import KeyPair
from starknet_py.transaction_errors import TransactionFailedError

from vault_keeper.core.errors import ChainConnectionError, TransactionFailed, UnexpectedChainResponse
from vault_keeper.core.models import RoundState, decode_round_state, to_hex, to_int

CHAIN_IDS = {
    "mainnet": StarknetChainId.MAINNET,
    "sepolia": StarknetChainId.SEPOLIA,
}

# Connection-level failures worth another attempt
TRANSIENT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


def is_transient_client_error(exc: ClientError) -> bool:
    """HTTP 429 and 5xx from the node (starknet-py reports the status as the error code)."""
    try:
        code = int(exc.code)
    except (TypeError, ValueError):
        return False
    return code == 429 or 500 <= code <= 599


def build_account(rpc_url: str, account_address: str, private_key: str, chain: str = "sepolia") -> Account:
    """Signing account shared by the vault and round contracts of one vault client."""
    try:
        chain_id = CHAIN_IDS[chain.lower()]
    except KeyError as exc:
        raise ValueError(f"Unsupported Starknet chain: {chain!r}") from exc
    client = FullNodeClient(node_url=rpc_url)
    return Account(
        address=account_address,
        client=client,
        key_pair=KeyPair.from_private_key(int(private_key, 16)),
        chain=chain_id,
    )


class StarknetChainClient:
    def __init__(
        self,
        vault_address: str,
        account: Account,
        timeout: float = 30.0,
        retries: int = 2,
    ) -> None:
        self._vault_address = vault_address
        self._account = account
        self._client = account.client
        self._timeout = timeout
        self._retries = retries
        self._contracts: Dict[str, Contract] = {}

    @property
    def vault_address(self) -> str:
        return self._vault_address

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _call(self, fn: Callable[[], Awaitable[Any]]) -> Any:
        backoff = 0.2
        for attempt in range(self._retries + 1):
            try:
                return await asyncio.wait_for(fn(), timeout=self._timeout)
            except ClientError as exc:
                # JSON-RPC errors mean the node answered; only HTTP 429/5xx are transient.
                if not is_transient_client_error(exc):
                    raise UnexpectedChainResponse(f"RPC error: {exc.message}") from exc
                error: Exception = exc
            except TRANSIENT_ERRORS as exc:
                error = exc
            except (ValueError, TypeError, KeyError) as exc:
                raise UnexpectedChainResponse(f"Undecodable RPC result: {exc!r}") from exc

            if attempt >= self._retries:
                raise ChainConnectionError(f"RPC unreachable after {attempt + 1} attempts: {error!r}") from error
            await asyncio.sleep(backoff + random.uniform(0, backoff * 0.5))
            backoff *= 2

    async def _contract(self, address: str) -> Contract:
        contract = self._contracts.get(address)
        if contract is None:
            contract = await self._call(lambda: Contract.from_address(address=address, provider=self._account))
            self._contracts[address] = contract
        return contract

    async def _read(self, address: str, name: str, *args: Any) -> Any:
        contract = await self._contract(address)
        result = await self._call(lambda: contract.functions[name].call(*args))
        values = result.as_tuple() if hasattr(result, "as_tuple") else tuple(result)
        return values[0] if len(values) == 1 else values

    async def _vault(self, name: str, *args: Any) -> Any:
        return await self._read(self._vault_address, name, *args)

    async def _invoke(self, name: str) -> str:
        contract = await self._contract(self._vault_address)
        try:
            invocation = await asyncio.wait_for(
                contract.functions[name].invoke_v3(auto_estimate=True),
                timeout=self._timeout,
            )
        except (ClientError, TransactionFailedError) as exc:
            raise TransactionFailed(f"{name} rejected: {exc}") from exc
        except TRANSIENT_ERRORS as exc:
            # Not retried: the invoke may still land, the next tick re-reads state
            raise TransactionFailed(f"{name} submission did not complete: {exc!r}") from exc
        return to_hex(invocation.hash)

    # ------------------------------------------------------------------
    # ChainClient
    # ------------------------------------------------------------------

    async def block_number(self) -> int:
        return await self._call(self._client.get_block_number)

    async def current_round_id(self) -> int:
        return to_int(await self._vault("get_current_round_id"), "round id")

    async def round_address(self, round_id: int) -> str:
        return to_hex(await self._vault("get_round_address", round_id))

    async def round_state(self, round_address: str) -> RoundState:
        return decode_round_state(await self._read(round_address, "get_state"))

    async def reserve_price(self, round_address: str) -> int:
        return to_int(await self._read(round_address, "get_reserve_price"), "reserve price")

    async def auction_start_date(self, round_address: str) -> int:
        return to_int(await self._read(round_address, "get_auction_start_date"), "auction start date")

    async def auction_end_date(self, round_address: str) -> int:
        return to_int(await self._read(round_address, "get_auction_end_date"), "auction end date")

    async def option_settlement_date(self, round_address: str) -> int:
        return to_int(await self._read(round_address, "get_option_settlement_date"), "settlement date")

    async def fossil_client_address(self) -> str:
        return to_hex(await self._vault("get_fossil_client_address"))

    async def round_duration(self) -> int:
        return to_int(await self._vault("get_round_duration"), "round duration")

    async def request_to_start_first_round(self) -> Any:
        return await self._vault("get_request_to_start_first_round")

    async def request_to_settle_round(self) -> Any:
        return await self._vault("get_request_to_settle_round")

    async def start_auction(self) -> str:
        return await self._invoke("start_auction")

    async def end_auction(self) -> str:
        return await self._invoke("end_auction")

    async def wait_for_transaction(self, tx_hash: str) -> None:
        try:
            await self._client.wait_for_tx(int(tx_hash, 16))
        except (ClientError, TransactionFailedError) as exc:
            raise TransactionFailed(f"Transaction {tx_hash} failed: {exc}", tx_hash=tx_hash) from exc


def vault_client(
    vault_address: str,
    rpc_url: str,
    account_address: str,
    private_key: str,
    chain: str = "sepolia",
    timeout: float = 30.0,
    retries: int = 2,
) -> StarknetChainClient:
    """One client (and one account binding) per vault."""
    account = build_account(rpc_url, account_address, private_key, chain)
    return StarknetChainClient(vault_address, account, timeout=timeout, retries=retries)
