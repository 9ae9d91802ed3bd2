"""
RoundStateMachine - per-vault round lifecycle driver.

One check reads the vault's current round from the chain, decides which
action (if any) is due, and performs at most one of:

- submit the bootstrap pricing request for a vault's first round
- start_auction (OPEN round, auction start date reached)
- end_auction (AUCTIONING round, auction end date reached)
- submit the settlement pricing request (RUNNING round, settlement date reached)

Timing:
    Every check re-reads chain state; nothing is cached between checks.
    If a timing window or the pricing data horizon has not been reached the
    check returns a WAITING_* outcome and the next tick tries again. A check
    never sleeps waiting for a precondition.

Pricing jobs:
    Submission is fire-and-forget. The job id is logged, and the round only
    moves once the pricing service's callback lands on chain, which a later
    check observes as a new state.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, TYPE_CHECKING

from vault_keeper.check_context import CheckContext
from vault_keeper.core.interfaces import ChainClient, PricingClient
from vault_keeper.core.models import (
    NEXT_STATE,
    CheckOutcome,
    CheckResult,
    PricingRequest,
    RawPricingRequest,
    RoundState,
    format_time_left,
    pricing_data_available,
    to_int,
)
from vault_keeper.core.errors import UnexpectedChainResponse
from vault_keeper.infra.logging_cfg import vault_logger

if TYPE_CHECKING:
    from vault_keeper.monitoring.metrics import KeeperMetrics


class RoundStateMachine:
    """
    Check-and-advance cycle for one vault.

    Usage:
        machine = RoundStateMachine(
            vault_address="0x1234...",
            chain=StarknetChainClient(...),
            pricing=FossilPricingClient(...),
        )
        result = await machine.check_and_advance()  # raises on failure
    """

    def __init__(
        self,
        vault_address: str,
        chain: ChainClient,
        pricing: PricingClient,
        logger: Optional[logging.Logger] = None,
        metrics: Optional["KeeperMetrics"] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._vault_address = vault_address
        self.chain = chain
        self.pricing = pricing
        self.log = logger or vault_logger(vault_address)
        self.metrics = metrics
        self._clock = clock

    @property
    def vault_address(self) -> str:
        return self._vault_address

    def _now(self) -> int:
        return int(self._clock())

    async def check_and_advance(self) -> CheckResult:
        """
        Run one check for this vault.

        Returns:
            CheckResult describing the decision taken

        Raises:
            KeeperError (or any underlying client error) after logging it
            with the vault and round context
        """
        ctx = CheckContext(self._vault_address, self.log)
        try:
            ctx.info("rpc_check")
            block = await self.chain.block_number()
            ctx.info("rpc_connected", block_number=block)

            round_id = to_int(await self.chain.current_round_id(), "round id")
            round_address = await self.chain.round_address(round_id)
            ctx.set_tag("round_id", round_id)
            ctx.set_tag("round", round_address)

            state = await self.chain.round_state(round_address)
            ctx.set_tag("state", state.name)
            ctx.info("round_checked", next_state=_state_name(NEXT_STATE[state]))

            now = self._now()
            if state is RoundState.OPEN:
                result = await self._handle_open(ctx, round_id, round_address, now)
            elif state is RoundState.AUCTIONING:
                result = await self._handle_auctioning(ctx, round_id, round_address, now)
            elif state is RoundState.RUNNING:
                result = await self._handle_running(ctx, round_id, round_address, now)
            elif state is RoundState.SETTLED:
                ctx.info("round_settled", msg="Round is settled - no actions possible")
                result = self._result(round_id, round_address, state, CheckOutcome.ROUND_SETTLED)
            else:
                raise UnexpectedChainResponse(f"No handler for round state {state!r}")
        except Exception as exc:
            ctx.error("check_failed", error_type=type(exc).__name__, error=str(exc))
            raise

        result.duration_ms = ctx.elapsed_ms()
        ctx.info("check_complete", outcome=result.outcome.name, duration_ms=round(result.duration_ms, 1))
        return result

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _handle_open(self, ctx: CheckContext, round_id: int, round_address: str, now: int) -> CheckResult:
        reserve_price = to_int(await self.chain.reserve_price(round_address), "reserve price")

        if reserve_price == 0:
            ctx.info("first_round_detected", msg="First round needs initialization")
            raw = RawPricingRequest.from_chain(await self.chain.request_to_start_first_round())
            return await self._request_pricing(
                ctx, round_id, round_address, RoundState.OPEN, raw, action="start_first_round"
            )

        auction_start = to_int(await self.chain.auction_start_date(round_address), "auction start date")
        if now < auction_start:
            ctx.info(
                "waiting_for_auction_start",
                auction_start=auction_start,
                time_left=format_time_left(now, auction_start),
            )
            return self._result(
                round_id, round_address, RoundState.OPEN, CheckOutcome.WAITING_FOR_TIME,
                action="start_auction", required_timestamp=auction_start,
            )

        ctx.info("starting_auction")
        tx_hash = await self._submit_and_confirm(ctx, "start_auction", self.chain.start_auction)
        ctx.info("auction_started", tx_hash=tx_hash)
        return self._result(
            round_id, round_address, RoundState.OPEN, CheckOutcome.TRANSACTION_CONFIRMED,
            action="start_auction", required_timestamp=auction_start, tx_hash=tx_hash,
        )

    async def _handle_auctioning(self, ctx: CheckContext, round_id: int, round_address: str, now: int) -> CheckResult:
        auction_end = to_int(await self.chain.auction_end_date(round_address), "auction end date")
        if now < auction_end:
            ctx.info(
                "waiting_for_auction_end",
                auction_end=auction_end,
                time_left=format_time_left(now, auction_end),
            )
            return self._result(
                round_id, round_address, RoundState.AUCTIONING, CheckOutcome.WAITING_FOR_TIME,
                action="end_auction", required_timestamp=auction_end,
            )

        ctx.info("ending_auction")
        tx_hash = await self._submit_and_confirm(ctx, "end_auction", self.chain.end_auction)
        ctx.info("auction_ended", tx_hash=tx_hash)
        return self._result(
            round_id, round_address, RoundState.AUCTIONING, CheckOutcome.TRANSACTION_CONFIRMED,
            action="end_auction", required_timestamp=auction_end, tx_hash=tx_hash,
        )

    async def _handle_running(self, ctx: CheckContext, round_id: int, round_address: str, now: int) -> CheckResult:
        settlement = to_int(await self.chain.option_settlement_date(round_address), "settlement date")
        if now < settlement:
            ctx.info(
                "waiting_for_settlement",
                settlement=settlement,
                time_left=format_time_left(now, settlement),
            )
            return self._result(
                round_id, round_address, RoundState.RUNNING, CheckOutcome.WAITING_FOR_TIME,
                action="settle_round", required_timestamp=settlement,
            )

        ctx.info("settlement_time_reached")
        raw = RawPricingRequest.from_chain(await self.chain.request_to_settle_round())
        return await self._request_pricing(
            ctx, round_id, round_address, RoundState.RUNNING, raw, action="settle_round"
        )

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _pricing_has_data(self, ctx: CheckContext, required_ts: int) -> bool:
        """Data-availability guard run before every pricing request."""
        latest = await self.pricing.latest_block()
        ctx.debug(
            "pricing_horizon",
            block_number=latest.block_number,
            block_timestamp=latest.block_timestamp,
            required_timestamp=required_ts,
        )
        if not pricing_data_available(latest.block_timestamp, required_ts):
            ctx.info(
                "waiting_for_pricing_data",
                block_timestamp=latest.block_timestamp,
                required_timestamp=required_ts,
                time_difference=format_time_left(latest.block_timestamp, required_ts),
            )
            return False
        return True

    async def _request_pricing(
        self,
        ctx: CheckContext,
        round_id: int,
        round_address: str,
        state: RoundState,
        raw: RawPricingRequest,
        action: str,
    ) -> CheckResult:
        if not await self._pricing_has_data(ctx, raw.timestamp):
            return self._result(
                round_id, round_address, state, CheckOutcome.WAITING_FOR_PRICING_DATA,
                action=action, required_timestamp=raw.timestamp,
            )

        client_address = await self.chain.fossil_client_address()
        round_duration = to_int(await self.chain.round_duration(), "round duration")
        request = PricingRequest.build(raw, client_address, round_duration)
        ctx.debug(
            "pricing_windows",
            round_duration=round_duration,
            twap=request.twap.as_list(),
            volatility=request.volatility.as_list(),
            reserve_price=request.reserve_price.as_list(),
        )

        ctx.info("sending_pricing_request", action=action, timestamp=raw.timestamp)
        job_id = await self.pricing.submit_pricing_request(request)
        if self.metrics:
            self.metrics.pricing_requests.labels(vault=self._vault_address, action=action).inc()
        ctx.info("pricing_request_submitted", action=action, job_id=job_id)

        # Fulfilment lands on chain asynchronously; the next tick picks it up.
        return self._result(
            round_id, round_address, state, CheckOutcome.PRICING_REQUESTED,
            action=action, required_timestamp=raw.timestamp, job_id=job_id,
        )

    async def _submit_and_confirm(self, ctx: CheckContext, action: str, submit: Callable[[], Any]) -> str:
        tx_hash = await submit()
        if self.metrics:
            self.metrics.transactions_submitted.labels(vault=self._vault_address, action=action).inc()
        ctx.info("transaction_submitted", action=action, tx_hash=tx_hash)
        await self.chain.wait_for_transaction(tx_hash)
        return tx_hash

    def _result(
        self,
        round_id: int,
        round_address: str,
        state: RoundState,
        outcome: CheckOutcome,
        **kwargs: Any,
    ) -> CheckResult:
        return CheckResult(
            vault_address=self._vault_address,
            round_id=round_id,
            round_address=round_address,
            state=state,
            outcome=outcome,
            **kwargs,
        )


def _state_name(state: Optional[RoundState]) -> Optional[str]:
    return state.name if state else None
