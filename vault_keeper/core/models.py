"""
Round lifecycle model - values read from the vault and option round contracts.

Provides:
- RoundState: closed enum of the Cairo OptionRoundState, decoded once at the
  chain-read boundary
- RawPricingRequest: the (vault, timestamp, identifier) descriptor a vault
  exposes for the first round and for settlement
- PricingRequest: the Fossil job built from a descriptor, with its
  twap / volatility / reserve price windows
- CheckResult / TickSummary: what one vault check and one tick produced

Nothing here is persisted. Every value is rebuilt from chain state on each
check.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional

from vault_keeper.core.errors import UnexpectedChainResponse


class RoundState(Enum):
    """
    Option round lifecycle states.

    State Diagram:

    OPEN ──start_auction──> AUCTIONING ──end_auction──> RUNNING ──settle──> SETTLED

    Values match the variant order of the Cairo enum.
    """
    OPEN = 0
    AUCTIONING = 1
    RUNNING = 2
    SETTLED = 3

    @property
    def is_terminal(self) -> bool:
        return self is RoundState.SETTLED


# The single legal successor of every state (terminal states have none)
NEXT_STATE: Dict[RoundState, Optional[RoundState]] = {
    RoundState.OPEN: RoundState.AUCTIONING,
    RoundState.AUCTIONING: RoundState.RUNNING,
    RoundState.RUNNING: RoundState.SETTLED,
    RoundState.SETTLED: None,
}

_STATES_BY_NAME: Dict[str, RoundState] = {s.name: s for s in RoundState}


def _state_from_name(name: str) -> RoundState:
    state = _STATES_BY_NAME.get(name.strip().upper())
    if state is None:
        raise UnexpectedChainResponse(f"Unknown round state variant: {name!r}")
    return state


def decode_round_state(raw: Any) -> RoundState:
    """
    Decode the tagged value returned by ``get_state`` into a RoundState.

    Accepted shapes:
        - variant name ("Open", "AUCTIONING")
        - ordinal int (0..3)
        - single-key mapping ({"Running": None})
        - (name, value) pair
        - object exposing ``.variant`` (an enum value wrapper)
        - {"variant": name, "value": ...} mapping, or anything with ``as_dict()`` giving one

    Anything else is rejected instead of defaulting to a state.
    """
    if isinstance(raw, RoundState):
        return raw
    if isinstance(raw, bool):
        raise UnexpectedChainResponse(f"Unexpected round state value: {raw!r}")
    if isinstance(raw, int):
        try:
            return RoundState(raw)
        except ValueError as exc:
            raise UnexpectedChainResponse(f"Round state ordinal out of range: {raw}") from exc
    if isinstance(raw, str):
        return _state_from_name(raw)
    if callable(getattr(raw, "as_dict", None)):
        raw = raw.as_dict()
    if isinstance(raw, Mapping):
        if set(raw.keys()) == {"variant", "value"} and isinstance(raw["variant"], str):
            return _state_from_name(raw["variant"])
        if len(raw) != 1:
            raise UnexpectedChainResponse(f"Round state must have exactly one active variant: {raw!r}")
        (name,) = raw.keys()
        return _state_from_name(str(name))
    variant = getattr(raw, "variant", None)
    if isinstance(variant, str):
        return _state_from_name(variant)
    if isinstance(raw, Sequence) and len(raw) == 2 and isinstance(raw[0], str):
        return _state_from_name(raw[0])
    raise UnexpectedChainResponse(f"Unexpected round state value: {raw!r}")


def to_hex(value: Any) -> str:
    """Render a felt (int or numeric string) as 0x-prefixed lowercase hex."""
    if isinstance(value, str):
        text = value.strip()
        try:
            value = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError as exc:
            raise UnexpectedChainResponse(f"Not a felt value: {text!r}") from exc
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise UnexpectedChainResponse(f"Not a felt value: {value!r}")
    return hex(value)


def to_int(value: Any, what: str = "value") -> int:
    """Coerce a u64/u256 read from the chain to int."""
    if isinstance(value, bool):
        raise UnexpectedChainResponse(f"Malformed {what}: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise UnexpectedChainResponse(f"Malformed {what}: {value!r}") from exc


def pricing_data_available(latest_ts: int, required_ts: int) -> bool:
    """True once the pricing service has ingested data up to the required timestamp."""
    return latest_ts >= required_ts


def format_time_left(current: int, target: int) -> str:
    seconds_left = int(target) - int(current)
    return f"{seconds_left} seconds ({seconds_left / 3600:.2f} hrs)"


@dataclass(frozen=True)
class RawPricingRequest:
    """Descriptor returned by get_request_to_start_first_round / get_request_to_settle_round."""
    vault_address: str
    timestamp: int
    identifier: str

    @classmethod
    def from_chain(cls, raw: Any) -> "RawPricingRequest":
        if callable(getattr(raw, "as_dict", None)):
            raw = raw.as_dict()
        if isinstance(raw, Mapping):
            try:
                values = [raw["vault_address"], raw["timestamp"], raw["identifier"]]
            except KeyError as exc:
                raise UnexpectedChainResponse(f"Pricing request descriptor missing {exc}") from exc
        elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
            values = list(raw)
        else:
            raise UnexpectedChainResponse(f"Malformed pricing request descriptor: {raw!r}")

        if len(values) != 3:
            raise UnexpectedChainResponse(
                f"Pricing request descriptor must have 3 fields, got {len(values)}"
            )
        return cls(
            vault_address=to_hex(values[0]),
            timestamp=to_int(values[1], "descriptor timestamp"),
            identifier=to_hex(values[2]),
        )


@dataclass(frozen=True)
class TimeWindow:
    start: int
    end: int

    def as_list(self) -> List[int]:
        return [self.start, self.end]


@dataclass(frozen=True)
class PricingRequest:
    """A Fossil pricing job for one vault at one target timestamp."""
    vault_address: str
    client_address: str
    timestamp: int
    identifier: str
    twap: TimeWindow
    volatility: TimeWindow
    reserve_price: TimeWindow

    @classmethod
    def build(cls, raw: RawPricingRequest, client_address: str, round_duration: int) -> "PricingRequest":
        """
        Derive the metric windows from the round duration D, ending at the target timestamp T.

        twap = [T - D, T], volatility = reserve_price = [T - 3D, T]
        """
        if round_duration < 0:
            raise ValueError(f"Round duration must be >= 0, got {round_duration}")
        ts = raw.timestamp
        twap_window = round_duration
        volatility_window = round_duration * 3
        reserve_price_window = round_duration * 3
        return cls(
            vault_address=raw.vault_address,
            client_address=client_address,
            timestamp=ts,
            identifier=raw.identifier,
            twap=TimeWindow(ts - twap_window, ts),
            volatility=TimeWindow(ts - volatility_window, ts),
            reserve_price=TimeWindow(ts - reserve_price_window, ts),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Request body for POST /pricing_data."""
        return {
            "identifiers": [self.identifier],
            "params": {
                "twap": self.twap.as_list(),
                "volatility": self.volatility.as_list(),
                "reserve_price": self.reserve_price.as_list(),
            },
            "client_info": {
                "client_address": self.client_address,
                "vault_address": self.vault_address,
                "timestamp": self.timestamp,
            },
        }


@dataclass(frozen=True)
class LatestBlock:
    """Data horizon reported by the pricing service."""
    block_number: int
    block_timestamp: int


class CheckOutcome(Enum):
    """What a successful check did."""
    WAITING_FOR_TIME = auto()          # Timing window not reached yet
    WAITING_FOR_PRICING_DATA = auto()  # Pricing data horizon behind the required timestamp
    PRICING_REQUESTED = auto()         # Pricing job submitted, fulfilment observed on a later tick
    TRANSACTION_CONFIRMED = auto()     # start_auction / end_auction accepted
    ROUND_SETTLED = auto()             # Terminal, nothing to do

    @property
    def is_waiting(self) -> bool:
        return self in (CheckOutcome.WAITING_FOR_TIME, CheckOutcome.WAITING_FOR_PRICING_DATA)


@dataclass
class CheckResult:
    """Result of one check_and_advance() call for one vault."""
    vault_address: str
    round_id: int
    round_address: str
    state: RoundState
    outcome: CheckOutcome
    action: Optional[str] = None
    required_timestamp: Optional[int] = None
    tx_hash: Optional[str] = None
    job_id: Optional[str] = None
    duration_ms: float = 0.0


@dataclass
class TickSummary:
    """Aggregate of one tick across all vaults."""
    success_count: int = 0
    failure_count: int = 0
    results: Dict[str, CheckResult] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def all_succeeded(self) -> bool:
        return self.failure_count == 0
