"""
Log-Event Decoder for the Hype Protocol
Turns program log lines into typed event reports

The program emits one "Program data:" line per event. Each line holds
whitespace-separated base64 fields: the first is a one-byte discriminant,
the rest are positional and typed per event kind. "Error:" lines carry free
text. Every other line (runtime chatter, other programs) is ignored.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import IntEnum
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple, Union

from solders.pubkey import Pubkey

from hype.core.codec import Field, Kind, b64_bytes, decode_field, decode_zero_terminated
from hype.core.errors import DecodeError, MalformedEvent
from hype.core.logger import get_logger
from hype.core.metrics import get_metrics


logger = get_logger(__name__)
metrics = get_metrics()


PROGRAM_DATA_PREFIX = "Program data:"
ERROR_PREFIX = "Error:"

# ParsedTransaction.type values
MINT_TYPE = "mint"
BURN_TYPE = "burn"
NEWTOKEN_TYPE = "newtoken"
INSTRUCTION_TYPE = "instruction"

# Trade instruction names -> stream channel index
EVENT_MAP: Dict[str, int] = {
    "Mint": 0,
    "Burn": 1,
    "Create": 2,
}


class EventKind(IntEnum):
    """One-byte discriminant of a program data line"""
    ERROR = 0
    NEW_CLIENT = 1
    NEW_NETWORK = 2
    NEW_TOKEN = 3
    MINT = 4
    BURN = 5


# =============================================================================
# REPORTS
# =============================================================================

@dataclass
class NewClientReport:
    event: ClassVar[EventKind] = EventKind.NEW_CLIENT
    client_id: int
    order_id: int
    wallet: Pubkey
    time: datetime
    slot: int
    nickname: str


@dataclass
class NewNetworkReport:
    event: ClassVar[EventKind] = EventKind.NEW_NETWORK
    network_id: int
    descriptor: str
    time: datetime
    slot: int


@dataclass
class NewTokenReport:
    event: ClassVar[EventKind] = EventKind.NEW_TOKEN
    client_id: int
    order_id: int
    token_id: int
    network_id: int
    mint: Pubkey
    creator: Pubkey
    address: str
    time: datetime
    slot: int


@dataclass
class MintOrBurnReport:
    """A completed trade against a token's bonding curve"""
    event: EventKind  # MINT or BURN
    client_id: int
    order_id: int
    token_id: int
    network_id: int
    mint: Pubkey
    creator: Pubkey
    address: str
    supply: Decimal  # after the trade
    creation_time: datetime
    all_time_trades_count: int
    all_time_base_crncy_volume: Decimal
    all_time_tokens_volume: Decimal
    tokens_amount: Decimal
    base_crncy_amount: Decimal
    time: datetime
    slot: int
    wallet: Pubkey
    nickname: str


@dataclass
class ErrorReport:
    event: ClassVar[EventKind] = EventKind.ERROR
    message: str


Report = Union[NewClientReport, NewNetworkReport, NewTokenReport, MintOrBurnReport, ErrorReport]


# Positional field order after the discriminant
NEW_CLIENT_FIELDS: Tuple[Tuple[str, Kind], ...] = (
    ("client_id", Kind.U64),
    ("order_id", Kind.U64),
    ("wallet", Kind.ADDRESS),
    ("time", Kind.TIME),
    ("slot", Kind.U64),
    ("nickname", Kind.TEXT),
)

NEW_NETWORK_FIELDS: Tuple[Tuple[str, Kind], ...] = (
    ("network_id", Kind.U32),
    ("descriptor", Kind.TEXT),
    ("time", Kind.TIME),
    ("slot", Kind.U64),
)

NEW_TOKEN_FIELDS: Tuple[Tuple[str, Kind], ...] = (
    ("client_id", Kind.U64),
    ("order_id", Kind.U64),
    ("token_id", Kind.U64),
    ("network_id", Kind.U32),
    ("mint", Kind.ADDRESS),
    ("creator", Kind.ADDRESS),
    ("address", Kind.TEXT),
    ("time", Kind.TIME),
    ("slot", Kind.U64),
)

TRADE_FIELDS: Tuple[Tuple[str, Kind], ...] = (
    ("client_id", Kind.U64),
    ("order_id", Kind.U64),
    ("token_id", Kind.U64),
    ("network_id", Kind.U32),
    ("mint", Kind.ADDRESS),
    ("creator", Kind.ADDRESS),
    ("address", Kind.TEXT),
    ("supply", Kind.UAMOUNT),
    ("creation_time", Kind.TIME),
    ("all_time_trades_count", Kind.U64),
    ("all_time_base_crncy_volume", Kind.UAMOUNT),
    ("all_time_tokens_volume", Kind.UAMOUNT),
    ("tokens_amount", Kind.UAMOUNT),
    ("base_crncy_amount", Kind.UAMOUNT),
    ("time", Kind.TIME),
    ("slot", Kind.U64),
    ("wallet", Kind.ADDRESS),
    ("nickname", Kind.TEXT),
)

_EVENT_FIELDS = {
    EventKind.NEW_CLIENT: NEW_CLIENT_FIELDS,
    EventKind.NEW_NETWORK: NEW_NETWORK_FIELDS,
    EventKind.NEW_TOKEN: NEW_TOKEN_FIELDS,
    EventKind.MINT: TRADE_FIELDS,
    EventKind.BURN: TRADE_FIELDS,
}


# =============================================================================
# DECODING
# =============================================================================

def _decode_value(raw: bytes, name: str, kind: Kind, decs_factor: Optional[int]) -> Any:
    if kind is Kind.TEXT:
        return decode_zero_terminated(raw)
    return decode_field(raw, Field(name, 0, kind), decs_factor=decs_factor)


def _decode_program_data(line: str, decs_factor: Optional[int]) -> Optional[Report]:
    fields = line[len(PROGRAM_DATA_PREFIX):].split()
    if not fields:
        raise MalformedEvent("program data line has no fields", line)

    try:
        head = b64_bytes(fields[0])
    except DecodeError as e:
        raise MalformedEvent(f"bad event discriminant: {e}", line) from e
    if not head:
        raise MalformedEvent("empty event discriminant", line)

    try:
        kind = EventKind(head[0])
    except ValueError:
        return None  # another program's event
    if kind not in _EVENT_FIELDS:
        return None

    layout = _EVENT_FIELDS[kind]
    if kind in (EventKind.MINT, EventKind.BURN) and not decs_factor:
        raise ValueError(f"decoding {kind.name} events requires a non-zero decimals factor")

    if len(fields) - 1 < len(layout):
        raise MalformedEvent(
            f"{kind.name} event expects {len(layout)} fields, got {len(fields) - 1}",
            line
        )

    values = {}
    for (name, field_kind), encoded in zip(layout, fields[1:]):
        try:
            values[name] = _decode_value(b64_bytes(encoded), name, field_kind, decs_factor)
        except DecodeError as e:
            raise MalformedEvent(f"{kind.name} event field {name}: {e}", line) from e

    if kind is EventKind.NEW_CLIENT:
        return NewClientReport(**values)
    if kind is EventKind.NEW_NETWORK:
        return NewNetworkReport(**values)
    if kind is EventKind.NEW_TOKEN:
        return NewTokenReport(**values)
    return MintOrBurnReport(event=kind, **values)


def decode_log_line(line: str, decs_factor: Optional[int] = None) -> Optional[Report]:
    """
    Decode one program log line

    Args:
        line: Log line as delivered by the node
        decs_factor: Base currency decimals factor (required for Mint/Burn)

    Returns:
        Typed report, or None for lines that are not Hype events

    Raises:
        MalformedEvent: If the line has a known prefix but its fields
            cannot be decoded
    """
    if line.startswith(PROGRAM_DATA_PREFIX):
        report = _decode_program_data(line, decs_factor)
    elif line.startswith(ERROR_PREFIX):
        report = ErrorReport(message=line[len(ERROR_PREFIX):].strip())
    else:
        return None

    if report is not None:
        metrics.increment_counter("events_decoded", labels={"kind": report.event.name.lower()})
    return report


@dataclass
class LineFailure:
    """A log line that matched a prefix but failed to decode"""
    index: int
    line: str
    error: DecodeError


@dataclass
class LogBatch:
    """Decoded events of one transaction's log lines, in line order"""
    events: List[Report] = field(default_factory=list)
    failures: List[LineFailure] = field(default_factory=list)


def decode_log_batch(lines: Iterable[str], decs_factor: int) -> LogBatch:
    """
    Decode a batch of log lines with per-line fault isolation

    A malformed line is recorded in `failures` and logged; the remaining
    lines are still decoded.

    Args:
        lines: Log lines of one transaction
        decs_factor: Base currency decimals factor from the root account

    Returns:
        LogBatch with events in line order

    Raises:
        ValueError: If decs_factor is not positive
    """
    if decs_factor is None or decs_factor <= 0:
        raise ValueError(f"decs_factor must be positive, got {decs_factor}")

    batch = LogBatch()
    for index, line in enumerate(lines):
        try:
            report = decode_log_line(line, decs_factor)
        except DecodeError as e:
            logger.warning("log_line_decode_failed", index=index, error=str(e))
            metrics.increment_counter("malformed_log_lines")
            batch.failures.append(LineFailure(index=index, line=line, error=e))
            continue
        if report is not None:
            batch.events.append(report)
    return batch


# =============================================================================
# STREAMING VIEW
# =============================================================================

@dataclass
class ParsedTransaction:
    """Normalized event record for streaming consumers"""
    id: str  # transaction signature
    token_id: str
    order_id: str
    token: str  # mint address
    creator: str
    wallet: str
    address: str
    network_id: int
    type: str  # MINT_TYPE, BURN_TYPE, NEWTOKEN_TYPE or INSTRUCTION_TYPE
    committed_at: datetime
    created_at: datetime
    supply: Decimal
    supply_delta: Decimal
    base_crncy_amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable form"""
        return {
            "id": self.id,
            "token_id": self.token_id,
            "order_id": self.order_id,
            "token": self.token,
            "creator": self.creator,
            "wallet": self.wallet,
            "address": self.address,
            "network_id": self.network_id,
            "type": self.type,
            "committed_at": self.committed_at.isoformat(),
            "created_at": self.created_at.isoformat(),
            "supply": str(self.supply),
            "supply_delta": str(self.supply_delta),
            "base_crncy_amount": str(self.base_crncy_amount),
        }


def to_parsed_transaction(
    report: Report,
    signature: str,
    received_at: Optional[datetime] = None
) -> Optional[ParsedTransaction]:
    """
    Convert a report to its streaming form

    Args:
        report: Decoded event
        signature: Signature of the transaction that emitted it
        received_at: Arrival time, used as both timestamps of Error events
            (defaults to now)

    Returns:
        ParsedTransaction, or None for NewClient/NewNetwork events
    """
    if isinstance(report, NewTokenReport):
        return ParsedTransaction(
            id=signature,
            token_id=str(report.token_id),
            order_id=str(report.order_id),
            token=str(report.mint),
            creator=str(report.creator),
            wallet=str(report.creator),  # the creator is the trading wallet
            address=report.address,
            network_id=report.network_id,
            type=NEWTOKEN_TYPE,
            committed_at=report.time,
            created_at=report.time,
            supply=Decimal(0),
            supply_delta=Decimal(0),
            base_crncy_amount=Decimal(0),
        )

    if isinstance(report, MintOrBurnReport):
        is_mint = report.event == EventKind.MINT
        return ParsedTransaction(
            id=signature,
            token_id=str(report.token_id),
            order_id=str(report.order_id),
            token=str(report.mint),
            creator=str(report.creator),
            wallet=str(report.wallet),
            address=report.address,
            network_id=report.network_id,
            type=MINT_TYPE if is_mint else BURN_TYPE,
            committed_at=report.time,
            created_at=report.creation_time,
            supply=report.supply,
            supply_delta=report.tokens_amount if is_mint else -report.tokens_amount,
            base_crncy_amount=report.base_crncy_amount,
        )

    if isinstance(report, ErrorReport):
        at = received_at or datetime.now(timezone.utc)
        return ParsedTransaction(
            id=signature,
            token_id="",
            order_id="",
            token="",
            creator="",
            wallet="",
            address="",
            network_id=0,
            type=INSTRUCTION_TYPE,
            committed_at=at,
            created_at=at,
            supply=Decimal(0),
            supply_delta=Decimal(0),
            base_crncy_amount=Decimal(0),
        )

    return None
