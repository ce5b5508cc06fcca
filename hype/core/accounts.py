"""
Account Decoders for the Hype Protocol
Root, NetworkRecord, Token and Client accounts parsed from raw account buffers

Every account starts with a tag/version header. The tag is checked before
any other field is read, so a buffer of the wrong kind never yields a
partially-populated record.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import Callable, Iterable, List, Optional, Tuple

from solders.pubkey import Pubkey

from hype.core.bonding_curve import calculate_token_price
from hype.core.codec import (
    Field,
    Kind,
    decode_fields,
    read_address,
    read_text,
    read_u8,
    read_u32,
    read_u64,
    scale_down,
)
from hype.core.errors import DecodeError, DomainError
from hype.core.logger import get_logger
from hype.core.metrics import get_metrics


logger = get_logger(__name__)
metrics = get_metrics()


class AccountTag(IntEnum):
    """Leading tag identifying the account kind"""
    ROOT = 1
    CLIENT = 2
    TOKEN = 3


NETWORK_STRING_LENGTH = 32
MASK_STRING_LENGTH = 64
NETWORK_RECORD_LENGTH = 136
NICKNAME_STRING_LENGTH = 32
OPERATOR_NAME_LENGTH = 24
URL_PREFIX_LENGTH = 32

ROOT_NETWORK_RECORDS_OFFSET = 392
ROOT_DECS_FACTOR_OFFSET = 164

# Token-2022 mint with embedded metadata
MINT_AUTHORITY_OFFSET = 4
MINT_NAME_LENGTH_OFFSET = 302
MINT_NAME_OFFSET = 316

# SPL token account: mint(32) owner(32) amount(u64)
TOKEN_ACCOUNT_AMOUNT_OFFSET = 64


NETWORK_RECORD_LAYOUT = (
    Field("max_length", 0, Kind.I8),
    Field("validator", 8, Kind.ADDRESS),
    Field("descriptor", 40, Kind.TEXT, NETWORK_STRING_LENGTH),
    Field("mask", 72, Kind.TEXT, MASK_STRING_LENGTH),
)

ROOT_LAYOUT = (
    Field("tag", 0, Kind.U32),
    Field("version", 4, Kind.U32),
    Field("admin", 8, Kind.ADDRESS),
    Field("fee_wallet", 40, Kind.ADDRESS),
    Field("base_crncy_mint", 72, Kind.ADDRESS),
    Field("base_crncy_program_address", 104, Kind.ADDRESS),
    Field("clients_count", 136, Kind.I64),
    Field("tokens_count", 144, Kind.I64),
    Field("fees", 152, Kind.AMOUNT),
    Field("networks_count", 160, Kind.U32),
    Field("base_crncy_decs_factor", ROOT_DECS_FACTOR_OFFSET, Kind.U32),
    Field("slot", 168, Kind.I64),
    Field("time", 176, Kind.TIME),
    Field("decimals", 180, Kind.U32),
    Field("supply", 184, Kind.AMOUNT),
    Field("tvl", 192, Kind.AMOUNT),
    Field("counter", 200, Kind.I64),
    Field("all_time_base_crncy_volume", 208, Kind.AMOUNT),
    Field("all_time_tokens_volume", 224, Kind.AMOUNT),
    Field("holder_fees", 240, Kind.AMOUNT),
    Field("init_price", 248, Kind.F64),
    Field("max_supply", 256, Kind.AMOUNT),
    Field("fee_ratio", 264, Kind.F64),
    Field("fee_rate", 272, Kind.F64),
    Field("creation_fee", 280, Kind.F64),
    Field("max_networks_count", 288, Kind.U32),
    Field("creation_time", 292, Kind.TIME),
    Field("min_fees", 296, Kind.F64),
    Field("operator_name", 304, Kind.TEXT, OPERATOR_NAME_LENGTH),
    Field("ref_duration", 336, Kind.U32),
    Field("mask", 340, Kind.U32),
    Field("ref_discount", 344, Kind.F64),
    Field("ref_ratio", 352, Kind.F64),
    Field("url_prefix", 360, Kind.TEXT, URL_PREFIX_LENGTH),
)

TOKEN_LAYOUT = (
    Field("tag", 0, Kind.U32),
    Field("version", 4, Kind.U32),
    Field("id", 8, Kind.I64),
    Field("mint", 16, Kind.ADDRESS),
    Field("program_address", 48, Kind.ADDRESS),
    Field("creator", 80, Kind.ADDRESS),
    Field("creation_time", 112, Kind.TIME),
    Field("time", 116, Kind.TIME),
    Field("supply", 120, Kind.AMOUNT),
    Field("address", 128, Kind.TEXT, NETWORK_STRING_LENGTH),
    Field("network", 160, Kind.U32),
    Field("validation", 164, Kind.U32),
    Field("slot", 168, Kind.I64),
    Field("all_time_trades_count", 176, Kind.I64),
    Field("all_time_base_crncy_volume", 184, Kind.AMOUNT),
    Field("all_time_tokens_volume", 192, Kind.AMOUNT),
)

CLIENT_LAYOUT = (
    Field("tag", 0, Kind.U8),
    Field("version", 1, Kind.U8),
    Field("id", 2, Kind.ADDRESS),
    Field("wallet", 34, Kind.ADDRESS),
    Field("nickname", 66, Kind.TEXT, NICKNAME_STRING_LENGTH),
    Field("ref_stop", 98, Kind.TIME64),
    Field("ref_paid", 106, Kind.UAMOUNT),
    Field("ref_discount", 114, Kind.U64),
    Field("ref_ratio", 122, Kind.U64),
    Field("all_time_base_crncy_volume", 130, Kind.UAMOUNT),
    Field("all_time_tokens_volume", 138, Kind.UAMOUNT),
    Field("ref_address", 146, Kind.ADDRESS),
)


@dataclass
class NetworkRecord:
    """Social-network descriptor stored in the root account"""
    max_length: int
    validator: Pubkey
    descriptor: str
    mask: str


@dataclass
class RootAccount:
    """Protocol-wide singleton account (read-only snapshot)"""
    tag: int
    version: int
    admin: Pubkey
    fee_wallet: Pubkey
    base_crncy_mint: Pubkey
    base_crncy_program_address: Pubkey
    clients_count: int
    tokens_count: int
    fees: Decimal
    networks_count: int
    base_crncy_decs_factor: int  # e.g. 1_000_000 for USDC
    slot: int
    time: datetime
    decimals: int
    supply: Decimal
    tvl: Decimal
    counter: int
    all_time_base_crncy_volume: Decimal
    all_time_tokens_volume: Decimal
    holder_fees: Decimal
    init_price: Decimal
    max_supply: Decimal
    fee_ratio: Decimal
    fee_rate: Decimal
    creation_fee: Decimal
    max_networks_count: int
    creation_time: datetime
    min_fees: Decimal
    operator_name: str
    ref_duration: int
    mask: int
    ref_discount: Decimal
    ref_ratio: Decimal
    url_prefix: str
    networks: List[NetworkRecord] = field(default_factory=list)

    def to_short(self, address: Pubkey) -> "ShortRoot":
        """Context value threaded through curve math and instruction encoding"""
        return ShortRoot(
            address=address,
            base_crncy_decs_factor=self.base_crncy_decs_factor,
            max_supply=self.max_supply,
            init_price=self.init_price,
            fee_rate=self.fee_rate,
            min_fees=self.min_fees,
            networks=list(self.networks),
            base_crncy_mint=self.base_crncy_mint,
            base_crncy_program_address=self.base_crncy_program_address,
        )


@dataclass(frozen=True)
class ShortRoot:
    """Subset of the root account every curve/encoder call needs"""
    address: Pubkey
    base_crncy_decs_factor: int
    max_supply: Decimal
    init_price: Decimal
    fee_rate: Decimal
    min_fees: Decimal
    networks: List[NetworkRecord]
    base_crncy_mint: Pubkey
    base_crncy_program_address: Pubkey

    def network_descriptor(self, network_id: int) -> str:
        if not 0 <= network_id < len(self.networks):
            raise DomainError(
                f"Unknown network id {network_id} (root has {len(self.networks)} networks)"
            )
        return self.networks[network_id].descriptor


@dataclass
class TokenAccount:
    """One bonding-curve token"""
    tag: int
    version: int
    id: int
    mint: Pubkey
    program_address: Pubkey
    creator: Pubkey
    creation_time: datetime
    time: datetime
    supply: Decimal
    address: str
    network: int
    validation: int
    slot: int
    all_time_trades_count: int
    all_time_base_crncy_volume: Decimal
    all_time_tokens_volume: Decimal


@dataclass
class ShortToken:
    """Token view with computed spot price and resolved network"""
    mint: Pubkey
    token_program_id: Pubkey
    address: str
    network_id: int
    network: str
    price: Decimal
    supply: Decimal
    creation_time: datetime

    @classmethod
    def from_account(cls, token: TokenAccount, root: ShortRoot) -> "ShortToken":
        """
        Build the view from a decoded token account

        Raises:
            DecodeError: If the token references a network the root lacks
            DomainError: If its supply is outside the curve domain
        """
        if not 0 <= token.network < len(root.networks):
            raise DecodeError(
                f"Token {token.address!r} references unknown network {token.network} "
                f"(root has {len(root.networks)} networks)"
            )

        return cls(
            mint=token.mint,
            token_program_id=token.program_address,
            address=token.address,
            network_id=token.network,
            network=root.network_descriptor(token.network),
            price=calculate_token_price(token.supply, root),
            supply=token.supply,
            creation_time=token.creation_time,
        )


@dataclass
class ClientAccount:
    """One user/referrer record"""
    tag: int
    version: int
    id: Pubkey
    wallet: Pubkey
    nickname: str
    ref_stop: datetime
    ref_paid: Decimal
    ref_discount: int
    ref_ratio: int
    all_time_base_crncy_volume: Decimal
    all_time_tokens_volume: Decimal
    ref_address: Pubkey


@dataclass
class ShortClient:
    """Client context used when encoding trade instructions"""
    wallet: Pubkey
    nickname: Optional[str] = None
    ref_wallet: Optional[Pubkey] = None

    @classmethod
    def from_account(cls, client: ClientAccount) -> "ShortClient":
        return cls(
            wallet=client.wallet,
            nickname=client.nickname,
            ref_wallet=client.ref_address,
        )


@dataclass(frozen=True)
class ReferralSummary:
    """Aggregate over the clients a wallet referred"""
    earnings: Decimal
    count: int
    volume: Decimal


def _check_header(
    buf: bytes,
    expected_tag: AccountTag,
    read: Callable[[bytes, int], int],
    version_offset: int,
    expected_version: Optional[int]
) -> None:
    tag = read(buf, 0)
    if tag != expected_tag:
        raise DecodeError(
            f"Account tag mismatch: expected {expected_tag.name} ({int(expected_tag)}), got {tag}"
        )
    if expected_version is not None:
        version = read(buf, version_offset)
        if version != expected_version:
            raise DecodeError(
                f"{expected_tag.name} account version mismatch: expected {expected_version}, got {version}"
            )


def decode_network_record(buf: bytes, offset: int) -> NetworkRecord:
    """Decode one 136-byte network record starting at offset"""
    return NetworkRecord(**decode_fields(buf, NETWORK_RECORD_LAYOUT, base=offset))


def decode_root_account(buf: bytes, expected_version: Optional[int] = None) -> RootAccount:
    """
    Decode the root account

    Args:
        buf: Raw account data
        expected_version: Reject buffers of another protocol version

    Returns:
        RootAccount with amounts already divided by its decimals factor

    Raises:
        DecodeError: On tag/version mismatch, short buffer, zero decimals
            factor or a network count above the declared maximum
    """
    _check_header(buf, AccountTag.ROOT, read_u32, 4, expected_version)

    decs_factor = read_u32(buf, ROOT_DECS_FACTOR_OFFSET)
    if decs_factor == 0:
        raise DecodeError("Root account has a zero base currency decimals factor")

    values = decode_fields(buf, ROOT_LAYOUT, decs_factor=decs_factor)

    networks_count = values["networks_count"]
    if networks_count > values["max_networks_count"]:
        raise DecodeError(
            f"Root lists {networks_count} networks, above max {values['max_networks_count']}"
        )

    networks = [
        decode_network_record(buf, ROOT_NETWORK_RECORDS_OFFSET + NETWORK_RECORD_LENGTH * i)
        for i in range(networks_count)
    ]

    logger.debug(
        "root_account_decoded",
        version=values["version"],
        networks=networks_count,
        decs_factor=decs_factor
    )
    metrics.increment_counter("accounts_decoded", labels={"kind": "root"})

    return RootAccount(**values, networks=networks)


def decode_token_account(
    buf: bytes,
    root: ShortRoot,
    expected_version: Optional[int] = None
) -> TokenAccount:
    """
    Decode a token account

    Args:
        buf: Raw account data
        root: Root context supplying the decimals factor
        expected_version: Reject buffers of another protocol version

    Raises:
        DecodeError: On tag/version mismatch or short buffer
    """
    _check_header(buf, AccountTag.TOKEN, read_u32, 4, expected_version)
    values = decode_fields(buf, TOKEN_LAYOUT, decs_factor=root.base_crncy_decs_factor)

    metrics.increment_counter("accounts_decoded", labels={"kind": "token"})
    return TokenAccount(**values)


def decode_client_account(
    buf: bytes,
    root: ShortRoot,
    expected_version: Optional[int] = None
) -> ClientAccount:
    """
    Decode a client account

    Args:
        buf: Raw account data
        root: Root context supplying the decimals factor
        expected_version: Reject buffers of another protocol version

    Raises:
        DecodeError: On tag/version mismatch or short buffer
    """
    _check_header(buf, AccountTag.CLIENT, read_u8, 1, expected_version)
    values = decode_fields(buf, CLIENT_LAYOUT, decs_factor=root.base_crncy_decs_factor)

    metrics.increment_counter("accounts_decoded", labels={"kind": "client"})
    return ClientAccount(**values)


def decode_mint_metadata(buf: bytes, authority: Pubkey) -> Optional[Tuple[str, str]]:
    """
    Read the (name, social) pair from a protocol-issued Token-2022 mint

    The metadata name is stored as "<name> (<network>)".

    Returns:
        (name, social) or None if the mint's authority is not the protocol's

    Raises:
        DecodeError: If the buffer is too short for the declared name
    """
    if read_address(buf, MINT_AUTHORITY_OFFSET) != authority:
        return None

    name_length = read_u32(buf, MINT_NAME_LENGTH_OFFSET)
    text = read_text(buf, MINT_NAME_OFFSET, name_length).replace("\b", "")
    name, _, social = text.partition(" ")
    return name, social


def find_network_id(social: str, root: ShortRoot) -> int:
    """
    Index of the network written as "(descriptor)" in mint metadata

    Raises:
        DomainError: If no network matches
    """
    for i, network in enumerate(root.networks):
        if social.lower() == f"({network.descriptor.lower()})":
            return i
    raise DomainError(f"Network doesn't exist: {social}")


def decode_token_balance(buf: bytes, decs_factor: int) -> Decimal:
    """Balance held by an SPL token account, in domain units"""
    return scale_down(read_u64(buf, TOKEN_ACCOUNT_AMOUNT_OFFSET), decs_factor)


def summarize_referrals(clients: Iterable[ClientAccount]) -> ReferralSummary:
    """Total referral earnings, referred client count and their volume"""
    earnings = Decimal(0)
    volume = Decimal(0)
    count = 0
    for client in clients:
        earnings += client.ref_paid
        volume += client.all_time_base_crncy_volume
        count += 1
    return ReferralSummary(earnings=earnings, count=count, volume=volume)
