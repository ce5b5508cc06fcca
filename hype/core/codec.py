"""
Primitive binary codec for Hype on-chain data
Fixed-offset little-endian reads/writes and declarative field layouts

Every account and instruction payload of the protocol is a fixed layout.
Layouts are declared as tuples of Field(name, offset, kind) and consumed by
decode_fields/encode_fields, one table per record kind.
"""

import base64
import binascii
import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Context, Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from solders.pubkey import Pubkey

from hype.core.errors import DecodeError


ADDRESS_LENGTH = 32

# Working precision for every protocol amount, price and fee.
# Large enough that i64 raw amounts divided by the decimals factor are exact.
DECIMAL_CONTEXT = Context(prec=48)

Number = Union[int, float, str, Decimal]


class Kind(Enum):
    """Wire type of a fixed-layout field"""
    U8 = "u8"
    I8 = "i8"
    U32 = "u32"
    I32 = "i32"
    U64 = "u64"
    I64 = "i64"
    F64 = "f64"  # decoded to the Decimal of the shortest float repr
    ADDRESS = "address"
    TIME = "time"  # u32 unix seconds
    TIME64 = "time64"  # u64 unix seconds
    TEXT = "text"  # zero-padded single-byte text of `length` bytes
    AMOUNT = "amount"  # i64 raw amount / decimals factor
    UAMOUNT = "uamount"  # u64 raw amount / decimals factor


_FORMATS = {
    Kind.U8: "<B",
    Kind.I8: "<b",
    Kind.U32: "<I",
    Kind.I32: "<i",
    Kind.U64: "<Q",
    Kind.I64: "<q",
    Kind.F64: "<d",
    Kind.TIME: "<I",
    Kind.TIME64: "<Q",
    Kind.AMOUNT: "<q",
    Kind.UAMOUNT: "<Q",
}

_SCALED = (Kind.AMOUNT, Kind.UAMOUNT)


@dataclass(frozen=True)
class Field:
    """One entry of a fixed binary layout"""
    name: str
    offset: int
    kind: Kind
    length: int = 0  # TEXT only

    @property
    def width(self) -> int:
        if self.kind is Kind.TEXT:
            return self.length
        if self.kind is Kind.ADDRESS:
            return ADDRESS_LENGTH
        return struct.calcsize(_FORMATS[self.kind])


Layout = Sequence[Field]


# =============================================================================
# READS
# =============================================================================

def _check_bounds(buf: bytes, offset: int, width: int) -> None:
    if offset < 0 or offset + width > len(buf):
        raise DecodeError(
            f"read of {width} bytes at offset {offset} exceeds buffer of {len(buf)} bytes"
        )


def _unpack(buf: bytes, offset: int, fmt: str):
    _check_bounds(buf, offset, struct.calcsize(fmt))
    return struct.unpack_from(fmt, buf, offset)[0]


def read_u8(buf: bytes, offset: int) -> int:
    return _unpack(buf, offset, "<B")


def read_i8(buf: bytes, offset: int) -> int:
    return _unpack(buf, offset, "<b")


def read_u32(buf: bytes, offset: int) -> int:
    return _unpack(buf, offset, "<I")


def read_i32(buf: bytes, offset: int) -> int:
    return _unpack(buf, offset, "<i")


def read_u64(buf: bytes, offset: int) -> int:
    return _unpack(buf, offset, "<Q")


def read_i64(buf: bytes, offset: int) -> int:
    return _unpack(buf, offset, "<q")


def read_f64(buf: bytes, offset: int) -> float:
    return _unpack(buf, offset, "<d")


def read_address(buf: bytes, offset: int) -> Pubkey:
    """Read a raw 32-byte address"""
    _check_bounds(buf, offset, ADDRESS_LENGTH)
    return Pubkey.from_bytes(bytes(buf[offset:offset + ADDRESS_LENGTH]))


def read_text(buf: bytes, offset: int, max_length: int) -> str:
    """
    Read a zero-padded text field

    Stops at the first zero byte or after max_length bytes. Bytes are
    single-byte characters.
    """
    _check_bounds(buf, offset, max_length)
    return decode_zero_terminated(bytes(buf[offset:offset + max_length]))


def decode_zero_terminated(raw: bytes) -> str:
    end = raw.find(b"\x00")
    if end != -1:
        raw = raw[:end]
    return raw.decode("latin-1")


def from_unix(seconds: int) -> datetime:
    """
    UTC datetime from UNIX seconds

    Raises:
        DecodeError: If the value is outside the platform's datetime range
    """
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, ValueError, OSError) as e:
        raise DecodeError(f"timestamp {seconds} out of range: {e}") from e


# =============================================================================
# WRITES
# =============================================================================

def _pack(buf: bytearray, offset: int, fmt: str, value) -> None:
    _check_bounds(buf, offset, struct.calcsize(fmt))
    try:
        struct.pack_into(fmt, buf, offset, value)
    except struct.error as e:
        raise ValueError(f"cannot write {value!r} as {fmt} at offset {offset}: {e}") from e


def write_u8(buf: bytearray, offset: int, value: int) -> None:
    _pack(buf, offset, "<B", value)


def write_u32(buf: bytearray, offset: int, value: int) -> None:
    _pack(buf, offset, "<I", value)


def write_i32(buf: bytearray, offset: int, value: int) -> None:
    _pack(buf, offset, "<i", value)


def write_u64(buf: bytearray, offset: int, value: int) -> None:
    _pack(buf, offset, "<Q", value)


def write_i64(buf: bytearray, offset: int, value: int) -> None:
    _pack(buf, offset, "<q", value)


def write_text(buf: bytearray, offset: int, width: int, text: str) -> None:
    """Write text left-aligned, zero-padded to width, truncated if longer"""
    _check_bounds(buf, offset, width)
    data = text.encode("utf-8")[:width]
    buf[offset:offset + width] = data.ljust(width, b"\x00")


def write_address(buf: bytearray, offset: int, address: Pubkey) -> None:
    _check_bounds(buf, offset, ADDRESS_LENGTH)
    buf[offset:offset + ADDRESS_LENGTH] = bytes(address)


# =============================================================================
# DECIMAL SCALING
# =============================================================================

def to_decimal(value: Number) -> Decimal:
    """Convert to Decimal; floats go through their shortest repr, not binary expansion"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def scale_down(raw: int, decs_factor: int) -> Decimal:
    """Raw on-chain integer -> domain amount"""
    return DECIMAL_CONTEXT.divide(Decimal(raw), Decimal(decs_factor))


def scale_up(value: Number, decs_factor: int) -> int:
    """Domain amount -> raw on-chain integer, truncated toward zero"""
    scaled = DECIMAL_CONTEXT.multiply(to_decimal(value), Decimal(decs_factor))
    return int(scaled.to_integral_value(rounding=ROUND_DOWN, context=DECIMAL_CONTEXT))


# =============================================================================
# LAYOUTS
# =============================================================================

def layout_size(layout: Layout) -> int:
    return max(f.offset + f.width for f in layout)


def decode_field(buf: bytes, field: Field, base: int = 0, decs_factor: Optional[int] = None) -> Any:
    offset = base + field.offset
    kind = field.kind

    if kind is Kind.ADDRESS:
        return read_address(buf, offset)
    if kind is Kind.TEXT:
        return read_text(buf, offset, field.length)

    raw = _unpack(buf, offset, _FORMATS[kind])
    if kind in (Kind.TIME, Kind.TIME64):
        try:
            return from_unix(raw)
        except DecodeError as e:
            raise DecodeError(f"field {field.name}: {e}") from e
    if kind is Kind.F64:
        return to_decimal(raw)
    if kind in _SCALED:
        if not decs_factor:
            raise DecodeError(f"field {field.name} needs a non-zero decimals factor")
        return scale_down(raw, decs_factor)
    return raw


def decode_fields(
    buf: bytes,
    layout: Layout,
    base: int = 0,
    decs_factor: Optional[int] = None
) -> Dict[str, Any]:
    """
    Decode every field of a layout in one linear pass

    Args:
        buf: Source buffer (never mutated)
        layout: Field table
        base: Offset of the record inside buf
        decs_factor: Divisor for AMOUNT/UAMOUNT fields

    Returns:
        Mapping of field name to decoded value

    Raises:
        DecodeError: If any field falls outside the buffer
    """
    return {f.name: decode_field(buf, f, base, decs_factor) for f in layout}


def encode_field(buf: bytearray, field: Field, value: Any, base: int = 0, decs_factor: Optional[int] = None) -> None:
    offset = base + field.offset
    kind = field.kind

    if kind is Kind.ADDRESS:
        write_address(buf, offset, value)
        return
    if kind is Kind.TEXT:
        write_text(buf, offset, field.length, value)
        return

    if kind in (Kind.TIME, Kind.TIME64) and isinstance(value, datetime):
        value = int(value.timestamp())
    elif kind is Kind.F64:
        value = float(value)
    elif kind in _SCALED:
        if not decs_factor:
            raise ValueError(f"field {field.name} needs a non-zero decimals factor")
        value = scale_up(value, decs_factor)
    else:
        value = int(value)
    _pack(buf, offset, _FORMATS[kind], value)


def encode_fields(
    values: Mapping[str, Any],
    layout: Layout,
    size: Optional[int] = None,
    decs_factor: Optional[int] = None,
    buf: Optional[bytearray] = None,
    base: int = 0
) -> bytearray:
    """
    Encode values into a zero-filled fixed layout

    Fields missing from values are left zeroed.
    """
    if buf is None:
        buf = bytearray(size if size is not None else base + layout_size(layout))
    for field in layout:
        if field.name in values and values[field.name] is not None:
            encode_field(buf, field, values[field.name], base, decs_factor)
    return buf


# =============================================================================
# BASE64 LOG FIELDS
# =============================================================================

def b64_bytes(field: str) -> bytes:
    try:
        return base64.b64decode(field, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64 field {field!r}: {e}") from e
