"""
Bonding Curve Engine for the Hype Protocol
Reserve, spot price, mint cost and burn payout using exact decimal math

Curve (M = max supply, I = initial price, S = supply):
    reserve(S) = M * S * I / (M - S)
    price(S)   = (reserve(S) + M * I) / (M - S)

Mint and burn are the difference of two reserve calls. Slippage limits
in outbound instructions are derived from these values.
"""

from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import TYPE_CHECKING, Optional

from hype.core.codec import DECIMAL_CONTEXT, Number, to_decimal
from hype.core.errors import DomainError
from hype.core.logger import get_logger
from hype.core.metrics import get_metrics

if TYPE_CHECKING:
    from hype.core.accounts import ShortRoot


logger = get_logger(__name__)
metrics = get_metrics()


@dataclass(frozen=True)
class MintQuote:
    """Cost of minting tokens, in base currency"""
    cost: Decimal  # reserve(S + amount) - reserve(S)
    fees: Decimal  # max(cost * fee_rate, min_fees)
    total: Decimal  # cost + fees


@dataclass(frozen=True)
class BurnQuote:
    """Payout for burning tokens, in base currency"""
    cashout: Decimal  # reserve(S) - reserve(S - amount)
    fees: Decimal  # max(cashout * fee_rate, min_fees)
    total: Decimal  # cashout - fees


def _check_supply(supply: Decimal, max_supply: Decimal) -> None:
    if supply < 0:
        raise DomainError(f"Supply must be non-negative, got {supply}")
    if supply >= max_supply:
        raise DomainError(
            f"Supply {supply} is at or beyond max supply {max_supply}"
        )


def calculate_reserve(supply: Number, root: "ShortRoot") -> Decimal:
    """
    Base currency backing the curve at a given supply

    Args:
        supply: Token supply (domain units)
        root: Protocol context (max_supply, init_price)

    Returns:
        Reserve in base currency

    Raises:
        DomainError: If supply is negative or >= max supply
    """
    s = to_decimal(supply)
    m = to_decimal(root.max_supply)
    _check_supply(s, m)

    with localcontext(DECIMAL_CONTEXT):
        return m * s * to_decimal(root.init_price) / (m - s)


def calculate_token_price(
    supply: Number,
    root: "ShortRoot",
    reserve: Optional[Number] = None
) -> Decimal:
    """
    Spot price at a given supply

    Args:
        supply: Token supply (domain units)
        root: Protocol context
        reserve: Previously computed reserve(supply); reused as-is when given

    Returns:
        Price of one token in base currency

    Raises:
        DomainError: If supply is negative or >= max supply
    """
    s = to_decimal(supply)
    m = to_decimal(root.max_supply)
    _check_supply(s, m)

    r = calculate_reserve(s, root) if reserve is None else to_decimal(reserve)

    with localcontext(DECIMAL_CONTEXT):
        return (r + m * to_decimal(root.init_price)) / (m - s)


def _fees(base_amount: Decimal, root: "ShortRoot") -> Decimal:
    with localcontext(DECIMAL_CONTEXT):
        return max(base_amount * to_decimal(root.fee_rate), to_decimal(root.min_fees))


def calculate_mint(supply: Number, amount: Number, root: "ShortRoot") -> MintQuote:
    """
    Quote minting `amount` tokens at `supply`

    Raises:
        DomainError: If amount is not positive or supply + amount reaches max supply
    """
    s1 = to_decimal(supply)
    value = to_decimal(amount)
    if value <= 0:
        raise DomainError(f"Amount must be positive, got {value}")

    with localcontext(DECIMAL_CONTEXT):
        s2 = s1 + value
        r2 = calculate_reserve(s2, root)
        r1 = calculate_reserve(s1, root)
        cost = r2 - r1
        fees = _fees(cost, root)
        total = cost + fees

    logger.debug(
        "mint_quote_calculated",
        supply=str(s1),
        amount=str(value),
        initial_reserve=str(r1),
        cost=str(cost),
        fees=str(fees)
    )
    metrics.increment_counter("curve_quotes", labels={"kind": "mint"})

    return MintQuote(cost=cost, fees=fees, total=total)


def calculate_burn(supply: Number, amount: Number, root: "ShortRoot") -> BurnQuote:
    """
    Quote burning `amount` tokens at `supply`

    Raises:
        DomainError: If amount is not positive or exceeds supply
    """
    s1 = to_decimal(supply)
    value = to_decimal(amount)
    if value <= 0:
        raise DomainError(f"Amount must be positive, got {value}")

    with localcontext(DECIMAL_CONTEXT):
        s2 = s1 - value
        r1 = calculate_reserve(s1, root)
        r2 = calculate_reserve(s2, root)
        cashout = r1 - r2
        fees = _fees(cashout, root)
        total = cashout - fees

    logger.debug(
        "burn_quote_calculated",
        supply=str(s1),
        amount=str(value),
        initial_reserve=str(r1),
        cashout=str(cashout),
        fees=str(fees)
    )
    metrics.increment_counter("curve_quotes", labels={"kind": "burn"})

    return BurnQuote(cashout=cashout, fees=fees, total=total)
