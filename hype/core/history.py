"""
Transaction history views derived from trade reports
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from solders.pubkey import Pubkey

from hype.core.accounts import ShortRoot
from hype.core.bonding_curve import calculate_token_price
from hype.core.codec import DECIMAL_CONTEXT
from hype.core.events import EventKind, MintOrBurnReport


@dataclass
class TransactionHistoryItem:
    """Supply and price on both sides of one trade"""
    event: EventKind
    supply_before: Decimal
    price_before: Decimal
    supply_after: Decimal
    price_after: Decimal
    sum: Decimal  # base currency traded
    token_amount: Decimal
    time: datetime

    @classmethod
    def from_report(cls, report: MintOrBurnReport, root: ShortRoot) -> "TransactionHistoryItem":
        """
        Re-run the curve before and after the trade

        Raises:
            DomainError: If either supply is outside the curve domain
        """
        direction = 1 if report.event == EventKind.MINT else -1
        supply_before = DECIMAL_CONTEXT.subtract(
            report.supply, DECIMAL_CONTEXT.multiply(report.tokens_amount, direction)
        )
        return cls(
            event=report.event,
            supply_before=supply_before,
            price_before=calculate_token_price(supply_before, root),
            supply_after=report.supply,
            price_after=calculate_token_price(report.supply, root),
            sum=report.base_crncy_amount,
            token_amount=report.tokens_amount,
            time=report.time,
        )


def _order_key(report: MintOrBurnReport):
    return report.slot, report.order_id


def latest_report(reports: Iterable[MintOrBurnReport]) -> Optional[MintOrBurnReport]:
    """Most recent report by (slot, order id); None if there are none"""
    return max(reports, key=_order_key, default=None)


def token_history(
    reports: Iterable[MintOrBurnReport],
    root: ShortRoot,
    wallet: Optional[Pubkey] = None
) -> List[TransactionHistoryItem]:
    """
    History items newest-first

    Args:
        reports: Trade reports of one token, in any order
        root: Curve context
        wallet: Keep only this wallet's trades (portfolio view)
    """
    selected = [r for r in reports if wallet is None or r.wallet == wallet]
    selected.sort(key=_order_key, reverse=True)
    return [TransactionHistoryItem.from_report(r, root) for r in selected]
