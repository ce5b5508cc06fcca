"""
Transaction Builder for the Hype client
Wraps trade instructions into unsigned transactions with a compute budget
"""

from typing import List, Optional

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from hype.core.config import ComputeBudgetConfig
from hype.core.logger import get_logger
from hype.core.metrics import LatencyTimer, get_metrics


logger = get_logger(__name__)
metrics = get_metrics()


# Solana transaction size limit in bytes
MAX_TRANSACTION_SIZE = 1232


class TransactionBuilder:
    """
    Builds unsigned transactions around Hype trade instructions

    Signing and submission belong to the caller. Generated keypairs of a
    Create instruction are returned by the encoder and must be passed to
    the signer together with the wallet.

    Usage:
        builder = TransactionBuilder(max_tx_size_bytes=1232)
        tx = builder.build_trade_transaction(
            instruction=trade.instruction,
            payer=wallet.pubkey(),
            recent_blockhash=blockhash,
            compute_budget=ComputeBudgetConfig(units=300_000, unit_price=10_000)
        )
    """

    def __init__(self, max_tx_size_bytes: int = MAX_TRANSACTION_SIZE):
        self.max_tx_size_bytes = max_tx_size_bytes

    def build_transaction(
        self,
        instructions: List[Instruction],
        payer: Pubkey,
        recent_blockhash: Hash,
        compute_unit_limit: Optional[int] = None,
        compute_unit_price: Optional[int] = None
    ) -> Transaction:
        """
        Build a transaction with compute budget instructions prepended

        Args:
            instructions: Instructions to include
            payer: Fee payer public key
            recent_blockhash: Recent blockhash from the node
            compute_unit_limit: Max compute units (optional)
            compute_unit_price: Priority fee in micro-lamports (optional)

        Returns:
            Unsigned Transaction

        Raises:
            ValueError: If transaction size exceeds limit
        """
        with LatencyTimer(metrics, "tx_build"):
            all_instructions = self._create_compute_budget_instructions(
                compute_unit_limit, compute_unit_price
            )
            all_instructions.extend(instructions)

            message = Message.new_with_blockhash(
                all_instructions,
                payer,
                recent_blockhash
            )
            tx = Transaction.new_unsigned(message)

            tx_size = len(bytes(tx))
            if tx_size > self.max_tx_size_bytes:
                raise ValueError(
                    f"Transaction size {tx_size} exceeds limit {self.max_tx_size_bytes}"
                )

            metrics.increment_counter("transactions_built")
            logger.debug(
                "transaction_built",
                instruction_count=len(all_instructions),
                tx_size_bytes=tx_size,
                has_compute_budget=compute_unit_limit is not None
            )

            return tx

    def build_trade_transaction(
        self,
        instruction: Instruction,
        payer: Pubkey,
        recent_blockhash: Hash,
        compute_budget: Optional[ComputeBudgetConfig] = None
    ) -> Transaction:
        """
        Build the transaction for one Mint/Burn/Create instruction

        Args:
            instruction: Encoded trade instruction
            payer: Fee payer (the trading wallet)
            recent_blockhash: Recent blockhash from the node
            compute_budget: Units and priority price; a zero price is omitted

        Raises:
            ValueError: If transaction size exceeds limit
        """
        budget = compute_budget or ComputeBudgetConfig()
        return self.build_transaction(
            instructions=[instruction],
            payer=payer,
            recent_blockhash=recent_blockhash,
            compute_unit_limit=budget.units,
            compute_unit_price=budget.unit_price or None
        )

    def _create_compute_budget_instructions(
        self,
        compute_unit_limit: Optional[int],
        compute_unit_price: Optional[int]
    ) -> List[Instruction]:
        instructions = []

        if compute_unit_limit is not None:
            instructions.append(set_compute_unit_limit(compute_unit_limit))

        if compute_unit_price is not None:
            instructions.append(set_compute_unit_price(compute_unit_price))

        return instructions
