"""
Transaction Listener for the Hype program
Turns log-subscription deliveries into ParsedTransaction callbacks

The listener owns no connection. The transport layer subscribes to the
program's logs and hands each delivery to handle_logs (already unpacked) or
handle_notification (raw logsNotification JSON).
"""

import inspect
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from solders.pubkey import Pubkey

from hype.core.errors import DecodeError
from hype.core.events import ParsedTransaction, decode_log_batch, to_parsed_transaction
from hype.core.logger import get_logger
from hype.core.metrics import LatencyTimer, get_metrics


logger = get_logger(__name__)
metrics = get_metrics()


TransactionCallback = Callable[[ParsedTransaction], Union[None, Awaitable[None]]]


@dataclass
class ListenerStats:
    """
    Listener statistics

    Attributes:
        deliveries: Log deliveries handled while listening
        failed_transactions_skipped: Deliveries for transactions that failed on-chain
        transactions_dispatched: ParsedTransactions handed to the callback
        malformed_lines: Log lines that failed to decode
        callback_errors: Exceptions raised by the callback
        last_order_id: Highest order id seen, -1 before the first trade
    """
    deliveries: int
    failed_transactions_skipped: int
    transactions_dispatched: int
    malformed_lines: int
    callback_errors: int
    last_order_id: int


class TransactionListener:
    """
    Decodes program log deliveries and dispatches ParsedTransactions

    Features:
    - Per-line fault isolation inside a delivery
    - Sync or async callbacks
    - Skips transactions that failed on-chain
    - Tracks the highest order id seen

    Usage:
        listener = TransactionListener(program_id, root.base_crncy_decs_factor)

        async def on_tx(tx: ParsedTransaction):
            logger.info("hype_transaction", **tx.to_dict())

        await listener.start(on_tx)
        await listener.handle_notification(websocket_message)
    """

    def __init__(
        self,
        program_id: Pubkey,
        decs_factor: int,
        on_transaction: Optional[TransactionCallback] = None
    ):
        """
        Initialize listener

        Args:
            program_id: Program whose logs are delivered
            decs_factor: Base currency decimals factor from the root account
            on_transaction: Callback for each ParsedTransaction (optional)

        Raises:
            ValueError: If decs_factor is not positive
        """
        if decs_factor <= 0:
            raise ValueError(f"decs_factor must be positive, got {decs_factor}")

        self.program_id = program_id
        self.decs_factor = decs_factor
        self.on_transaction = on_transaction

        self._listening = False
        self._deliveries = 0
        self._failed_skipped = 0
        self._dispatched = 0
        self._malformed_lines = 0
        self._callback_errors = 0
        self.last_order_id = -1

    @property
    def is_listening(self) -> bool:
        return self._listening

    async def start(self, on_transaction: Optional[TransactionCallback] = None) -> None:
        """
        Start accepting deliveries

        Args:
            on_transaction: Replaces the constructor callback when given
        """
        if on_transaction is not None:
            self.on_transaction = on_transaction
        self._listening = True
        logger.info("transaction_listener_started", program_id=str(self.program_id))

    async def stop(self) -> None:
        """Stop accepting deliveries; later deliveries are ignored"""
        self._listening = False
        logger.info("transaction_listener_stopped", **self.get_stats().__dict__)

    async def handle_logs(
        self,
        signature: str,
        logs: Sequence[str],
        err: Any = None
    ) -> List[ParsedTransaction]:
        """
        Process one transaction's log lines

        Args:
            signature: Transaction signature
            logs: Log lines in emission order
            err: Transaction error from the node (None on success)

        Returns:
            ParsedTransactions dispatched for this delivery
        """
        if not self._listening:
            return []

        self._deliveries += 1

        if err is not None:
            self._failed_skipped += 1
            logger.debug("failed_transaction_skipped", signature=signature, error=str(err))
            return []

        received_at = datetime.now(timezone.utc)
        with LatencyTimer(metrics, "log_batch_decode"):
            batch = decode_log_batch(logs, self.decs_factor)

        if batch.failures:
            self._malformed_lines += len(batch.failures)
            logger.debug(
                "delivery_had_malformed_lines",
                signature=signature,
                indexes=[f.index for f in batch.failures]
            )

        transactions = []
        for report in batch.events:
            transaction = to_parsed_transaction(report, signature, received_at)
            if transaction is None:
                continue

            if transaction.order_id:
                self.last_order_id = max(self.last_order_id, int(transaction.order_id))
                metrics.set_gauge("last_order_id", self.last_order_id)

            transactions.append(transaction)
            await self._dispatch(transaction)

        return transactions

    async def handle_notification(self, message: Union[str, bytes, Dict[str, Any]]) -> List[ParsedTransaction]:
        """
        Process a raw logsNotification message from the node's websocket

        Messages with another method (subscription confirmations, pings)
        are ignored.

        Raises:
            DecodeError: If the message is not a JSON object, or a
                logsNotification lacks signature or logs
        """
        if isinstance(message, (str, bytes)):
            try:
                message = json.loads(message)
            except json.JSONDecodeError as e:
                raise DecodeError(f"Notification is not valid JSON: {e}") from e

        if not isinstance(message, dict):
            raise DecodeError(f"Notification must be a JSON object, got {type(message).__name__}")

        if message.get("method") != "logsNotification":
            return []

        try:
            value = message["params"]["result"]["value"]
            signature = value["signature"]
            logs = value["logs"]
        except (KeyError, TypeError) as e:
            raise DecodeError(f"logsNotification missing field: {e}") from e

        return await self.handle_logs(signature, logs or [], value.get("err"))

    async def _dispatch(self, transaction: ParsedTransaction) -> None:
        if self.on_transaction is None:
            return

        try:
            result = self.on_transaction(transaction)
            if inspect.isawaitable(result):
                await result
            self._dispatched += 1
            metrics.increment_counter("transactions_dispatched", labels={"type": transaction.type})
        except Exception as e:
            self._callback_errors += 1
            logger.error(
                "callback_error",
                error=str(e),
                signature=transaction.id
            )

    def get_stats(self) -> ListenerStats:
        return ListenerStats(
            deliveries=self._deliveries,
            failed_transactions_skipped=self._failed_skipped,
            transactions_dispatched=self._dispatched,
            malformed_lines=self._malformed_lines,
            callback_errors=self._callback_errors,
            last_order_id=self.last_order_id
        )
