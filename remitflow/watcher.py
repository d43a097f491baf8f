"""Transaction finality detection with a bounded wait."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .chain.base import BaseWallet, TxHandle
from .constants import DEFAULT_CONFIRMATION_TIMEOUT_MS, DEFAULT_CONFIRMATIONS
from .contracts import Finality
from .errors import ConfirmationUnknownError

logger = logging.getLogger(__name__)

DROPPED_NOTE = (
    "Transaction not found on the node; it may have been dropped. "
    "Resubmit only after confirming it will not be mined."
)
PENDING_NOTE = "Transaction submitted but confirmation timed out. It may still complete later."


class ConfirmationWatcher:
    """Decides whether a submitted transaction reached finality.

    The wallet's wait primitive is raced against a timeout. When the wait
    loses (or errors), a single direct ledger lookup settles the common case
    of a slow but successful confirmation. Timeouts only end the wait; the
    transaction itself is never cancelled.
    """

    def __init__(
        self,
        wallet: BaseWallet,
        timeout_ms: int = DEFAULT_CONFIRMATION_TIMEOUT_MS,
        confirmations: int = DEFAULT_CONFIRMATIONS,
    ) -> None:
        self._wallet = wallet
        self.timeout_ms = timeout_ms
        self.confirmations = confirmations

    async def await_finality(
        self, handle: TxHandle, timeout_ms: Optional[int] = None
    ) -> Finality:
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        logger.info(f"Waiting up to {timeout_ms} ms for {handle.tx_hash}")
        try:
            receipt = await asyncio.wait_for(
                handle.wait(self.confirmations), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Confirmation wait for {handle.tx_hash} timed out")
            return await self._fallback(handle.tx_hash, e)
        except Exception as e:
            logger.warning(f"Confirmation wait for {handle.tx_hash} failed: {e}")
            return await self._fallback(handle.tx_hash, e)

        logger.info(
            f"Transaction {handle.tx_hash} settled in block {receipt.block_number} "
            f"(status={receipt.status})"
        )
        return Finality(
            tx_hash=receipt.tx_hash,
            pending=False,
            success=receipt.successful,
            block_number=receipt.block_number,
        )

    async def _fallback(self, tx_hash: str, cause: BaseException) -> Finality:
        try:
            return await self.lookup(tx_hash)
        except Exception as e:
            logger.error(f"Failed to check status of {tx_hash}: {e}")
            raise ConfirmationUnknownError(tx_hash, cause) from e

    async def lookup(self, tx_hash: str) -> Finality:
        """Query the ledger once for the transaction's status."""
        tx = await self._wallet.get_transaction(tx_hash)
        if tx is None:
            logger.warning(f"Transaction {tx_hash} not found")
            return Finality(tx_hash=tx_hash, pending=True, note=DROPPED_NOTE)

        if tx.block_number is None:
            logger.info(f"Transaction {tx_hash} still pending")
            return Finality(tx_hash=tx_hash, pending=True, note=PENDING_NOTE)

        receipt = await self._wallet.get_receipt(tx_hash)
        if receipt is not None and not receipt.successful:
            logger.warning(f"Transaction {tx_hash} reverted in block {receipt.block_number}")
            return Finality(
                tx_hash=tx_hash,
                pending=False,
                success=False,
                block_number=receipt.block_number,
            )
        logger.info(f"Transaction {tx_hash} was mined in block {tx.block_number}")
        return Finality(
            tx_hash=tx_hash,
            pending=False,
            success=True,
            block_number=tx.block_number,
            note="Confirmed via direct check after timeout",
        )
