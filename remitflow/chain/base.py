"""Wallet collaborator interface used by the orchestrator."""

from __future__ import annotations

import abc
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from ..contracts import TokenBalance
from ..utils.retry import schedule_retry

logger = logging.getLogger(__name__)


class TxInfo(BaseModel):
    """Transaction as seen by a direct ledger lookup."""

    tx_hash: str
    block_number: Optional[int] = None
    sender: Optional[str] = None
    to: Optional[str] = None
    nonce: Optional[int] = None


class TxReceipt(BaseModel):
    tx_hash: str
    block_number: int
    status: int = 1

    @property
    def successful(self) -> bool:
        return self.status == 1


class TxHandle:
    """Reference to a broadcast transaction."""

    def __init__(self, wallet: "BaseWallet", tx_hash: str) -> None:
        self.wallet = wallet
        self.tx_hash = tx_hash

    async def wait(self, confirmations: int = 1) -> TxReceipt:
        """Block until the transaction has ``confirmations`` confirmations."""
        return await self.wallet.wait_for_receipt(self.tx_hash, confirmations)

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"TxHandle({self.tx_hash!r})"


class BaseWallet(metaclass=abc.ABCMeta):
    """Abstract signing, broadcast and ledger-read collaborator."""

    poll_interval: float = 1.0

    async def connect(self) -> None:
        """Open connection to the node (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the node (no-op by default)."""
        pass

    @abc.abstractmethod
    async def get_active_address(self) -> str:
        """Return the address of the account that signs transactions."""
        raise NotImplementedError

    @abc.abstractmethod
    async def sign_and_send(self, transaction: Dict[str, Any]) -> TxHandle:
        """Sign and broadcast ``transaction``.

        Raises:
            WalletError: If the user declines or the broadcast fails.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def get_transaction(self, tx_hash: str) -> Optional[TxInfo]:
        """Look a transaction up directly; ``None`` when unknown to the node."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        """Return the receipt of a mined transaction, if any."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_block_number(self) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_chain_id(self) -> int:
        """Return the chain id of the network the wallet is connected to."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_balance(self, token_address: str, owner: str) -> TokenBalance:
        """Read an ERC-20 balance for ``owner``."""
        raise NotImplementedError

    def handle(self, tx_hash: str) -> TxHandle:
        """Rebuild a handle for an already broadcast transaction."""
        return TxHandle(self, tx_hash)

    async def wait_for_receipt(self, tx_hash: str, confirmations: int = 1) -> TxReceipt:
        """Poll for a receipt until it has enough confirmations.

        Callers bound this with their own timeout; it never gives up on its own.
        """
        attempt = 0
        while True:
            receipt = await self.get_receipt(tx_hash)
            if receipt is not None:
                latest = await self.get_block_number()
                if latest - receipt.block_number + 1 >= confirmations:
                    return receipt
            logger.debug(f"Receipt for {tx_hash} not final yet (attempt {attempt})")
            await schedule_retry(attempt, interval=self.poll_interval)
            attempt += 1
