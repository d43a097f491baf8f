"""Simulated ledger wallet for tests and local runs."""

from __future__ import annotations

import asyncio
import hashlib
from typing import Any, Dict, List, Optional

from ..contracts import TokenBalance
from ..errors import WalletError
from .base import BaseWallet, TxHandle, TxInfo, TxReceipt


class InMemoryWallet(BaseWallet):
    """Keep a toy ledger in local memory.

    Transactions land in a mempool on ``sign_and_send`` and are mined by
    :meth:`mine`, or immediately when ``auto_mine`` is set. Failure modes can
    be scripted with :meth:`reject_next`, :meth:`fail_next`, :meth:`revert_next`
    and :meth:`drop`.
    """

    def __init__(
        self,
        address: str = "0x00000000000000000000000000000000000a11ce",
        auto_mine: bool = True,
        poll_interval: float = 0.01,
        chain_id: int = 11155111,
    ) -> None:
        self.address = address
        self.chain_id = chain_id
        self.auto_mine = auto_mine
        self.poll_interval = poll_interval
        self.block_number = 0
        self.sent: List[Dict[str, Any]] = []
        self.balances: Dict[str, TokenBalance] = {}
        self._mempool: Dict[str, Dict[str, Any]] = {}
        self._mined: Dict[str, TxReceipt] = {}
        self._reverting: set[str] = set()
        self._scripted_errors: List[WalletError] = []
        self._revert_next = False
        self.balance_error: Optional[Exception] = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Scripting helpers
    def reject_next(self, message: str = "user rejected transaction") -> None:
        self._scripted_errors.append(WalletError(message, user_rejected=True))

    def fail_next(self, message: str) -> None:
        self._scripted_errors.append(WalletError(message))

    def revert_next(self) -> None:
        self._revert_next = True

    def set_balance(
        self, token_address: str, balance: str, symbol: str = "", decimals: int = 6
    ) -> None:
        self.balances[token_address] = TokenBalance(
            address=token_address, symbol=symbol, balance=balance, decimals=decimals
        )

    def mine(self, blocks: int = 1) -> None:
        """Mine everything in the mempool, then advance ``blocks`` blocks."""
        self.block_number += 1
        for tx_hash in list(self._mempool):
            self._mempool.pop(tx_hash)
            self._mined[tx_hash] = TxReceipt(
                tx_hash=tx_hash,
                block_number=self.block_number,
                status=0 if tx_hash in self._reverting else 1,
            )
        self.block_number += max(blocks - 1, 0)

    def drop(self, tx_hash: str) -> None:
        """Forget a mempool transaction, as if the node evicted it."""
        self._mempool.pop(tx_hash, None)

    # ------------------------------------------------------------------
    # BaseWallet API
    async def get_active_address(self) -> str:
        return self.address

    async def sign_and_send(self, transaction: Dict[str, Any]) -> TxHandle:
        async with self._lock:
            if self._scripted_errors:
                raise self._scripted_errors.pop(0)
            self.sent.append(dict(transaction))
            digest = hashlib.sha256(
                f"{len(self.sent)}:{sorted(transaction.items())}".encode()
            ).hexdigest()
            tx_hash = f"0x{digest}"
            self._mempool[tx_hash] = dict(transaction)
            if self._revert_next:
                self._reverting.add(tx_hash)
                self._revert_next = False
            if self.auto_mine:
                self.mine()
        return TxHandle(self, tx_hash)

    async def get_transaction(self, tx_hash: str) -> Optional[TxInfo]:
        if tx_hash in self._mined:
            return TxInfo(tx_hash=tx_hash, block_number=self._mined[tx_hash].block_number)
        tx = self._mempool.get(tx_hash)
        if tx is None:
            return None
        return TxInfo(tx_hash=tx_hash, sender=tx.get("from"), to=tx.get("to"))

    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        return self._mined.get(tx_hash)

    async def get_block_number(self) -> int:
        return self.block_number

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def get_balance(self, token_address: str, owner: str) -> TokenBalance:
        if self.balance_error is not None:
            raise self.balance_error
        return self.balances.get(token_address) or TokenBalance(address=token_address)
