"""JSON-RPC wallet backed by an Ethereum node."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..constants import USER_REJECTION_MARKERS
from ..contracts import TokenBalance
from ..errors import WalletError
from ..fees import format_units
from .base import BaseWallet, TxHandle, TxInfo, TxReceipt

logger = logging.getLogger(__name__)

# ERC-20 selectors
BALANCE_OF = "0x70a08231"
DECIMALS = "0x313ce567"
SYMBOL = "0x95d89b41"

# EIP-1193 "user rejected request"
USER_REJECTED_CODE = 4001

_QUANTITY_FIELDS = ("value", "gas", "gasPrice", "nonce", "maxFeePerGas", "maxPriorityFeePerGas")


def _to_quantity(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else hex(int(value))
    return hex(int(value))


def _from_quantity(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    return int(value, 16)


def _pad_address(address: str) -> str:
    return address.lower().replace("0x", "").rjust(64, "0")


def _decode_string(result: str) -> str:
    raw = bytes.fromhex(result[2:])
    if len(raw) == 32:  # some tokens return bytes32
        return raw.rstrip(b"\x00").decode("utf-8", errors="replace")
    offset = int.from_bytes(raw[:32], "big")
    length = int.from_bytes(raw[offset : offset + 32], "big")
    start = offset + 32
    return raw[start : start + length].decode("utf-8", errors="replace")


class JsonRpcWallet(BaseWallet):
    """Wallet that lets the node sign with an unlocked account.

    ``eth_sendTransaction`` delegates signing to the node or to a wallet
    provider in front of it, which is where user rejections originate.
    """

    def __init__(
        self,
        url: str,
        account: Optional[str] = None,
        timeout: float = 30.0,
        poll_interval: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.account = account
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _call(self, method: str, params: List[Any]) -> Any:
        if self._client is None:
            await self.connect()
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise WalletError(f"{method} failed: {exc}") from exc

        error = body.get("error")
        if error:
            message = str(error.get("message", error))
            rejected = error.get("code") == USER_REJECTED_CODE or any(
                marker in message.lower() for marker in USER_REJECTION_MARKERS
            )
            raise WalletError(message, user_rejected=rejected)
        return body.get("result")

    # ------------------------------------------------------------------
    async def get_active_address(self) -> str:
        if self.account:
            return self.account
        accounts = await self._call("eth_accounts", [])
        if not accounts:
            raise WalletError("No wallet is connected!")
        return accounts[0]

    async def sign_and_send(self, transaction: Dict[str, Any]) -> TxHandle:
        tx = dict(transaction)
        if "gasLimit" in tx:
            tx["gas"] = tx.pop("gasLimit")
        for field in _QUANTITY_FIELDS:
            if tx.get(field) is not None:
                tx[field] = _to_quantity(tx[field])
        logger.info(f"Sending transaction from {tx.get('from')} to {tx.get('to')}")
        tx_hash = await self._call("eth_sendTransaction", [tx])
        return TxHandle(self, tx_hash)

    async def get_transaction(self, tx_hash: str) -> Optional[TxInfo]:
        result = await self._call("eth_getTransactionByHash", [tx_hash])
        if not result:
            return None
        return TxInfo(
            tx_hash=result.get("hash", tx_hash),
            block_number=_from_quantity(result.get("blockNumber")),
            sender=result.get("from"),
            to=result.get("to"),
            nonce=_from_quantity(result.get("nonce")),
        )

    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        result = await self._call("eth_getTransactionReceipt", [tx_hash])
        if not result or result.get("blockNumber") is None:
            return None
        return TxReceipt(
            tx_hash=result.get("transactionHash", tx_hash),
            block_number=_from_quantity(result["blockNumber"]),
            status=_from_quantity(result.get("status")) if result.get("status") else 1,
        )

    async def get_block_number(self) -> int:
        return _from_quantity(await self._call("eth_blockNumber", []))

    async def get_chain_id(self) -> int:
        return _from_quantity(await self._call("eth_chainId", []))

    async def _eth_call(self, to: str, data: str) -> str:
        return await self._call("eth_call", [{"to": to, "data": data}, "latest"])

    async def get_balance(self, token_address: str, owner: str) -> TokenBalance:
        raw_balance = await self._eth_call(token_address, BALANCE_OF + _pad_address(owner))
        decimals = _from_quantity(await self._eth_call(token_address, DECIMALS))
        symbol = _decode_string(await self._eth_call(token_address, SYMBOL))
        return TokenBalance(
            address=token_address,
            symbol=symbol,
            balance=format_units(_from_quantity(raw_balance), decimals),
            decimals=decimals,
        )
