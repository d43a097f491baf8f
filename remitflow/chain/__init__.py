"""Wallet collaborator factory."""

from __future__ import annotations

import os
from typing import Optional

from ..config import RemitflowConfig, load_config
from ..errors import WalletError
from .base import BaseWallet, TxHandle, TxInfo, TxReceipt
from .inmemory import InMemoryWallet


def get_wallet(
    url: Optional[str] = None, config: Optional[RemitflowConfig] = None
) -> BaseWallet:
    """Return a wallet for the configured RPC endpoint.

    The endpoint comes from ``url``, ``REMITFLOW_RPC_URL`` or the ``rpc``
    config section. ``memory://`` selects the simulated ledger.
    """
    config = config or load_config()
    url = url or os.getenv("REMITFLOW_RPC_URL") or config.rpc.url
    if not url:
        raise WalletError("No RPC endpoint configured")

    if url.startswith("memory://"):
        return InMemoryWallet(poll_interval=config.watcher.poll_interval)
    if url.startswith("http://") or url.startswith("https://"):
        from .rpc import JsonRpcWallet

        return JsonRpcWallet(
            url,
            account=config.rpc.account,
            poll_interval=config.watcher.poll_interval,
        )
    raise WalletError(f"Unsupported RPC endpoint: {url}")


__all__ = [
    "BaseWallet",
    "InMemoryWallet",
    "TxHandle",
    "TxInfo",
    "TxReceipt",
    "get_wallet",
]
