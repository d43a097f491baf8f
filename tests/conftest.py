"""Shared fixtures for remitflow tests."""

from __future__ import annotations

import copy
from typing import Any, Dict

import pytest

import remitflow.persistence as persistence
from remitflow.chain import InMemoryWallet
from remitflow.persistence import InMemoryStateStore
from remitflow.sequencer import FlowSequencer
from remitflow.watcher import ConfirmationWatcher

RECIPIENT = "0x1234567890abcdef1234567890abcdef12345678"
USDC = "0x1c7d4b196cb0c7b01d743fbc6116a902379c7238"
SETTLEMENT = "0x9fe46736679d2d9a65f0992f2272de9f3c7fa6e0"

FLOW_PAYLOAD: Dict[str, Any] = {
    "amount": 100,
    "recipient_address": RECIPIENT,
    "chain": "sepolia",
    "transaction_flow": {
        "step1": {
            "name": "Check USDC balance",
            "description": "Verify the sender holds enough USDC",
            "requires_signature": False,
            "check_balance": {"token_address": USDC},
        },
        "step2": {
            "name": "Approve USDC",
            "description": "Allow the settlement contract to pull USDC",
            "explain": "Grants an allowance of 100 USDC",
            "requires_signature": True,
            "tx_data": {
                "to": USDC,
                "data": "0x095ea7b3",
                "value": 0,
                "gas": 60000,
                "from": "0xdeadbeef00000000000000000000000000000000",
            },
        },
        "step3": {
            "name": "Process remittance",
            "description": "Settle USD to EUR for the recipient",
            "requires_signature": True,
            "tx_data": {"to": SETTLEMENT, "data": "0xabcdef01", "gas": 250000},
        },
    },
    "cost_simulation": {
        "usd_amount": 100,
        "eur_amount": 89.72,
        "exchange_rates": {"USD_EUR": 0.92},
        "fees": {"buy_fee_bps": 100, "swap_fee_bps": 50, "sell_fee_bps": 100},
    },
}


@pytest.fixture
def flow_payload() -> Dict[str, Any]:
    return copy.deepcopy(FLOW_PAYLOAD)


@pytest.fixture
def wallet() -> InMemoryWallet:
    return InMemoryWallet()


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def make_sequencer(store):
    """Build a sequencer with short confirmation timings."""

    def _make(wallet, timeout_ms: int = 50, grace_delay_ms: int = 0) -> FlowSequencer:
        return FlowSequencer(
            wallet,
            store,
            watcher=ConfirmationWatcher(wallet, timeout_ms=timeout_ms),
            grace_delay_ms=grace_delay_ms,
        )

    return _make


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from any local config file and cached store."""
    monkeypatch.setenv("REMITFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    for name in ("REMITFLOW_DATABASE_URL", "DATABASE_URL", "REMITFLOW_RPC_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(persistence, "_store_instance", None)
