"""Tests for configuration loading."""

import pytest

from remitflow.chain import InMemoryWallet, get_wallet
from remitflow.chain.rpc import JsonRpcWallet
from remitflow.config import RemitflowConfig, load_config
from remitflow.errors import WalletError
from remitflow.persistence import SQLiteStateStore, get_store
from remitflow.sequencer import FlowSequencer


def _write_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"""
store:
  database_url: sqlite://{tmp_path / "flows.db"}
watcher:
  timeout_ms: 1500
  grace_delay_ms: 0
  confirmations: 2
rpc:
  url: memory://
fees:
  buy_fee_bps: 100
  exchange_rate: 920000
history_limit: 5
"""
    )
    monkeypatch.setenv("REMITFLOW_CONFIG", str(config_path))


def test_load_config_from_env(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch)

    config = load_config()

    assert config.watcher.timeout_ms == 1500
    assert config.watcher.confirmations == 2
    assert config.fees.buy_fee_bps == 100
    assert config.fees.swap_fee_bps == 0
    assert config.fees.exchange_rate == 920000
    assert config.history_limit == 5
    assert config.rpc.url == "memory://"


def test_defaults_without_config_file():
    config = load_config()

    assert config.watcher.timeout_ms == 60000
    assert config.watcher.grace_delay_ms == 5000
    assert config.history_limit == 10
    assert config.store.database_url is None


def test_env_overrides_urls(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch)
    monkeypatch.setenv("REMITFLOW_DATABASE_URL", "sqlite:///elsewhere.db")
    monkeypatch.setenv("REMITFLOW_RPC_URL", "https://rpc.example")

    config = load_config()

    assert config.store.database_url == "sqlite:///elsewhere.db"
    assert config.rpc.url == "https://rpc.example"


def test_factories_use_config(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch)
    config = load_config()

    store = get_store()
    assert isinstance(store, SQLiteStateStore)
    wallet = get_wallet()
    assert isinstance(wallet, InMemoryWallet)

    sequencer = FlowSequencer.from_config(wallet, store, config)
    assert sequencer.history._limit == 5
    store.close()


def test_get_wallet_backends():
    config = RemitflowConfig()
    assert isinstance(get_wallet("memory://", config), InMemoryWallet)
    assert isinstance(get_wallet("http://localhost:8545", config), JsonRpcWallet)
    with pytest.raises(WalletError):
        get_wallet("ftp://localhost", config)
    with pytest.raises(WalletError):
        get_wallet(config=config)


def test_invalid_values_are_rejected(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("fees:\n  sell_fee_bps: 5000\n")
    monkeypatch.setenv("REMITFLOW_CONFIG", str(config_path))

    with pytest.raises(ValueError):
        load_config()


def test_chain_table_from_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("rpc:\n  url: memory://\n  chain_ids:\n    Anvil: 31337\n")
    monkeypatch.setenv("REMITFLOW_CONFIG", str(config_path))

    config = load_config()
    assert config.rpc.chain_ids == {"Anvil": 31337}
    assert RemitflowConfig().rpc.chain_ids["sepolia"] == 11155111

    sequencer = FlowSequencer.from_config(InMemoryWallet(), get_store(), config)
    assert sequencer._chain_ids == {"anvil": 31337}
