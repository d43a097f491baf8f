from __future__ import annotations

import os
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    CHAIN_IDS,
    DEFAULT_CONFIRMATION_TIMEOUT_MS,
    DEFAULT_CONFIRMATIONS,
    DEFAULT_GRACE_DELAY_MS,
    DEFAULT_HISTORY_LIMIT,
)
from .fees import FeeSchedule


class StoreConfig(BaseModel):
    """Persistence settings for flow state and history."""

    database_url: Optional[str] = None


class WatcherConfig(BaseModel):
    """Confirmation handling settings."""

    timeout_ms: int = Field(default=DEFAULT_CONFIRMATION_TIMEOUT_MS, gt=0)
    grace_delay_ms: int = Field(default=DEFAULT_GRACE_DELAY_MS, ge=0)
    confirmations: int = Field(default=DEFAULT_CONFIRMATIONS, ge=1)
    poll_interval: float = Field(default=1.0, gt=0)


class RpcConfig(BaseModel):
    url: Optional[str] = None
    chain_ids: Dict[str, int] = Field(default_factory=lambda: dict(CHAIN_IDS))
    account: Optional[str] = None


class RemitflowConfig(BaseModel):
    """Top-level configuration model."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    rpc: RpcConfig = Field(default_factory=RpcConfig)
    fees: FeeSchedule = Field(default_factory=FeeSchedule)
    history_limit: int = Field(default=DEFAULT_HISTORY_LIMIT, ge=1)


def load_config(path: Optional[str] = None) -> RemitflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to REMITFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("REMITFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = RemitflowConfig(**data)
    else:
        config = RemitflowConfig()

    env_db_url = os.getenv("REMITFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.store.database_url = env_db_url
    env_rpc_url = os.getenv("REMITFLOW_RPC_URL")
    if env_rpc_url:
        config.rpc.url = env_rpc_url
    return config
