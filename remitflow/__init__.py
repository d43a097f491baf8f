"""remitflow: Multi-step remittance transaction orchestration."""

from .chain import BaseWallet, InMemoryWallet, get_wallet
from .contracts import FlowRequest, FlowState, FlowStatus, StepFailure, StepSpec, StepSuccess
from .execute import StepExecutor
from .fees import FeeEstimate, FeeSchedule, estimate
from .history import HistoryEntry, HistoryLedger
from .persistence import get_store
from .sequencer import FlowSequencer
from .watcher import ConfirmationWatcher

__version__ = "0.1.0"
__all__ = [
    "BaseWallet",
    "ConfirmationWatcher",
    "FeeEstimate",
    "FeeSchedule",
    "FlowRequest",
    "FlowSequencer",
    "FlowState",
    "FlowStatus",
    "HistoryEntry",
    "HistoryLedger",
    "InMemoryWallet",
    "StepExecutor",
    "StepFailure",
    "StepSpec",
    "StepSuccess",
    "estimate",
    "get_store",
    "get_wallet",
]
