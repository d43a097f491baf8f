"""Flow sequencer: the state machine driving a remittance flow step by step."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from .chain.base import BaseWallet, TxHandle
from .config import RemitflowConfig
from .constants import CHAIN_IDS, DEFAULT_GRACE_DELAY_MS, FLOW_STATE_KEY
from .contracts import (
    Finality,
    FlowRequest,
    FlowState,
    FlowStatus,
    PendingTransaction,
    StepFailure,
    StepKind,
    StepOutcome,
    StepSuccess,
)
from .errors import ConfirmationUnknownError, InvalidTransitionError, NoActiveFlowError
from .execute import StepExecutor, SubmittedTransaction
from .history import HistoryEntry, HistoryLedger
from .persistence import StateStore
from .watcher import ConfirmationWatcher

logger = logging.getLogger(__name__)


class FlowSequencer:
    """Owns the single active flow and moves it through its steps.

    Only one flow is active at a time. Every index or status change is
    persisted before control returns to the caller, and the persisted record
    is cleared once the flow completes or is aborted. Steps never advance on
    their own: each ``advance``, ``proceed`` and ``retry`` is an explicit user
    decision.
    """

    def __init__(
        self,
        wallet: BaseWallet,
        store: StateStore,
        history: Optional[HistoryLedger] = None,
        executor: Optional[StepExecutor] = None,
        watcher: Optional[ConfirmationWatcher] = None,
        grace_delay_ms: int = DEFAULT_GRACE_DELAY_MS,
        key: str = FLOW_STATE_KEY,
        chain_ids: Optional[Dict[str, int]] = None,
    ) -> None:
        self._wallet = wallet
        self._store = store
        self._history = history or HistoryLedger(store)
        self._executor = executor or StepExecutor()
        self._watcher = watcher or ConfirmationWatcher(wallet)
        self._grace_delay_ms = grace_delay_ms
        self._key = key
        self._chain_ids = {
            name.lower(): chain_id
            for name, chain_id in (CHAIN_IDS if chain_ids is None else chain_ids).items()
        }
        self._state: Optional[FlowState] = None
        self._lock = asyncio.Lock()
        # Held around every write or delete of the flow record.
        self._store_lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls, wallet: BaseWallet, store: StateStore, config: RemitflowConfig
    ) -> "FlowSequencer":
        return cls(
            wallet,
            store,
            history=HistoryLedger(store, limit=config.history_limit),
            watcher=ConfirmationWatcher(
                wallet,
                timeout_ms=config.watcher.timeout_ms,
                confirmations=config.watcher.confirmations,
            ),
            grace_delay_ms=config.watcher.grace_delay_ms,
            chain_ids=config.rpc.chain_ids,
        )

    @property
    def state(self) -> Optional[FlowState]:
        return self._state

    @property
    def history(self) -> HistoryLedger:
        return self._history

    # ------------------------------------------------------------------
    # Lifecycle
    async def load(self) -> Optional[FlowState]:
        """Recover the persisted flow, if any.

        A corrupt step index is repaired by restarting at step 1; an
        unreadable record is discarded.
        """
        await self._history.load()
        raw = await self._store.get(self._key)
        if raw is None:
            self._state = None
            return None
        try:
            state = FlowState.from_record(raw)
        except (ValidationError, KeyError, TypeError) as e:
            logger.error(f"Discarding unreadable persisted flow: {e}")
            await self._store.delete(self._key)
            self._state = None
            return None

        self._state = state
        if raw.get("step") != state.step_index:
            await self._persist(state)
        logger.info(
            f"Recovered flow {state.flow_id} at step {state.step_index} of {state.total_steps}"
        )
        return state

    async def initiate(self, request: Union[FlowRequest, Dict[str, Any]]) -> FlowState:
        """Start a new flow at step 1, discarding any other persisted flow."""
        if not isinstance(request, FlowRequest):
            request = FlowRequest.parse(request)

        entry = HistoryEntry(
            category="remittance",
            status="pending",
            payload={
                "chain": request.chain,
                "amount": str(request.amount),
                "recipient_address": request.recipient_address,
                "exchange_rates": (
                    request.cost_simulation.exchange_rates if request.cost_simulation else None
                ),
                "fees": request.cost_simulation.fees if request.cost_simulation else None,
            },
            message=(
                f"Starting remittance of ${request.amount} to "
                f"{request.recipient_address} on {request.chain}..."
            ),
        )
        previous = self._state
        if previous is not None and not previous.is_terminal:
            logger.warning(f"Discarding active flow {previous.flow_id} for a new flow")

        # The new flow becomes current before any await, so a step still in
        # flight for the previous flow sees that it was replaced.
        state = FlowState(definition=request, history_id=entry.id)
        self._state = state
        await self._persist(state)
        await self._history.record(entry)
        logger.info(f"Initiated flow {state.flow_id} with {state.total_steps} steps")
        await self.refresh_balances()
        return state

    # ------------------------------------------------------------------
    # Transitions
    async def advance(self, confirm: bool = True) -> FlowState:
        """Execute the current step.

        When the step already has a broadcast transaction, only its
        confirmation is polled again; nothing is resubmitted.
        """
        state = self._require_active()
        if not confirm:
            return state
        self._ensure_idle()
        async with self._lock:
            state = self._require_active()
            return await self._run_step(state)

    async def proceed(self) -> FlowState:
        """Move past a step whose transaction is still unconfirmed."""
        self._ensure_idle()
        async with self._lock:
            state = self._require_active()
            if not state.awaiting_confirmation:
                raise InvalidTransitionError(
                    "proceed is only available while a transaction is unconfirmed"
                )
            pending = state.pending_tx
            logger.info(
                f"User chose to continue flow {state.flow_id} past step {state.step_index} "
                f"without confirmation"
            )
            if pending is not None:
                await self._record_step(
                    state,
                    status="pending",
                    tx_hash=pending.tx_hash,
                    message=(
                        f"Remittance step {state.step_index}: {state.current_step.name} "
                        f"submitted; confirmation pending"
                    ),
                )
                if not self._is_current(state):
                    return state
            state.pending_tx = None
            state.last_outcome = None
            return await self._move_to(state, state.step_index + 1)

    async def retry(self) -> FlowState:
        """Re-execute the current step.

        Any unconfirmed transaction handle is dropped, so a signed step is
        submitted again.
        """
        self._ensure_idle()
        async with self._lock:
            state = self._require_active()
            if state.pending_tx is not None:
                logger.warning(
                    f"Dropping unconfirmed transaction {state.pending_tx.tx_hash} at user's "
                    f"request; step {state.step_index} will be resubmitted"
                )
                state.pending_tx = None
            state.last_outcome = None
            return await self._run_step(state)

    async def abort(self) -> FlowState:
        """Cancel the active flow. Broadcast transactions are not affected."""
        state = self._require_active()
        state.status = FlowStatus.ABORTED
        state.pending_tx = None
        await self._clear(state)
        if state.history_id:
            await self._history.update(
                state.history_id,
                {
                    "status": "failed",
                    "message": f"Remittance cancelled at step {state.step_index} of {state.total_steps}",
                },
            )
        logger.info(f"Aborted flow {state.flow_id} at step {state.step_index}")
        return state

    async def refresh_balances(self) -> None:
        """Re-read test-token balances for display; failures are non-fatal."""
        state = self._state
        if state is None or not state.definition.using_test_tokens:
            return
        tokens = state.definition.token_addresses or {}
        if not tokens:
            return
        try:
            owner = await self._wallet.get_active_address()
        except Exception as e:
            logger.warning(f"Skipping balance refresh: {e}")
            return
        for label, address in tokens.items():
            try:
                balance = await self._wallet.get_balance(address, owner)
            except Exception as e:
                logger.warning(f"Failed to check token balance for {label}: {e}")
                continue
            if not balance.symbol:
                balance.symbol = label
            state.balances[label] = balance

    # ------------------------------------------------------------------
    # Internals
    def _require_active(self) -> FlowState:
        state = self._state
        if state is None or state.is_terminal:
            raise NoActiveFlowError("No active flow; initiate a new one")
        return state

    def _ensure_idle(self) -> None:
        if self._lock.locked():
            raise InvalidTransitionError("A step is already in progress")

    def _is_current(self, state: FlowState) -> bool:
        return self._state is state and not state.is_terminal

    async def _persist(self, state: FlowState) -> bool:
        """Write the flow record unless the flow was aborted or replaced."""
        async with self._store_lock:
            if not self._is_current(state):
                logger.info(f"Flow {state.flow_id} is no longer active; record not written")
                return False
            await self._store.set(self._key, state.to_record())
            return True

    async def _clear(self, state: FlowState) -> None:
        async with self._store_lock:
            if self._state is state:
                await self._store.delete(self._key)

    async def _check_network(self, chain: str) -> Optional[str]:
        """Return why the wallet cannot act on ``chain``, or ``None``."""
        target = self._chain_ids.get(chain.lower())
        if target is None:
            return f"Unsupported chain: {chain}"
        try:
            chain_id = await self._wallet.get_chain_id()
        except Exception as e:
            logger.error(f"Network check failed: {e}")
            return (
                f"Unable to connect to {chain} network. Please check your internet "
                f"connection and wallet network settings."
            )
        if chain_id != target:
            logger.warning(f"Wallet is on chain {chain_id}, flow needs {chain} ({target})")
            return f"Please switch your wallet to {chain} network"
        return None

    async def _run_step(self, state: FlowState) -> FlowState:
        step = state.current_step
        state.status = FlowStatus.IN_PROGRESS
        logger.info(
            f"Processing flow {state.flow_id}: step {state.step_index} of "
            f"{state.total_steps} ({step.name})"
        )

        network_error = None
        if state.pending_tx is not None or step.kind is StepKind.SIGNED_TRANSACTION:
            network_error = await self._check_network(state.definition.chain)

        if network_error is not None:
            outcome: StepOutcome = StepFailure(message=network_error)
        elif state.pending_tx is not None:
            logger.info(
                f"Step {state.step_index} already has transaction {state.pending_tx.tx_hash}; "
                f"re-polling confirmation"
            )
            outcome = await self._confirm(state, self._wallet.handle(state.pending_tx.tx_hash))
        else:
            result = await self._executor.execute(step, self._wallet)
            if isinstance(result, SubmittedTransaction):
                state.pending_tx = PendingTransaction(
                    tx_hash=result.tx_hash, step_index=state.step_index
                )
                # The handle must survive a crash so the step is not resubmitted.
                await self._persist(state)
                outcome = await self._confirm(state, result.handle)
            else:
                outcome = result

        if not self._is_current(state):
            logger.info(
                f"Flow {state.flow_id} was aborted or replaced while step "
                f"{state.step_index} was in flight; discarding its outcome"
            )
            return state
        return await self._apply(state, outcome)

    async def _confirm(self, state: FlowState, handle: TxHandle) -> StepOutcome:
        try:
            finality = await self._watcher.await_finality(handle)
        except ConfirmationUnknownError as e:
            return StepFailure(message=str(e))

        if finality.pending:
            logger.info(
                f"Transaction {handle.tx_hash} pending; rechecking in {self._grace_delay_ms} ms"
            )
            await asyncio.sleep(self._grace_delay_ms / 1000)
            network_error = await self._check_network(state.definition.chain)
            if network_error is not None:
                logger.warning(f"Skipping recheck of {handle.tx_hash}: {network_error}")
            else:
                try:
                    finality = await self._watcher.lookup(handle.tx_hash)
                except Exception as e:
                    logger.warning(f"Recheck of {handle.tx_hash} failed: {e}")

        if not finality.pending and finality.success is False:
            state.pending_tx = None
        return self._finality_outcome(finality)

    @staticmethod
    def _finality_outcome(finality: Finality) -> StepOutcome:
        if finality.pending:
            return StepSuccess(
                kind="transaction", pending=True, tx_hash=finality.tx_hash, note=finality.note
            )
        if finality.success:
            return StepSuccess(
                kind="transaction",
                tx_hash=finality.tx_hash,
                block_number=finality.block_number,
                note=finality.note,
            )
        return StepFailure(
            message=f"Transaction {finality.tx_hash} failed in block {finality.block_number}"
        )

    async def _apply(self, state: FlowState, outcome: StepOutcome) -> FlowState:
        state.last_outcome = outcome

        if isinstance(outcome, StepFailure):
            state.status = FlowStatus.AWAITING_USER
            await self._persist(state)
            logger.error(
                f"Step {state.step_index} of flow {state.flow_id} failed: {outcome.message}"
            )
            return state

        if outcome.pending:
            state.status = FlowStatus.AWAITING_USER
            await self._persist(state)
            logger.info(
                f"Step {state.step_index} of flow {state.flow_id} awaiting confirmation of "
                f"{outcome.tx_hash}"
            )
            return state

        state.pending_tx = None
        step = state.current_step
        if outcome.kind == "balance":
            message = f"Completed remittance step {state.step_index}: {step.name} (balance {outcome.balance})"
        else:
            message = f"Completed remittance step {state.step_index}: {step.name}"
        await self._record_step(state, status="completed", tx_hash=outcome.tx_hash, message=message)
        if not self._is_current(state):
            return state
        if outcome.kind == "transaction":
            await self.refresh_balances()
            if not self._is_current(state):
                return state
        return await self._move_to(state, state.step_index + 1)

    async def _record_step(
        self, state: FlowState, status: str, tx_hash: Optional[str], message: str
    ) -> None:
        request = state.definition
        await self._history.record(
            HistoryEntry(
                category="remittance",
                status=status,
                payload={
                    "transaction_hash": tx_hash,
                    "chain": request.chain,
                    "amount": str(request.amount),
                    "recipient_address": request.recipient_address,
                },
                message=message,
            )
        )

    async def _move_to(self, state: FlowState, next_index: int) -> FlowState:
        if next_index > state.total_steps:
            return await self._complete(state)
        state.step_index = next_index
        state.status = FlowStatus.AWAITING_USER
        if await self._persist(state):
            logger.info(f"Flow {state.flow_id} ready for step {next_index} of {state.total_steps}")
        return state

    async def _complete(self, state: FlowState) -> FlowState:
        state.step_index = state.total_steps + 1
        state.status = FlowStatus.COMPLETED
        state.pending_tx = None
        await self._clear(state)
        if state.history_id:
            request = state.definition
            await self._history.update(
                state.history_id,
                {
                    "status": "completed",
                    "message": (
                        f"Remittance of ${request.amount} to {request.recipient_address} "
                        f"completed"
                    ),
                },
            )
        logger.info(f"Flow {state.flow_id} completed")
        return state
