"""Step execution engine for remittance flows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from .chain.base import BaseWallet, TxHandle
from .constants import USER_REJECTION_MARKERS, USER_REJECTION_MESSAGE
from .contracts import StepFailure, StepKind, StepSpec, StepSuccess
from .errors import WalletError

logger = logging.getLogger(__name__)


@dataclass
class SubmittedTransaction:
    """A broadcast transaction awaiting a finality decision by the caller."""

    handle: TxHandle

    @property
    def tx_hash(self) -> str:
        return self.handle.tx_hash


ExecutionResult = Union[StepSuccess, StepFailure, SubmittedTransaction]


def is_user_rejection(error: BaseException) -> bool:
    if isinstance(error, WalletError) and error.user_rejected:
        return True
    text = str(error).lower()
    return any(marker in text for marker in USER_REJECTION_MARKERS)


class StepExecutor:
    """Executes a single flow step against the wallet collaborator."""

    async def execute(self, step: StepSpec, wallet: BaseWallet) -> ExecutionResult:
        kind = step.kind
        logger.info(f"Executing step '{step.name}' ({kind.value})")
        if kind is StepKind.BALANCE_QUERY:
            return await self._check_balance(step, wallet)
        if kind is StepKind.NO_OP:
            return StepSuccess(kind="no_signature")
        return await self._submit(step, wallet)

    async def _check_balance(self, step: StepSpec, wallet: BaseWallet) -> StepSuccess:
        token = step.balance_check.token_address
        try:
            owner = await wallet.get_active_address()
            balance = await wallet.get_balance(token, owner)
        except Exception as e:
            # Balance reads are informational; a failed read reports zero.
            logger.warning(f"Failed to check balance of {token}: {e}")
            return StepSuccess(kind="balance", balance="0")
        return StepSuccess(kind="balance", balance=balance.balance)

    async def _submit(
        self, step: StepSpec, wallet: BaseWallet
    ) -> Union[StepFailure, SubmittedTransaction]:
        try:
            sender = await wallet.get_active_address()
            tx = step.transaction_template.to_transaction(sender)
            logger.debug(f"Prepared transaction for step '{step.name}': {tx}")
            handle = await wallet.sign_and_send(tx)
        except Exception as e:
            if is_user_rejection(e):
                logger.info(f"Transaction for step '{step.name}' was rejected by user")
                return StepFailure(message=USER_REJECTION_MESSAGE, user_rejected=True)
            logger.error(f"Failed to execute step '{step.name}': {e}")
            return StepFailure(message=str(e) or type(e).__name__)

        logger.info(f"Transaction sent for step '{step.name}': {handle.tx_hash}")
        return SubmittedTransaction(handle)
