"""Exception hierarchy for remitflow."""

from __future__ import annotations

from typing import Optional


class RemitflowError(Exception):
    """Base class for all remitflow errors."""


class FlowDefinitionError(RemitflowError):
    """Raised when a flow initiation payload fails validation."""


class NoActiveFlowError(RemitflowError):
    """Raised when an operation needs an active flow and there is none."""


class InvalidTransitionError(RemitflowError):
    """Raised when an operation is not allowed in the current flow state."""


class WalletError(RemitflowError):
    """Failure reported by the signing/broadcast collaborator."""

    def __init__(self, message: str, user_rejected: bool = False) -> None:
        super().__init__(message)
        self.user_rejected = user_rejected


class ConfirmationUnknownError(RemitflowError):
    """Neither the wait nor the direct lookup could settle a transaction."""

    def __init__(self, tx_hash: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(
            f"Transaction submitted ({tx_hash}) but confirmation status unknown: {cause}"
        )
        self.tx_hash = tx_hash
        self.cause = cause


class UnauthorizedError(RemitflowError):
    """Raised when a non-owner attempts an administrative settlement call."""


class StoreError(RemitflowError):
    """Raised for persistence backend configuration problems."""
