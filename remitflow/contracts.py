"""Core data contracts for the remittance flow orchestrator."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import FlowDefinitionError

logger = logging.getLogger(__name__)

_STEP_KEY = re.compile(r"^step(\d+)$")


class StepKind(str, Enum):
    """Capability of a step, derived from the fields it carries."""

    SIGNED_TRANSACTION = "signed_transaction"
    BALANCE_QUERY = "balance_query"
    NO_OP = "no_op"


class BalanceCheck(BaseModel):
    token_address: str


class TransactionTemplate(BaseModel):
    """Unsigned transaction supplied by the planning service."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    to: str
    data: str = "0x"
    value: Union[int, str] = 0
    gas: Optional[Union[int, str]] = None
    gas_price: Optional[Union[int, str]] = Field(default=None, alias="gasPrice")
    nonce: Optional[int] = None
    sender: Optional[str] = Field(default=None, alias="from")

    def to_transaction(self, sender: str) -> Dict[str, Any]:
        """Return a wallet-ready transaction dict sent from ``sender``.

        Any ``from`` carried by the template is discarded and ``gas`` is
        renamed to ``gasLimit``.
        """
        tx = self.model_dump(by_alias=True, exclude_none=True)
        tx["from"] = sender
        if "gas" in tx:
            tx["gasLimit"] = tx.pop("gas")
        return tx


class StepSpec(BaseModel):
    """Defines one step of a remittance flow."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    description: str = ""
    explanation: Optional[str] = Field(default=None, alias="explain")
    requires_signature: bool = False
    transaction_template: Optional[TransactionTemplate] = Field(
        default=None, alias="tx_data"
    )
    balance_check: Optional[BalanceCheck] = Field(default=None, alias="check_balance")

    @property
    def kind(self) -> StepKind:
        if self.balance_check is not None:
            return StepKind.BALANCE_QUERY
        if not self.requires_signature:
            return StepKind.NO_OP
        return StepKind.SIGNED_TRANSACTION

    @model_validator(mode="after")
    def _signed_step_needs_template(self) -> "StepSpec":
        if self.kind is StepKind.SIGNED_TRANSACTION and self.transaction_template is None:
            raise ValueError(f"step '{self.name}' requires a signature but has no tx_data")
        return self


class CostSimulation(BaseModel):
    """Quote-side cost preview; informational only."""

    model_config = ConfigDict(extra="allow")

    usd_amount: Optional[Any] = None
    eur_amount: Optional[Any] = None
    exchange_rates: Dict[str, Any] = Field(default_factory=dict)
    fees: Dict[str, Any] = Field(default_factory=dict)


class FlowRequest(BaseModel):
    """Flow initiation input: the step definition plus remittance metadata."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    amount: Union[int, float, str]
    recipient_address: str
    chain: str
    transaction_flow: Dict[str, StepSpec]
    cost_simulation: Optional[CostSimulation] = None
    using_test_tokens: bool = False
    token_addresses: Optional[Dict[str, str]] = None

    @field_validator("transaction_flow")
    @classmethod
    def _ordered_step_keys(cls, v: Dict[str, StepSpec]) -> Dict[str, StepSpec]:
        if not v:
            raise ValueError("transaction_flow must contain at least one step")
        indices = []
        for key in v:
            match = _STEP_KEY.match(key)
            if match is None:
                raise ValueError(f"invalid step key: {key!r}")
            indices.append(int(match.group(1)))
        if sorted(indices) != list(range(1, len(v) + 1)):
            raise ValueError("step keys must be contiguous from step1")
        return {f"step{i}": v[f"step{i}"] for i in range(1, len(v) + 1)}

    @classmethod
    def parse(cls, data: Any) -> "FlowRequest":
        """Validate a raw payload, raising ``FlowDefinitionError`` on failure."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise FlowDefinitionError(str(exc)) from exc

    @property
    def total_steps(self) -> int:
        return len(self.transaction_flow)

    def step(self, index: int) -> StepSpec:
        return self.transaction_flow[f"step{index}"]


class FlowStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    AWAITING_USER = "awaiting_user"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StepSuccess(BaseModel):
    outcome: Literal["success"] = "success"
    kind: Literal["balance", "transaction", "no_signature"]
    pending: bool = False
    balance: Optional[str] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    note: Optional[str] = None


class StepFailure(BaseModel):
    outcome: Literal["failure"] = "failure"
    message: str
    user_rejected: bool = False


StepOutcome = Annotated[Union[StepSuccess, StepFailure], Field(discriminator="outcome")]


class Finality(BaseModel):
    """Result of watching a submitted transaction."""

    tx_hash: str
    pending: bool
    success: Optional[bool] = None
    block_number: Optional[int] = None
    note: Optional[str] = None


class PendingTransaction(BaseModel):
    """A broadcast transaction whose finality is not yet known."""

    tx_hash: str
    step_index: int
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TokenBalance(BaseModel):
    address: str
    symbol: str = ""
    balance: str = "0"
    decimals: int = 18


class FlowState(BaseModel):
    """Position and status of the single active flow instance."""

    flow_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    definition: FlowRequest
    step_index: int = 1
    status: FlowStatus = FlowStatus.AWAITING_USER
    last_outcome: Optional[StepOutcome] = None
    pending_tx: Optional[PendingTransaction] = None
    history_id: Optional[str] = None
    balances: Dict[str, TokenBalance] = Field(default_factory=dict)

    @property
    def total_steps(self) -> int:
        return self.definition.total_steps

    @property
    def current_step(self) -> Optional[StepSpec]:
        if 1 <= self.step_index <= self.total_steps:
            return self.definition.step(self.step_index)
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status in (FlowStatus.COMPLETED, FlowStatus.ABORTED)

    @property
    def awaiting_confirmation(self) -> bool:
        """True when the last outcome left an unconfirmed transaction."""
        return (
            isinstance(self.last_outcome, StepSuccess) and self.last_outcome.pending
        )

    def choices(self) -> List[str]:
        """User actions available in the current state."""
        if self.is_terminal:
            return []
        if self.status is FlowStatus.IN_PROGRESS:
            return ["abort"]
        if self.awaiting_confirmation:
            return ["proceed", "retry", "abort"]
        if isinstance(self.last_outcome, StepFailure):
            return ["retry", "abort"]
        return ["advance", "abort"]

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the persisted ``{data, step}`` layout."""
        return {
            "flow_id": self.flow_id,
            "data": self.definition.model_dump(by_alias=True, mode="json"),
            "step": self.step_index,
            "pending": self.pending_tx.model_dump(mode="json") if self.pending_tx else None,
            "history_id": self.history_id,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "FlowState":
        """Rebuild a state from a persisted record.

        An out-of-range step index is treated as corrupt and reset to 1.
        """
        definition = FlowRequest.model_validate(record["data"])
        step = record.get("step")
        total = definition.total_steps
        if not isinstance(step, int) or isinstance(step, bool) or not 1 <= step <= total:
            logger.warning(
                f"Persisted step {step!r} outside 1..{total}; resetting to step 1"
            )
            step = 1
            pending = None
        else:
            raw_pending = record.get("pending")
            pending = PendingTransaction.model_validate(raw_pending) if raw_pending else None
            if pending is not None and pending.step_index != step:
                pending = None
        state = cls(
            definition=definition,
            step_index=step,
            pending_tx=pending,
            history_id=record.get("history_id"),
        )
        if record.get("flow_id"):
            state.flow_id = record["flow_id"]
        if pending is not None:
            state.last_outcome = StepSuccess(
                kind="transaction", pending=True, tx_hash=pending.tx_hash
            )
        return state
