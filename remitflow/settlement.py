"""In-process mirror of the on-chain settlement contract.

The contract charges the buy fee, converts at the fixed-point rate, charges
the swap and sell fees and emits one event per stage. This mirror follows the
same arithmetic (via :func:`remitflow.fees.estimate`) and records a cost
counter per stage in place of gas.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .errors import UnauthorizedError
from .fees import FeeEstimate, FeeSchedule, estimate

logger = logging.getLogger(__name__)

# Cost units charged per stage; a stand-in for per-stage gas accounting.
STAGE_COSTS: Dict[str, int] = {
    "BuyFeeCharged": 21_000,
    "Exchanged": 35_000,
    "SwapFeeCharged": 21_000,
    "SellFeeCharged": 21_000,
}


class SettlementEvent(BaseModel):
    name: str
    flow_id: int
    amount_in: int
    amount_out: int
    fee: int = 0
    cost: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SettlementRecord(BaseModel):
    flow_id: int
    usd_amount: int
    recipient: str
    destination: str
    estimate: FeeEstimate
    stage_costs: Dict[str, int] = Field(default_factory=dict)
    total_cost: int = 0


class SettlementContract:
    """Owner-administered fee schedule plus flow processing."""

    def __init__(self, owner: str, schedule: Optional[FeeSchedule] = None) -> None:
        self.owner = owner
        self.schedule = schedule or FeeSchedule()
        self.events: List[SettlementEvent] = []
        self.flows: Dict[int, SettlementRecord] = {}
        self._next_flow_id = 1

    def _only_owner(self, caller: str) -> None:
        if caller.lower() != self.owner.lower():
            raise UnauthorizedError(f"{caller} is not the settlement owner")

    def set_fees(
        self,
        caller: str,
        buy_fee_bps: Optional[int] = None,
        swap_fee_bps: Optional[int] = None,
        sell_fee_bps: Optional[int] = None,
    ) -> FeeSchedule:
        """Update fee rates; unspecified rates keep their current value."""
        self._only_owner(caller)
        data = self.schedule.model_dump()
        for key, value in (
            ("buy_fee_bps", buy_fee_bps),
            ("swap_fee_bps", swap_fee_bps),
            ("sell_fee_bps", sell_fee_bps),
        ):
            if value is not None:
                data[key] = value
        # FeeSchedule validation enforces the 0..1000 bps cap
        self.schedule = FeeSchedule.model_validate(data)
        logger.info(f"Settlement fees updated: {self.schedule}")
        return self.schedule

    def set_exchange_rate(self, caller: str, rate: int) -> FeeSchedule:
        self._only_owner(caller)
        self.schedule = FeeSchedule.model_validate(
            {**self.schedule.model_dump(), "exchange_rate": rate}
        )
        logger.info(f"Settlement exchange rate updated to {rate}")
        return self.schedule

    def estimate(self, usd_amount: int) -> Tuple[int, int, int]:
        result = estimate(usd_amount, self.schedule)
        return result.usdc_after_fee, result.eurc_after_swap, result.eur_final

    def process_flow(
        self, usd_amount: int, recipient: str, destination: str
    ) -> Tuple[int, int]:
        """Settle a flow and return ``(flow_id, final_amount)``."""
        if usd_amount <= 0:
            raise ValueError("usd_amount must be positive")
        flow_id = self._next_flow_id
        self._next_flow_id += 1

        result = estimate(usd_amount, self.schedule)
        stages = [
            ("BuyFeeCharged", result.usd_amount, result.usdc_after_fee, result.buy_fee),
            ("Exchanged", result.usdc_after_fee, result.raw_eurc, 0),
            ("SwapFeeCharged", result.raw_eurc, result.eurc_after_swap, result.swap_fee),
            ("SellFeeCharged", result.eurc_after_swap, result.eur_final, result.sell_fee),
        ]
        record = SettlementRecord(
            flow_id=flow_id,
            usd_amount=usd_amount,
            recipient=recipient,
            destination=destination,
            estimate=result,
        )
        for name, amount_in, amount_out, fee in stages:
            cost = STAGE_COSTS[name]
            record.stage_costs[name] = cost
            record.total_cost += cost
            self.events.append(
                SettlementEvent(
                    name=name,
                    flow_id=flow_id,
                    amount_in=amount_in,
                    amount_out=amount_out,
                    fee=fee,
                    cost=cost,
                )
            )
        self.events.append(
            SettlementEvent(
                name="FlowProcessed",
                flow_id=flow_id,
                amount_in=usd_amount,
                amount_out=result.eur_final,
                cost=record.total_cost,
            )
        )
        self.flows[flow_id] = record
        logger.info(
            f"Processed settlement flow {flow_id}: {usd_amount} -> {result.eur_final} for {recipient}"
        )
        return flow_id, result.eur_final
