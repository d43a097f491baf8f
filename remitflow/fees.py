"""Fixed-point fee and exchange estimation.

All amounts are integers scaled to ``TOKEN_DECIMALS`` places. The stage
order and truncating division match the settlement contract exactly, so a
pre-flight estimate never drifts from the settled result.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from typing import Union

from pydantic import BaseModel, Field

from .constants import BPS_DENOMINATOR, MAX_FEE_BPS, RATE_SCALE, TOKEN_DECIMALS


class FeeSchedule(BaseModel):
    """Fee rates in basis points plus the fixed-point USD to EUR rate."""

    buy_fee_bps: int = Field(default=0, ge=0, le=MAX_FEE_BPS)
    swap_fee_bps: int = Field(default=0, ge=0, le=MAX_FEE_BPS)
    sell_fee_bps: int = Field(default=0, ge=0, le=MAX_FEE_BPS)
    exchange_rate: int = Field(default=RATE_SCALE, ge=0)


class FeeEstimate(BaseModel):
    usd_amount: int
    buy_fee: int
    usdc_after_fee: int
    raw_eurc: int
    swap_fee: int
    eurc_after_swap: int
    sell_fee: int
    eur_final: int

    @property
    def total_fees_usd(self) -> int:
        return self.usd_amount - self.usdc_after_fee


def _require_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    return value


def estimate(usd_amount: int, schedule: FeeSchedule) -> FeeEstimate:
    """Run the buy-fee, exchange, swap-fee and sell-fee stages."""
    usd_amount = _require_int("usd_amount", usd_amount)
    if usd_amount < 0:
        raise ValueError("usd_amount must be non-negative")

    buy_fee = usd_amount * schedule.buy_fee_bps // BPS_DENOMINATOR
    usdc_after_fee = usd_amount - buy_fee

    raw_eurc = usdc_after_fee * schedule.exchange_rate // RATE_SCALE

    swap_fee = raw_eurc * schedule.swap_fee_bps // BPS_DENOMINATOR
    eurc_after_swap = raw_eurc - swap_fee

    sell_fee = eurc_after_swap * schedule.sell_fee_bps // BPS_DENOMINATOR
    eur_final = eurc_after_swap - sell_fee

    return FeeEstimate(
        usd_amount=usd_amount,
        buy_fee=buy_fee,
        usdc_after_fee=usdc_after_fee,
        raw_eurc=raw_eurc,
        swap_fee=swap_fee,
        eurc_after_swap=eurc_after_swap,
        sell_fee=sell_fee,
        eur_final=eur_final,
    )


def to_units(amount: Union[str, int, Decimal], decimals: int = TOKEN_DECIMALS) -> int:
    """Convert a human-readable amount to scaled integer units, truncating."""
    if isinstance(amount, float):
        raise TypeError("float amounts are not accepted; pass a string or Decimal")
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"invalid amount: {amount!r}")
    with localcontext() as ctx:
        # Exact scaling: enough digits for the coefficient plus the shift.
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits) + decimals + 1)
        scaled = value.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def format_units(value: int, decimals: int = TOKEN_DECIMALS) -> str:
    """Render scaled integer units as a decimal string."""
    value = _require_int("value", value)
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10**decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    frac_str = str(frac).rjust(decimals, "0").rstrip("0") or "0"
    return f"{sign}{whole}.{frac_str}"
