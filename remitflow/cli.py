"""Command line interface for driving remittance flows."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Awaitable, Callable, Optional

import typer

from remitflow import FlowSequencer, HistoryLedger, get_store, get_wallet
from remitflow.config import load_config
from remitflow.contracts import FlowState, StepFailure, StepSuccess
from remitflow.errors import RemitflowError
from remitflow.fees import FeeSchedule, estimate, format_units, to_units

app = typer.Typer(help="CLI for remitflow remittances")

flow_app = typer.Typer(help="Commands for driving the active flow")
history_app = typer.Typer(help="Commands for the transaction history")

app.add_typer(flow_app, name="flow")
app.add_typer(history_app, name="history")


@app.callback()
def main() -> None:
    """remitflow CLI entry point."""
    pass


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _render(state: Optional[FlowState]) -> None:
    if state is None:
        typer.echo("No active flow")
        return
    typer.echo(f"Flow {state.flow_id}: {state.status.value}")
    step = state.current_step
    if step is not None:
        typer.echo(f"Step {state.step_index} of {state.total_steps}: {step.name}")
        if step.explanation:
            typer.echo(f"  {step.explanation}")
    outcome = state.last_outcome
    if isinstance(outcome, StepFailure):
        typer.secho(f"Last step failed: {outcome.message}", fg=typer.colors.RED)
    elif isinstance(outcome, StepSuccess):
        if outcome.pending:
            typer.secho(
                f"Transaction {outcome.tx_hash} is still unconfirmed. {outcome.note or ''}".rstrip(),
                fg=typer.colors.YELLOW,
            )
        elif outcome.kind == "balance":
            typer.echo(f"Balance check complete: {outcome.balance}")
        elif outcome.tx_hash:
            typer.echo(f"Transaction confirmed: {outcome.tx_hash}")
    for label, balance in state.balances.items():
        typer.echo(f"  {balance.symbol or label}: {balance.balance}")
    choices = state.choices()
    if choices:
        typer.echo(f"Next: {', '.join(choices)}")


def _run(action: Callable[[FlowSequencer], Awaitable[Optional[FlowState]]]) -> None:
    async def _go() -> Optional[FlowState]:
        config = load_config()
        wallet = get_wallet(config=config)
        sequencer = FlowSequencer.from_config(wallet, get_store(), config)
        await sequencer.load()
        try:
            return await action(sequencer)
        finally:
            await wallet.disconnect()

    try:
        state = asyncio.run(_go())
    except RemitflowError as e:
        _fail(str(e))
        return
    _render(state)


@app.command("estimate")
def estimate_command(
    amount: str,
    buy_fee_bps: Optional[int] = typer.Option(None, help="Buy fee in basis points"),
    swap_fee_bps: Optional[int] = typer.Option(None, help="Swap fee in basis points"),
    sell_fee_bps: Optional[int] = typer.Option(None, help="Sell fee in basis points"),
    rate: Optional[int] = typer.Option(None, help="USD to EUR rate scaled by 1e6"),
) -> None:
    """
    Estimate the EUR received for a USD amount.

    Runs the same fixed-point pipeline as the settlement contract:
    buy fee, exchange, swap fee, sell fee.

    Example:
        remitflow estimate 100 --buy-fee-bps 100 --rate 920000
    """
    schedule = load_config().fees.model_dump()
    overrides = {
        "buy_fee_bps": buy_fee_bps,
        "swap_fee_bps": swap_fee_bps,
        "sell_fee_bps": sell_fee_bps,
        "exchange_rate": rate,
    }
    schedule.update({k: v for k, v in overrides.items() if v is not None})
    try:
        result = estimate(to_units(amount), FeeSchedule.model_validate(schedule))
    except ValueError as e:
        _fail(f"Invalid estimate input: {e}")
        return

    typer.echo(f"USD in:           {format_units(result.usd_amount)}")
    typer.echo(f"Buy fee:          {format_units(result.buy_fee)}")
    typer.echo(f"USDC after fee:   {format_units(result.usdc_after_fee)}")
    typer.echo(f"EURC (raw):       {format_units(result.raw_eurc)}")
    typer.echo(f"Swap fee:         {format_units(result.swap_fee)}")
    typer.echo(f"EURC after swap:  {format_units(result.eurc_after_swap)}")
    typer.echo(f"Sell fee:         {format_units(result.sell_fee)}")
    typer.echo(f"EUR final:        {format_units(result.eur_final)}")


@flow_app.command("start")
def flow_start(request_path: Path) -> None:
    """
    Start a new flow from a planning-service JSON payload.

    Any flow already in progress is discarded.

    Example:
        remitflow flow start ./remittance.json
    """
    try:
        payload = json.loads(request_path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        _fail(f"Could not read {request_path}: {e}")
        return
    # Planning responses wrap the flow in a "response" envelope.
    if isinstance(payload, dict) and "response" in payload:
        payload = payload["response"]
    _run(lambda sequencer: sequencer.initiate(payload))


@flow_app.command("show")
def flow_show() -> None:
    """Show the active flow, its current step and available actions."""

    async def _show(sequencer: FlowSequencer) -> Optional[FlowState]:
        return sequencer.state

    _run(_show)


@flow_app.command("advance")
def flow_advance() -> None:
    """Execute the current step (or re-check its pending transaction)."""
    _run(lambda sequencer: sequencer.advance())


@flow_app.command("proceed")
def flow_proceed() -> None:
    """Continue past an unconfirmed transaction."""
    _run(lambda sequencer: sequencer.proceed())


@flow_app.command("retry")
def flow_retry() -> None:
    """Retry the current step, resubmitting its transaction if needed."""
    _run(lambda sequencer: sequencer.retry())


@flow_app.command("abort")
def flow_abort() -> None:
    """Cancel the active flow. Submitted transactions are not cancelled."""
    _run(lambda sequencer: sequencer.abort())


@history_app.command("list")
def history_list() -> None:
    """List recent transactions, most recent first."""

    async def _list():
        config = load_config()
        ledger = HistoryLedger(get_store(), limit=config.history_limit)
        return await ledger.load()

    entries = asyncio.run(_list())
    if not entries:
        typer.echo("No transactions found")
        return
    for entry in entries:
        typer.echo(f"{entry.id}\t{entry.category}\t{entry.status}\t{entry.message}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
