"""Walk a three-step remittance through the simulated ledger."""

import asyncio

from remitflow import FeeSchedule, FlowSequencer, InMemoryWallet, estimate
from remitflow.fees import format_units, to_units
from remitflow.persistence import InMemoryStateStore
from remitflow.settlement import SettlementContract
from remitflow.watcher import ConfirmationWatcher

USDC = "0x1c7d4b196cb0c7b01d743fbc6116a902379c7238"
SETTLEMENT = "0x9fe46736679d2d9a65f0992f2272de9f3c7fa6e0"
RECIPIENT = "0x1234567890abcdef1234567890abcdef12345678"


async def main():
    """Quote, then execute a remittance step by step."""
    schedule = FeeSchedule(
        buy_fee_bps=100, swap_fee_bps=50, sell_fee_bps=100, exchange_rate=920_000
    )
    quote = estimate(to_units("100"), schedule)
    print(f"💶 100 USD arrives as {format_units(quote.eur_final)} EUR")

    wallet = InMemoryWallet()
    wallet.set_balance(USDC, "250.0", symbol="USDC")
    sequencer = FlowSequencer(
        wallet,
        InMemoryStateStore(),
        watcher=ConfirmationWatcher(wallet, timeout_ms=2_000),
        grace_delay_ms=0,
    )

    state = await sequencer.initiate(
        {
            "amount": 100,
            "recipient_address": RECIPIENT,
            "chain": "sepolia",
            "transaction_flow": {
                "step1": {
                    "name": "Check USDC balance",
                    "check_balance": {"token_address": USDC},
                },
                "step2": {
                    "name": "Approve USDC",
                    "requires_signature": True,
                    "tx_data": {"to": USDC, "data": "0x095ea7b3", "gas": 60000},
                },
                "step3": {
                    "name": "Process remittance",
                    "requires_signature": True,
                    "tx_data": {"to": SETTLEMENT, "data": "0xabcdef01", "gas": 250000},
                },
            },
        }
    )
    print(f"📋 Flow {state.flow_id} started with {state.total_steps} steps")

    # The first signature request is declined, then retried.
    wallet.reject_next()
    while not state.is_terminal:
        name = state.current_step.name
        state = await sequencer.advance() if "advance" in state.choices() else await sequencer.retry()
        outcome = state.last_outcome
        if outcome.outcome == "failure":
            print(f"❌ {name}: {outcome.message}")
        else:
            print(f"✅ {name}")

    contract = SettlementContract(owner=wallet.address, schedule=schedule)
    flow_id, eur_final = contract.process_flow(quote.usd_amount, RECIPIENT, "EUR")
    print(f"🏦 Settlement flow {flow_id} paid {format_units(eur_final)} EUR")

    for entry in sequencer.history.list():
        print(f"🔗 [{entry.status}] {entry.message}")


if __name__ == "__main__":
    asyncio.run(main())
