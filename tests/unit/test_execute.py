"""Step executor tests."""

import pytest

from remitflow.chain import InMemoryWallet
from remitflow.constants import USER_REJECTION_MESSAGE
from remitflow.contracts import FlowRequest, StepFailure, StepSpec, StepSuccess
from remitflow.errors import WalletError
from remitflow.execute import StepExecutor, SubmittedTransaction, is_user_rejection


class DenyingWallet(InMemoryWallet):
    """Raises a provider error that only mentions the denial in its text."""

    async def sign_and_send(self, transaction):
        raise RuntimeError("MetaMask Tx Signature: User denied transaction signature.")


@pytest.mark.asyncio
async def test_balance_step_reports_balance(flow_payload, wallet):
    step = FlowRequest.parse(flow_payload).step(1)
    wallet.set_balance(step.balance_check.token_address, "250.0", symbol="USDC")

    result = await StepExecutor().execute(step, wallet)

    assert isinstance(result, StepSuccess)
    assert result.kind == "balance"
    assert result.balance == "250.0"
    assert wallet.sent == []


@pytest.mark.asyncio
async def test_balance_read_failure_reports_zero(flow_payload, wallet):
    wallet.balance_error = WalletError("rpc unavailable")

    result = await StepExecutor().execute(FlowRequest.parse(flow_payload).step(1), wallet)

    assert isinstance(result, StepSuccess)
    assert result.balance == "0"


@pytest.mark.asyncio
async def test_no_op_step_has_no_side_effects(wallet):
    step = StepSpec(name="Review quote", requires_signature=False)
    executor = StepExecutor()

    first = await executor.execute(step, wallet)
    second = await executor.execute(step, wallet)

    assert first == second
    assert first.kind == "no_signature"
    assert wallet.sent == []


@pytest.mark.asyncio
async def test_signed_step_is_submitted_from_active_address(flow_payload, wallet):
    step = FlowRequest.parse(flow_payload).step(2)

    result = await StepExecutor().execute(step, wallet)

    assert isinstance(result, SubmittedTransaction)
    assert result.tx_hash.startswith("0x")
    assert len(wallet.sent) == 1
    sent = wallet.sent[0]
    assert sent["from"] == wallet.address
    assert sent["gasLimit"] == 60000
    assert "gas" not in sent


@pytest.mark.asyncio
async def test_user_rejection_is_classified(flow_payload, wallet):
    wallet.reject_next()

    result = await StepExecutor().execute(FlowRequest.parse(flow_payload).step(2), wallet)

    assert isinstance(result, StepFailure)
    assert result.user_rejected
    assert result.message == USER_REJECTION_MESSAGE
    assert wallet.sent == []


@pytest.mark.asyncio
async def test_rejection_detected_from_error_text(flow_payload):
    result = await StepExecutor().execute(
        FlowRequest.parse(flow_payload).step(2), DenyingWallet()
    )
    assert isinstance(result, StepFailure)
    assert result.user_rejected


@pytest.mark.asyncio
async def test_other_submission_errors_keep_message(flow_payload, wallet):
    wallet.fail_next("insufficient funds for gas")

    result = await StepExecutor().execute(FlowRequest.parse(flow_payload).step(2), wallet)

    assert isinstance(result, StepFailure)
    assert not result.user_rejected
    assert result.message == "insufficient funds for gas"


def test_is_user_rejection():
    assert is_user_rejection(WalletError("nope", user_rejected=True))
    assert is_user_rejection(Exception("User rejected the request."))
    assert not is_user_rejection(Exception("nonce too low"))


@pytest.mark.asyncio
async def test_repeated_non_signing_steps_give_same_outcome(flow_payload, wallet):
    executor = StepExecutor()
    balance_step = FlowRequest.parse(flow_payload).step(1)
    no_op_step = StepSpec(name="Review quote")
    wallet.set_balance(balance_step.balance_check.token_address, "42.0")

    for step, kind in ((balance_step, "balance"), (no_op_step, "no_signature")):
        first = await executor.execute(step, wallet)
        second = await executor.execute(step, wallet)
        assert first.kind == second.kind == kind
        assert first == second

    wallet.balance_error = WalletError("rpc unavailable")
    first = await executor.execute(balance_step, wallet)
    second = await executor.execute(balance_step, wallet)
    assert first.kind == second.kind == "balance"
    assert first.balance == second.balance == "0"
    assert wallet.sent == []
