"""Confirmation watcher tests."""

import asyncio

import pytest

from remitflow.chain import InMemoryWallet
from remitflow.errors import ConfirmationUnknownError
from remitflow.watcher import DROPPED_NOTE, PENDING_NOTE, ConfirmationWatcher

TX = {"from": "0xa11ce", "to": "0xb0b", "value": 1}


class StalledWallet(InMemoryWallet):
    """A wallet whose wait primitive never returns."""

    async def wait_for_receipt(self, tx_hash, confirmations=1):
        await asyncio.sleep(3600)


class UnreachableWallet(StalledWallet):
    async def get_transaction(self, tx_hash):
        raise ConnectionError("node unreachable")


@pytest.mark.asyncio
async def test_confirmed_transaction():
    wallet = InMemoryWallet()
    handle = await wallet.sign_and_send(TX)

    finality = await ConfirmationWatcher(wallet, timeout_ms=1000).await_finality(handle)

    assert not finality.pending
    assert finality.success
    assert finality.block_number == 1


@pytest.mark.asyncio
async def test_timeout_with_mined_transaction_is_success():
    wallet = StalledWallet()
    handle = await wallet.sign_and_send(TX)

    finality = await ConfirmationWatcher(wallet, timeout_ms=20).await_finality(handle)

    assert finality.pending is False
    assert finality.success is True
    assert finality.block_number == 1


@pytest.mark.asyncio
async def test_timeout_with_unmined_transaction_is_pending():
    wallet = InMemoryWallet(auto_mine=False)
    handle = await wallet.sign_and_send(TX)

    finality = await ConfirmationWatcher(wallet, timeout_ms=20).await_finality(handle)

    assert finality.pending
    assert finality.tx_hash == handle.tx_hash
    assert finality.note == PENDING_NOTE


@pytest.mark.asyncio
async def test_dropped_transaction_is_reported():
    wallet = InMemoryWallet(auto_mine=False)
    handle = await wallet.sign_and_send(TX)
    wallet.drop(handle.tx_hash)

    finality = await ConfirmationWatcher(wallet, timeout_ms=20).await_finality(handle)

    assert finality.pending
    assert finality.note == DROPPED_NOTE


@pytest.mark.asyncio
async def test_reverted_transaction_is_failure():
    wallet = InMemoryWallet()
    wallet.revert_next()
    handle = await wallet.sign_and_send(TX)

    finality = await ConfirmationWatcher(wallet, timeout_ms=1000).await_finality(handle)

    assert not finality.pending
    assert finality.success is False


@pytest.mark.asyncio
async def test_waits_for_required_confirmations():
    wallet = InMemoryWallet(auto_mine=False)
    handle = await wallet.sign_and_send(TX)
    wallet.mine()
    watcher = ConfirmationWatcher(wallet, timeout_ms=1000, confirmations=3)

    async def mine_later():
        await asyncio.sleep(0.05)
        wallet.mine(blocks=2)

    miner = asyncio.create_task(mine_later())
    finality = await watcher.await_finality(handle)
    await miner

    assert finality.success
    assert wallet.block_number == 3


@pytest.mark.asyncio
async def test_failed_lookup_raises_unknown():
    wallet = UnreachableWallet()
    handle = await wallet.sign_and_send(TX)

    with pytest.raises(ConfirmationUnknownError) as excinfo:
        await ConfirmationWatcher(wallet, timeout_ms=20).await_finality(handle)

    assert handle.tx_hash in str(excinfo.value)
    assert "confirmation status unknown" in str(excinfo.value)
