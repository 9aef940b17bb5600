"""Tests for background confirmation tracking and receipt refresh."""

import asyncio
import logging

import pytest

from custodial_wallet.errors import ServiceUnavailableError
from custodial_wallet.storage.models import ReceiptSummary, TransactionStatus, TransactionType

from conftest import ETHER, RECIPIENT, tx_hash


@pytest.fixture
async def sender(service, provider):
    info = await service.create_wallet("u1")
    await service.supervisor.drain()
    provider.fund(info.address, ETHER)
    return info


async def _only_row(service, user_id="u1"):
    (row,) = await service.get_transactions(user_id)
    return row


async def _send_and_settle(service, to=RECIPIENT, amount="0.01"):
    receipt = await service.send_transaction("u1", to, amount)
    await service.supervisor.drain()
    return receipt


class TestConfirm:
    async def test_mined_success(self, service, sender):
        receipt = await _send_and_settle(service)
        row = await _only_row(service)
        assert row.tx_hash == receipt.tx_hash
        assert row.status is TransactionStatus.COMPLETED
        assert row.block_number == 101
        assert row.gas_used == "21000"
        assert row.gas_price == "1500000000"

    async def test_reverted(self, service, provider, sender):
        provider.outcomes[tx_hash(1)] = ReceiptSummary(
            tx_hash=tx_hash(1), success=False, block_number=77, gas_used=30000,
            effective_gas_price=2,
        )
        await _send_and_settle(service)
        row = await _only_row(service)
        assert row.status is TransactionStatus.FAILED
        assert row.block_number == 77
        assert row.gas_used == "30000"

    @pytest.mark.parametrize(
        "error", [TimeoutError("not mined"), ServiceUnavailableError("rpc down")]
    )
    async def test_wait_error_marks_failed(self, service, provider, sender, error):
        provider.outcomes[tx_hash(1)] = error
        await _send_and_settle(service)
        row = await _only_row(service)
        assert row.status is TransactionStatus.FAILED
        assert row.block_number is None


class TestCounterpart:
    async def test_internal_transfer_hash_stays_with_sender(
        self, service, provider, history, sender, caplog
    ):
        recipient = await service.create_wallet("u2")
        await service.supervisor.drain()
        provider.wait_gate = asyncio.Event()

        receipt = await service.send_transaction("u1", recipient.address, "0.005")
        history.add(
            recipient.address,
            hash=receipt.tx_hash,
            **{"from": sender.address.lower(), "value": str(5 * 10**15)},
        )
        with caplog.at_level(logging.WARNING, logger="custodial_wallet.wallet.watcher"):
            provider.wait_gate.set()
            await service.supervisor.drain()

        sent = await _only_row(service, "u1")
        assert sent.type is TransactionType.SEND
        assert sent.status is TransactionStatus.COMPLETED
        assert sent.tx_hash == receipt.tx_hash
        assert recipient.address in history.calls
        assert await service.get_transactions("u2") == []
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    async def test_recipient_sync_failure_is_swallowed(self, service, history, sender, caplog):
        await service.create_wallet("u2")
        await service.supervisor.drain()
        recipient = await service.get_wallet("u2")
        history.error = ServiceUnavailableError("explorer down")

        with caplog.at_level(logging.WARNING, logger="custodial_wallet.wallet.watcher"):
            await _send_and_settle(service, to=recipient.address)

        assert (await _only_row(service, "u1")).status is TransactionStatus.COMPLETED
        assert await service.get_transactions("u2") == []
        assert any("explorer down" in r.message for r in caplog.records)

    async def test_external_recipient_is_skipped(self, service, history, sender):
        await _send_and_settle(service)
        assert RECIPIENT not in history.calls


class TestRefresh:
    async def test_refresh_settles_pending_row(self, service, provider, sender):
        provider.wait_gate = asyncio.Event()
        receipt = await service.send_transaction("u1", RECIPIENT, "0.01")

        summary = await service.refresh_transaction(receipt.tx_hash)
        assert summary.success
        assert (await _only_row(service)).status is TransactionStatus.COMPLETED

        # a later failing wait cannot move a terminal row
        provider.outcomes[receipt.tx_hash] = TimeoutError("late")
        provider.wait_gate.set()
        await service.supervisor.drain()
        assert (await _only_row(service)).status is TransactionStatus.COMPLETED

    async def test_refresh_unmined(self, service):
        assert await service.refresh_transaction(tx_hash(999)) is None
