"""Shared fixtures and in-process fakes for the wallet tests.

``FakeChainProvider`` and ``FakeHistory`` stand in for the RPC node and the
explorer API; everything else (vault, SQLite store, service wiring) is real.
"""

from __future__ import annotations

import asyncio
import secrets
from typing import Optional

import pytest
from eth_account import Account
from web3 import Web3

from custodial_wallet.storage.database import Database
from custodial_wallet.storage.models import ReceiptSummary
from custodial_wallet.storage.store import WalletStore
from custodial_wallet.wallet.history import HistoryEntry, parse_entries
from custodial_wallet.wallet.keystore import KeyVault
from custodial_wallet.wallet.manager import WalletService

ETHER = 10**18
RECIPIENT = Web3.to_checksum_address("0x" + "ab" * 20)


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


class FakeChainProvider:
    """Mimics ``ChainProvider``: balances, a pending-nonce counter, a broadcast log."""

    def __init__(self) -> None:
        self.balances: dict[str, int] = {}
        self.nonces: dict[str, int] = {}
        self.sent: list[dict] = []
        self.broadcast_error: Optional[Exception] = None
        self.balance_calls = 0
        # hash -> ReceiptSummary or Exception raised from the wait
        self.outcomes: dict[str, object] = {}
        self.default_success = True
        self.wait_gate: Optional[asyncio.Event] = None

    def fund(self, address: str, wei: int) -> None:
        self.balances[address] = self.balances.get(address, 0) + wei

    async def get_balance(self, address: str) -> int:
        self.balance_calls += 1
        await asyncio.sleep(0)
        return self.balances.get(address, 0)

    async def get_pending_nonce(self, address: str) -> int:
        await asyncio.sleep(0)
        return self.nonces.get(address, 0)

    async def send_transfer(self, private_key: bytes, to_address: str, value_wei: int, nonce: int) -> str:
        await asyncio.sleep(0)
        if self.broadcast_error is not None:
            raise self.broadcast_error
        sender = Account.from_key(private_key).address
        h = tx_hash(len(self.sent) + 1)
        self.sent.append(
            {"hash": h, "from": sender, "to": to_address, "value": value_wei, "nonce": nonce}
        )
        self.nonces[sender] = nonce + 1
        self.balances[sender] = self.balances.get(sender, 0) - value_wei
        return h

    def _receipt(self, h: str, success: bool) -> ReceiptSummary:
        return ReceiptSummary(
            tx_hash=h,
            success=success,
            block_number=100 + len(self.sent),
            gas_used=21000,
            effective_gas_price=1_500_000_000,
        )

    async def wait_for_receipt(self, h: str, timeout: float) -> ReceiptSummary:
        if self.wait_gate is not None:
            await self.wait_gate.wait()
        await asyncio.sleep(0)
        outcome = self.outcomes.get(h)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ReceiptSummary):
            return outcome
        return self._receipt(h, self.default_success)

    async def get_receipt(self, h: str) -> Optional[ReceiptSummary]:
        outcome = self.outcomes.get(h)
        if isinstance(outcome, ReceiptSummary):
            return outcome
        if any(s["hash"] == h for s in self.sent):
            return self._receipt(h, self.default_success)
        return None


class FakeHistory:
    """Mimics ``LedgerHistoryClient`` with scripted raw ``txlist`` items."""

    def __init__(self) -> None:
        self.items: dict[str, list[dict]] = {}
        self.calls: list[str] = []
        self.error: Optional[Exception] = None

    def add(self, address: str, **fields) -> dict:
        item = {
            "hash": tx_hash(10_000 + sum(len(v) for v in self.items.values())),
            "from": "0x" + "cd" * 20,
            "to": address.lower(),
            "value": "1000000000000000",
            "blockNumber": "4242",
            "gasUsed": "21000",
            "gasPrice": "1000000000",
            "nonce": "7",
            "isError": "0",
        }
        item.update(fields)
        self.items.setdefault(address.lower(), []).append(item)
        return item

    async def list_transactions(self, address: str) -> list[HistoryEntry]:
        self.calls.append(address)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return parse_entries(self.items.get(address.lower(), []))

    async def close(self) -> None:
        pass


@pytest.fixture
def master_key() -> bytes:
    return secrets.token_bytes(32)


@pytest.fixture
def vault(master_key) -> KeyVault:
    return KeyVault(master_key)


@pytest.fixture
def provider() -> FakeChainProvider:
    return FakeChainProvider()


@pytest.fixture
def history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture
async def db(tmp_path):
    database = Database(tmp_path / "wallet.db")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def store(db) -> WalletStore:
    return WalletStore(db)


@pytest.fixture
async def service(db, vault, provider, history):
    svc = WalletService(
        db,
        vault,
        provider,
        history,
        network="sepolia",
        balance_ttl=30.0,
        confirmation_timeout=5.0,
    )
    yield svc
    await svc.supervisor.shutdown(wait=False)
