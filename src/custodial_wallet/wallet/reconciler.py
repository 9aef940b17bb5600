"""Backfill of incoming transfers from the ledger-history provider.

A pass is idempotent. A hash is stored once across all wallets, so hashes
already on record anywhere are skipped up front, and an insert that loses
a race with a concurrent pass (unique violation on the hash) is skipped
silently. For a transfer between two custodial wallets the sender's row
owns the hash.
"""

from __future__ import annotations

import logging

from custodial_wallet.errors import DuplicateRecordError
from custodial_wallet.storage.models import (
    SyncResult,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
    WalletRecord,
)
from custodial_wallet.storage.store import WalletStore
from custodial_wallet.wallet.amounts import format_ether
from custodial_wallet.wallet.history import HistoryEntry, LedgerHistoryClient
from custodial_wallet.wallet.registry import WalletRegistry

logger = logging.getLogger("custodial_wallet.wallet.reconciler")


class ChainReconciler:
    """Scans chain history and records receives this service did not originate."""

    def __init__(
        self,
        registry: WalletRegistry,
        store: WalletStore,
        history: LedgerHistoryClient,
    ) -> None:
        self.registry = registry
        self.store = store
        self.history = history

    async def sync_incoming(self, user_id: str) -> SyncResult:
        wallet = await self.registry.load(user_id)
        return await self.sync_wallet(wallet)

    async def sync_incoming_for_address(self, address: str) -> SyncResult:
        """Run a pass for whichever wallet owns ``address`` (any letter case)."""
        wallet = await self.registry.load_by_address(address)
        logger.info(f"Syncing recipient wallet {wallet.address[:10]}...")
        return await self.sync_wallet(wallet)

    async def sync_wallet(self, wallet: WalletRecord) -> SyncResult:
        entries = await self.history.list_transactions(wallet.address)
        incoming = [e for e in entries if e.is_incoming_to(wallet.address)]
        known = await self.store.known_hashes([e.hash for e in incoming])
        logger.debug(
            f"Wallet {wallet.address[:10]}: {len(known)} known, "
            f"{len(entries)} upstream, {len(incoming)} incoming"
        )

        new_count = 0
        for entry in incoming:
            if entry.hash in known:
                continue
            try:
                await self.store.insert_transaction(_receive_record(wallet, entry))
            except DuplicateRecordError:
                logger.debug(f"Skipping duplicate transaction {entry.hash[:12]}...")
                continue
            known.add(entry.hash)
            new_count += 1
            logger.info(
                f"Added incoming {format_ether(entry.value)} ETH "
                f"from {entry.from_address[:10]} to {wallet.address[:10]}"
            )

        return SyncResult(
            wallet=wallet.address,
            new_transactions=new_count,
            total_incoming=len(incoming),
        )


def _receive_record(wallet: WalletRecord, entry: HistoryEntry) -> TransactionRecord:
    return TransactionRecord(
        wallet_id=wallet.id,
        type=TransactionType.RECEIVE,
        from_address=entry.from_address,
        to_address=entry.to_address or wallet.address,
        amount=format_ether(entry.value),
        tx_hash=entry.hash,
        status=TransactionStatus.COMPLETED,
        block_number=entry.block_number,
        gas_used=str(entry.gas_used),
        gas_price=str(entry.gas_price),
        nonce=entry.nonce,
    )
