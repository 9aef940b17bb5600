"""Wallet and transaction persistence on top of :class:`Database`.

All status writes are guarded with ``status = 'pending'`` so a terminal
transaction can never be moved again, whoever issues the update.
"""

from __future__ import annotations

import logging
from typing import Optional

from custodial_wallet.storage.database import Database
from custodial_wallet.storage.models import (
    TransactionRecord,
    TransactionStatus,
    WalletRecord,
)

logger = logging.getLogger("custodial_wallet.storage.store")


def _ts(record) -> str:
    return record.created_at.isoformat()


class WalletStore:
    """Point lookups, inserts and guarded updates for wallets and transactions."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    async def insert_wallet(self, wallet: WalletRecord) -> None:
        """Insert a wallet. Raises ``DuplicateRecordError`` on user/address clash."""
        await self.db.execute(
            "INSERT INTO wallets (id, user_id, address, encrypted_key, network, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                wallet.id,
                wallet.user_id,
                wallet.address,
                wallet.encrypted_key,
                wallet.network,
                _ts(wallet),
            ),
        )

    async def get_wallet_by_user(self, user_id: str) -> Optional[WalletRecord]:
        row = await self.db.fetch_one(
            "SELECT * FROM wallets WHERE user_id = ?", (user_id,)
        )
        return WalletRecord.model_validate(row) if row else None

    async def get_wallet_by_address(self, address: str) -> Optional[WalletRecord]:
        """Exact (checksummed) match first, then a case-insensitive one."""
        row = await self.db.fetch_one(
            "SELECT * FROM wallets WHERE address = ?", (address,)
        )
        if row is None:
            row = await self.db.fetch_one(
                "SELECT * FROM wallets WHERE lower(address) = lower(?)", (address,)
            )
        return WalletRecord.model_validate(row) if row else None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def insert_transaction(self, tx: TransactionRecord) -> None:
        """Insert a transaction. Raises ``DuplicateRecordError`` on hash clash."""
        await self.db.execute(
            "INSERT INTO transactions "
            "(id, wallet_id, type, from_address, to_address, amount, tx_hash, status, "
            "block_number, gas_used, gas_price, nonce, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                tx.id,
                tx.wallet_id,
                tx.type.value,
                tx.from_address,
                tx.to_address,
                tx.amount,
                tx.tx_hash,
                tx.status.value,
                tx.block_number,
                tx.gas_used,
                tx.gas_price,
                tx.nonce,
                _ts(tx),
            ),
        )

    async def get_transaction(self, tx_id: str) -> Optional[TransactionRecord]:
        row = await self.db.fetch_one(
            "SELECT * FROM transactions WHERE id = ?", (tx_id,)
        )
        return TransactionRecord.model_validate(row) if row else None

    async def list_transactions(self, wallet_id: str, limit: int = 50) -> list[TransactionRecord]:
        """Most recent first."""
        rows = await self.db.fetch_all(
            "SELECT * FROM transactions WHERE wallet_id = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (wallet_id, limit),
        )
        return [TransactionRecord.model_validate(r) for r in rows]

    async def count_transactions(self, wallet_id: str) -> int:
        row = await self.db.fetch_one(
            "SELECT COUNT(*) AS n FROM transactions WHERE wallet_id = ?", (wallet_id,)
        )
        return int(row["n"]) if row else 0

    async def known_hashes(self, hashes: list[str]) -> set[str]:
        """Subset of ``hashes`` already recorded on any wallet."""
        if not hashes:
            return set()
        placeholders = ", ".join("?" for _ in hashes)
        rows = await self.db.fetch_all(
            f"SELECT tx_hash FROM transactions WHERE tx_hash IN ({placeholders})",
            tuple(hashes),
        )
        return {r["tx_hash"] for r in rows}

    async def set_transaction_hash(self, tx_id: str, tx_hash: str) -> None:
        await self.db.execute(
            "UPDATE transactions SET tx_hash = ? WHERE id = ? AND tx_hash = ''",
            (tx_hash, tx_id),
        )

    async def settle_transaction(
        self,
        tx_id: str,
        status: TransactionStatus,
        *,
        block_number: Optional[int] = None,
        gas_used: Optional[str] = None,
        gas_price: Optional[str] = None,
    ) -> bool:
        """Move a pending transaction to a terminal status.

        Returns ``False`` when the row was already terminal (or missing).
        """
        cursor = await self.db.execute(
            "UPDATE transactions SET status = ?, "
            "block_number = COALESCE(?, block_number), "
            "gas_used = COALESCE(?, gas_used), "
            "gas_price = COALESCE(?, gas_price) "
            "WHERE id = ? AND status = 'pending'",
            (status.value, block_number, gas_used, gas_price, tx_id),
        )
        if cursor.rowcount == 0:
            logger.debug(f"Transaction {tx_id} already terminal, left as is")
            return False
        return True

    async def settle_by_hash(
        self,
        tx_hash: str,
        status: TransactionStatus,
        *,
        block_number: Optional[int] = None,
        gas_used: Optional[str] = None,
        gas_price: Optional[str] = None,
    ) -> int:
        """Settle every still-pending row carrying ``tx_hash``; returns the count."""
        cursor = await self.db.execute(
            "UPDATE transactions SET status = ?, "
            "block_number = COALESCE(?, block_number), "
            "gas_used = COALESCE(?, gas_used), "
            "gas_price = COALESCE(?, gas_price) "
            "WHERE tx_hash = ? AND status = 'pending'",
            (status.value, block_number, gas_used, gas_price, tx_hash),
        )
        return cursor.rowcount

    async def fail_unbroadcast(self, tx_id: str) -> bool:
        """Mark a send that never reached the network failed and release its nonce."""
        cursor = await self.db.execute(
            "UPDATE transactions SET status = 'failed', nonce = NULL "
            "WHERE id = ? AND status = 'pending' AND tx_hash = ''",
            (tx_id,),
        )
        return cursor.rowcount > 0
