"""Wallet storage layer -- async SQLite database and Pydantic models."""

from custodial_wallet.storage.database import Database, get_database
from custodial_wallet.storage.models import (
    ReceiptSummary,
    SendReceipt,
    SyncResult,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
    WalletInfo,
    WalletRecord,
)
from custodial_wallet.storage.store import WalletStore

__all__ = [
    "Database",
    "get_database",
    "ReceiptSummary",
    "SendReceipt",
    "SyncResult",
    "TransactionRecord",
    "TransactionStatus",
    "TransactionType",
    "WalletInfo",
    "WalletRecord",
    "WalletStore",
]
