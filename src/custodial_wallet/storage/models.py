"""Pydantic models mapping to the wallet database tables, plus the
JSON-shaped results handed back to callers."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TransactionType(str, Enum):
    SEND = "send"
    RECEIVE = "receive"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    """Generate a short hex ID (12 characters)."""
    return uuid.uuid4().hex[:12]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Record models
# ---------------------------------------------------------------------------

class WalletRecord(BaseModel):
    """Maps to the ``wallets`` table. Immutable once persisted."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    user_id: str
    address: str
    encrypted_key: str = Field(repr=False)
    network: str
    created_at: datetime = Field(default_factory=_utcnow)


class TransactionRecord(BaseModel):
    """Maps to the ``transactions`` table."""

    id: str = Field(default_factory=_new_id)
    wallet_id: str
    type: TransactionType
    from_address: str
    to_address: str
    amount: str  # ether, stored as string to preserve decimal precision
    tx_hash: str = ""  # empty only while a send awaits broadcast
    status: TransactionStatus = TransactionStatus.PENDING
    block_number: Optional[int] = None
    gas_used: Optional[str] = None
    gas_price: Optional[str] = None
    nonce: Optional[int] = None
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Caller-facing results
# ---------------------------------------------------------------------------

class WalletInfo(BaseModel):
    """A wallet as returned to callers: no key material, plus a balance."""

    id: str
    user_id: str
    address: str
    balance: str
    network: str
    created_at: datetime

    @classmethod
    def from_record(cls, wallet: WalletRecord, balance: str) -> WalletInfo:
        return cls(
            id=wallet.id,
            user_id=wallet.user_id,
            address=wallet.address,
            balance=balance,
            network=wallet.network,
            created_at=wallet.created_at,
        )


class SendReceipt(BaseModel):
    """Immediate result of a submitted transfer (always ``pending``)."""

    transaction_id: str
    tx_hash: str
    from_address: str
    to_address: str
    amount: str
    status: TransactionStatus
    nonce: int


class ReceiptSummary(BaseModel):
    """The parts of an on-chain receipt the wallet records."""

    tx_hash: str
    success: bool
    block_number: int
    gas_used: int
    effective_gas_price: int


class SyncResult(BaseModel):
    """Outcome of one reconciliation pass."""

    wallet: str
    new_transactions: int
    total_incoming: int
