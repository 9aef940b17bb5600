"""Confirmation tracking for broadcast transactions."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from custodial_wallet.core.tasks import TaskSupervisor
from custodial_wallet.errors import NotFoundError
from custodial_wallet.storage.models import (
    ReceiptSummary,
    TransactionRecord,
    TransactionStatus,
)
from custodial_wallet.storage.store import WalletStore
from custodial_wallet.wallet.provider import ChainProvider

logger = logging.getLogger("custodial_wallet.wallet.watcher")

OnConfirmed = Callable[[str], Awaitable[object]]


class ConfirmationWatcher:
    """Moves pending sends to ``completed`` or ``failed``.

    One background task per broadcast hash waits for a single confirmation,
    bounded by ``timeout`` seconds. A transaction that is not mined in time,
    or whose wait errors out, is recorded as ``failed``.

    Parameters
    ----------
    on_confirmed:
        Called with the recipient address after a successful confirmation
        (counterpart reconciliation). Its errors are logged and dropped.
    """

    def __init__(
        self,
        store: WalletStore,
        provider: ChainProvider,
        supervisor: TaskSupervisor,
        *,
        timeout: float = 600.0,
        on_confirmed: Optional[OnConfirmed] = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.supervisor = supervisor
        self.timeout = timeout
        self.on_confirmed = on_confirmed

    def watch(self, tx: TransactionRecord) -> asyncio.Task:
        """Spawn the background confirmation task for a broadcast send."""
        return self.supervisor.spawn(
            self.confirm(tx.id, tx.tx_hash, tx.to_address),
            name=f"confirm:{tx.tx_hash[:12]}",
        )

    async def confirm(
        self, tx_id: str, tx_hash: str, recipient: Optional[str] = None
    ) -> TransactionStatus:
        """Wait for ``tx_hash`` and record the outcome on ``tx_id``."""
        try:
            receipt = await self.provider.wait_for_receipt(tx_hash, self.timeout)
        except TimeoutError:
            logger.warning(f"No confirmation for {tx_hash} within {self.timeout}s; marking failed")
            await self.store.settle_transaction(tx_id, TransactionStatus.FAILED)
            return TransactionStatus.FAILED
        except Exception as exc:
            logger.error(f"Error confirming transaction {tx_hash}: {exc}")
            await self.store.settle_transaction(tx_id, TransactionStatus.FAILED)
            return TransactionStatus.FAILED

        status = await self._record(tx_id, receipt)

        if status is TransactionStatus.COMPLETED and recipient:
            await self._reconcile_counterpart(recipient)
        return status

    async def _record(self, tx_id: str, receipt: ReceiptSummary) -> TransactionStatus:
        status = TransactionStatus.COMPLETED if receipt.success else TransactionStatus.FAILED
        await self.store.settle_transaction(
            tx_id,
            status,
            block_number=receipt.block_number,
            gas_used=str(receipt.gas_used),
            gas_price=str(receipt.effective_gas_price),
        )
        logger.info(f"Transaction {receipt.tx_hash} {status.value} in block {receipt.block_number}")
        return status

    async def _reconcile_counterpart(self, recipient: str) -> None:
        if self.on_confirmed is None:
            return
        try:
            await self.on_confirmed(recipient)
        except NotFoundError:
            logger.debug(f"Recipient {recipient[:10]} has no wallet here; nothing to sync")
        except Exception as exc:
            logger.warning(f"Recipient sync for {recipient[:10]} failed: {exc}")

    async def refresh(self, tx_hash: str) -> Optional[ReceiptSummary]:
        """Fetch the receipt once and settle any still-pending row for it.

        Returns ``None`` while the transaction is not mined.
        """
        receipt = await self.provider.get_receipt(tx_hash)
        if receipt is None:
            return None
        status = TransactionStatus.COMPLETED if receipt.success else TransactionStatus.FAILED
        updated = await self.store.settle_by_hash(
            tx_hash,
            status,
            block_number=receipt.block_number,
            gas_used=str(receipt.gas_used),
            gas_price=str(receipt.effective_gas_price),
        )
        if updated:
            logger.info(f"Refreshed {tx_hash}: {status.value} ({updated} row(s))")
        return receipt
