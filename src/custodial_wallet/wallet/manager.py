"""High-level wallet service used by the API server and CLI."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from custodial_wallet.config import WalletConfig
from custodial_wallet.core.tasks import KeyedLock, TaskSupervisor
from custodial_wallet.storage.database import Database, get_database
from custodial_wallet.storage.models import (
    ReceiptSummary,
    SendReceipt,
    SyncResult,
    TransactionRecord,
    WalletInfo,
    WalletRecord,
)
from custodial_wallet.storage.store import WalletStore
from custodial_wallet.wallet.cache import BalanceCache, MemoryCache
from custodial_wallet.wallet.history import LedgerHistoryClient
from custodial_wallet.wallet.keystore import KeyVault
from custodial_wallet.wallet.provider import ChainProvider
from custodial_wallet.wallet.reconciler import ChainReconciler
from custodial_wallet.wallet.registry import WalletRegistry
from custodial_wallet.wallet.submitter import TransactionSubmitter
from custodial_wallet.wallet.watcher import ConfirmationWatcher

logger = logging.getLogger("custodial_wallet.wallet.manager")

DEFAULT_HISTORY_LIMIT = 50


class WalletService:
    """Orchestrates vault, registry, submitter, watcher and reconciler.

    Build one with :meth:`open` from a :class:`WalletConfig`, or pass the
    collaborators directly (tests do). Call :meth:`close` to drain background
    work and release connections.
    """

    def __init__(
        self,
        db: Database,
        vault: KeyVault,
        provider: ChainProvider,
        history: LedgerHistoryClient,
        *,
        network: str,
        cache: Optional[BalanceCache] = None,
        balance_ttl: float = 30.0,
        confirmation_timeout: float = 600.0,
    ) -> None:
        self.db = db
        self.store = WalletStore(db)
        self.provider = provider
        self.history = history
        self.supervisor = TaskSupervisor()

        self.registry = WalletRegistry(
            self.store,
            vault,
            provider,
            cache or MemoryCache(),
            network=network,
            balance_ttl=balance_ttl,
        )
        self.reconciler = ChainReconciler(self.registry, self.store, history)
        self.watcher = ConfirmationWatcher(
            self.store,
            provider,
            self.supervisor,
            timeout=confirmation_timeout,
            on_confirmed=self.reconciler.sync_incoming_for_address,
        )
        self.submitter = TransactionSubmitter(
            self.registry, self.store, vault, provider, locks=KeyedLock()
        )
        self.submitter.set_broadcast_hook(self.watcher.watch)
        self.registry.set_created_hook(self._schedule_initial_sync)

    @classmethod
    async def open(cls, config: WalletConfig) -> WalletService:
        """Connect the database and build every client from ``config``."""
        db = get_database(Path(config.database.path))
        await db.connect()
        provider = ChainProvider(
            config.chain.rpc_url,
            config.chain.chain_id,
            priority_fee_gwei=config.chain.priority_fee_gwei,
        )
        history = LedgerHistoryClient(
            config.history.api_url,
            api_key=config.history.api_key,
            timeout=config.history.timeout_seconds,
        )
        logger.info(
            f"Wallet service on {config.chain.network} (chain {config.chain.chain_id}), "
            f"db={config.database.path}"
        )
        return cls(
            db,
            KeyVault(config.vault.key_bytes()),
            provider,
            history,
            network=config.chain.network,
            balance_ttl=config.cache.balance_ttl_seconds,
            confirmation_timeout=config.chain.confirmation_timeout_seconds,
        )

    async def close(self, *, wait: bool = True) -> None:
        """Drain (or cancel) background tasks, then close connections."""
        await self.supervisor.shutdown(wait=wait)
        await self.history.close()
        await self.db.close()

    async def _schedule_initial_sync(self, wallet: WalletRecord) -> None:
        # Picks up funds sent to the address before the account existed.
        self.supervisor.spawn(
            self.reconciler.sync_wallet(wallet),
            name=f"initial-sync:{wallet.address[:10]}",
        )

    # ------------------------------------------------------------------
    # Caller operations
    # ------------------------------------------------------------------

    async def create_wallet(self, user_id: str) -> WalletInfo:
        return await self.registry.create_wallet(user_id)

    async def get_wallet(self, user_id: str) -> WalletInfo:
        return await self.registry.get_wallet(user_id)

    async def send_transaction(self, user_id: str, to: str, amount: str) -> SendReceipt:
        return await self.submitter.send(user_id, to, amount)

    async def get_transactions(
        self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[TransactionRecord]:
        wallet = await self.registry.load(user_id)
        return await self.store.list_transactions(wallet.id, limit)

    async def sync_incoming_transactions(self, user_id: str) -> SyncResult:
        return await self.reconciler.sync_incoming(user_id)

    async def refresh_transaction(self, tx_hash: str) -> Optional[ReceiptSummary]:
        return await self.watcher.refresh(tx_hash)
