"""Wallet registry: one custodial wallet per user, with cached balances."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from eth_account import Account

from custodial_wallet.errors import ConflictError, DuplicateRecordError, NotFoundError, ServiceUnavailableError
from custodial_wallet.storage.models import WalletInfo, WalletRecord
from custodial_wallet.storage.store import WalletStore
from custodial_wallet.wallet.amounts import format_ether
from custodial_wallet.wallet.cache import BalanceCache, balance_key
from custodial_wallet.wallet.keystore import KeyVault
from custodial_wallet.wallet.provider import ChainProvider

logger = logging.getLogger("custodial_wallet.wallet.registry")

OnCreated = Callable[[WalletRecord], Awaitable[None]]


class WalletRegistry:
    """Creates wallets and answers balance lookups.

    Parameters
    ----------
    store:
        Durable wallet/transaction store.
    vault:
        Encrypts the generated private key before it is persisted.
    provider:
        Chain client used for balance reads.
    cache:
        Balance cache, keyed by address.
    network:
        Network label recorded on every new wallet.
    balance_ttl:
        Seconds a cached balance stays valid.
    """

    def __init__(
        self,
        store: WalletStore,
        vault: KeyVault,
        provider: ChainProvider,
        cache: BalanceCache,
        *,
        network: str,
        balance_ttl: float = 30.0,
    ) -> None:
        self.store = store
        self.vault = vault
        self.provider = provider
        self.cache = cache
        self.network = network
        self.balance_ttl = balance_ttl
        self._on_created: Optional[OnCreated] = None

    def set_created_hook(self, hook: OnCreated) -> None:
        """Register a callback run after a wallet is persisted (e.g. initial sync)."""
        self._on_created = hook

    # ------------------------------------------------------------------
    # Wallet lifecycle
    # ------------------------------------------------------------------

    async def create_wallet(self, user_id: str) -> WalletInfo:
        """Generate, encrypt and persist a new wallet for ``user_id``.

        The store's unique constraint on ``user_id`` decides races: the
        losing insert raises ``ConflictError``.
        """
        acct = Account.create()
        record = WalletRecord(
            user_id=user_id,
            address=acct.address,
            encrypted_key=self.vault.encrypt(bytes(acct.key)),
            network=self.network,
        )
        try:
            await self.store.insert_wallet(record)
        except DuplicateRecordError:
            raise ConflictError("Wallet already exists for this user") from None
        logger.info(f"Created wallet {record.address} for user {user_id}")

        try:
            balance = format_ether(await self.provider.get_balance(record.address))
        except ServiceUnavailableError as exc:
            logger.warning(f"Initial balance read failed for {record.address[:10]}: {exc}")
            balance = "0.0"

        if self._on_created is not None:
            await self._on_created(record)

        return WalletInfo.from_record(record, balance)

    async def load(self, user_id: str) -> WalletRecord:
        """Return the wallet record for ``user_id`` or raise ``NotFoundError``."""
        wallet = await self.store.get_wallet_by_user(user_id)
        if wallet is None:
            raise NotFoundError("Wallet not found")
        return wallet

    async def load_by_address(self, address: str) -> WalletRecord:
        wallet = await self.store.get_wallet_by_address(address)
        if wallet is None:
            raise NotFoundError(f"No wallet for address {address[:10]}...")
        return wallet

    async def get_wallet(self, user_id: str) -> WalletInfo:
        wallet = await self.load(user_id)
        return WalletInfo.from_record(wallet, await self.cached_balance(wallet.address))

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    async def cached_balance(self, address: str) -> str:
        """Ether balance, served from cache for up to ``balance_ttl`` seconds."""
        key = balance_key(address)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        balance = format_ether(await self.provider.get_balance(address))
        await self.cache.set(key, balance, self.balance_ttl)
        return balance

    async def invalidate_balance(self, address: str) -> None:
        await self.cache.delete(balance_key(address))
