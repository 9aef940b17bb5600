"""Outgoing transfers: validate, sign, broadcast, record.

Nonces come from the provider's pending count, so everything between the
balance check and storing the broadcast hash runs under a per-wallet lock.
Sends from different wallets never wait on each other.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from custodial_wallet.core.tasks import KeyedLock
from custodial_wallet.errors import (
    CorruptKeyStoreError,
    InsufficientFundsError,
    KeyIntegrityError,
)
from custodial_wallet.storage.models import (
    SendReceipt,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
    WalletRecord,
)
from custodial_wallet.storage.store import WalletStore
from custodial_wallet.wallet.amounts import format_ether, parse_ether
from custodial_wallet.wallet.keystore import KeyVault
from custodial_wallet.wallet.provider import ChainProvider, checksum_address
from custodial_wallet.wallet.registry import WalletRegistry

logger = logging.getLogger("custodial_wallet.wallet.submitter")

OnBroadcast = Callable[[TransactionRecord], None]

_HEX_KEY_LENGTH = 66


def _key_bytes(plaintext: bytes) -> bytes:
    """Raw 32-byte key from a decrypted bundle.

    Older bundles sealed the key as UTF-8 ``0x``-prefixed hex rather than raw
    bytes. Anything else is returned untouched for ``address_of`` to judge.
    """
    if len(plaintext) != _HEX_KEY_LENGTH or not plaintext.startswith(b"0x"):
        return plaintext
    try:
        return bytes.fromhex(plaintext[2:].decode("ascii"))
    except (UnicodeDecodeError, ValueError):
        raise CorruptKeyStoreError("Stored wallet key is not valid hex") from None


class TransactionSubmitter:
    """Submits native-token transfers on behalf of a user's wallet."""

    def __init__(
        self,
        registry: WalletRegistry,
        store: WalletStore,
        vault: KeyVault,
        provider: ChainProvider,
        *,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.vault = vault
        self.provider = provider
        self.locks = locks or KeyedLock()
        self._on_broadcast: Optional[OnBroadcast] = None

    def set_broadcast_hook(self, hook: OnBroadcast) -> None:
        """Register the hand-off for broadcast transactions (the confirmation watcher)."""
        self._on_broadcast = hook

    def _unlock(self, wallet: WalletRecord) -> bytes:
        try:
            plaintext = self.vault.decrypt(wallet.encrypted_key)
        except KeyIntegrityError:
            logger.error(f"Key for wallet {wallet.id} failed authentication")
            raise CorruptKeyStoreError("Stored wallet key could not be decrypted") from None
        private_key = _key_bytes(plaintext)
        try:
            address = ChainProvider.address_of(private_key)
        except ValueError:
            logger.error(f"Key for wallet {wallet.id} is not a valid private key")
            raise CorruptKeyStoreError("Stored wallet key is not a valid private key") from None
        if address != wallet.address:
            logger.error(f"Key for wallet {wallet.id} does not match its address")
            raise CorruptKeyStoreError("Stored wallet key does not match wallet address")
        return private_key

    async def send(self, user_id: str, to: str, amount: str) -> SendReceipt:
        """Submit a transfer and return as soon as it is broadcast.

        Nothing is persisted when validation, key decryption or the balance
        check fails.
        """
        recipient = checksum_address(to)
        value_wei = parse_ether(amount)
        amount_eth = format_ether(value_wei)

        wallet = await self.registry.load(user_id)
        private_key = self._unlock(wallet)

        async with self.locks.hold(wallet.address):
            balance = await self.provider.get_balance(wallet.address)
            if balance < value_wei:
                raise InsufficientFundsError(
                    f"Insufficient balance: {format_ether(balance)} < {amount_eth}"
                )

            nonce = await self.provider.get_pending_nonce(wallet.address)
            record = TransactionRecord(
                wallet_id=wallet.id,
                type=TransactionType.SEND,
                from_address=wallet.address,
                to_address=recipient,
                amount=amount_eth,
                nonce=nonce,
            )
            await self.store.insert_transaction(record)

            try:
                tx_hash = await self.provider.send_transfer(
                    private_key, recipient, value_wei, nonce
                )
            except Exception:
                await self.store.fail_unbroadcast(record.id)
                logger.error(
                    f"Broadcast of {record.id} (nonce {nonce}) from "
                    f"{wallet.address[:10]} failed; nonce released"
                )
                raise

            # already on the network: the watcher settles the row by id
            try:
                await self.store.set_transaction_hash(record.id, tx_hash)
            except Exception:
                logger.error(
                    f"Broadcast {tx_hash} for {record.id} could not be recorded",
                    exc_info=True,
                )
            record = record.model_copy(update={"tx_hash": tx_hash})

        logger.info(
            f"Broadcast {amount_eth} ETH {wallet.address[:10]} -> {recipient[:10]} "
            f"nonce={nonce} tx={tx_hash}"
        )
        await self.registry.invalidate_balance(wallet.address)

        if self._on_broadcast is not None:
            self._on_broadcast(record)

        return SendReceipt(
            transaction_id=record.id,
            tx_hash=tx_hash,
            from_address=wallet.address,
            to_address=recipient,
            amount=amount_eth,
            status=TransactionStatus.PENDING,
            nonce=nonce,
        )
