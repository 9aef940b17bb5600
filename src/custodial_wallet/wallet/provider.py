"""Async Web3 client for the custody chain.

Every RPC failure is re-raised as ``ServiceUnavailableError`` (or
``BroadcastError`` for sends) so callers deal with one error type.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

from custodial_wallet.errors import (
    BroadcastError,
    InvalidAddressError,
    ServiceUnavailableError,
)
from custodial_wallet.storage.models import ReceiptSummary

logger = logging.getLogger("custodial_wallet.wallet.provider")


def checksum_address(value: str) -> str:
    """Validate an address and return its EIP-55 form.

    All-lowercase and all-uppercase hex are accepted; mixed case must carry
    a valid checksum.
    """
    if not isinstance(value, str) or not Web3.is_address(value.strip()):
        raise InvalidAddressError(f"Invalid recipient address '{str(value)[:64]}'")
    return Web3.to_checksum_address(value.strip())


def _summarize(receipt) -> ReceiptSummary:
    return ReceiptSummary(
        tx_hash=Web3.to_hex(receipt["transactionHash"]),
        success=receipt["status"] == 1,
        block_number=int(receipt["blockNumber"]),
        gas_used=int(receipt["gasUsed"]),
        effective_gas_price=int(receipt.get("effectiveGasPrice") or 0),
    )


class ChainProvider:
    """Balance, nonce, broadcast and receipt access for one EVM network.

    Parameters
    ----------
    rpc_url:
        JSON-RPC endpoint.
    chain_id:
        Chain id signed into every transaction.
    priority_fee_gwei:
        Tip used when the network supports EIP-1559.
    """

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        *,
        priority_fee_gwei: Decimal = Decimal("1.5"),
        w3: Optional[AsyncWeb3] = None,
    ) -> None:
        self.chain_id = chain_id
        self.priority_fee_wei = Web3.to_wei(priority_fee_gwei, "gwei")
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

    @staticmethod
    def address_of(private_key: bytes) -> str:
        return Account.from_key(private_key).address

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_balance(self, address: str) -> int:
        """Balance in wei."""
        try:
            return int(await self.w3.eth.get_balance(Web3.to_checksum_address(address)))
        except Exception as exc:
            raise ServiceUnavailableError(f"Balance query failed: {exc}") from exc

    async def get_pending_nonce(self, address: str) -> int:
        """Next nonce, counting transactions still in the mempool."""
        try:
            return int(
                await self.w3.eth.get_transaction_count(
                    Web3.to_checksum_address(address), "pending"
                )
            )
        except Exception as exc:
            raise ServiceUnavailableError(f"Nonce query failed: {exc}") from exc

    async def get_receipt(self, tx_hash: str) -> Optional[ReceiptSummary]:
        """Receipt for a mined transaction, or ``None`` if not mined yet."""
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as exc:
            raise ServiceUnavailableError(f"Receipt query failed: {exc}") from exc
        return _summarize(receipt)

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> ReceiptSummary:
        """Block until the transaction is mined (one confirmation).

        Raises ``TimeoutError`` when nothing is mined within ``timeout``.
        """
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=2
            )
        except TimeExhausted as exc:
            raise TimeoutError(f"No receipt for {tx_hash} after {timeout}s") from exc
        except Exception as exc:
            raise ServiceUnavailableError(f"Receipt wait failed: {exc}") from exc
        return _summarize(receipt)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def send_transfer(
        self,
        private_key: bytes,
        to_address: str,
        value_wei: int,
        nonce: int,
    ) -> str:
        """Build, sign, and broadcast a native-token transfer.

        Uses EIP-1559 fee parameters with a legacy gas price fallback.

        Returns the transaction hash as a ``0x`` hex string.
        """
        account = Account.from_key(private_key)
        tx: dict = {
            "from": account.address,
            "to": Web3.to_checksum_address(to_address),
            "value": value_wei,
            "nonce": nonce,
            "chainId": self.chain_id,
        }
        try:
            latest = await self.w3.eth.get_block("latest")
            base_fee = latest.get("baseFeePerGas")
            if base_fee is not None:
                tx["maxFeePerGas"] = base_fee * 2 + self.priority_fee_wei
                tx["maxPriorityFeePerGas"] = self.priority_fee_wei
            else:
                tx["gasPrice"] = await self.w3.eth.gas_price
            tx["gas"] = await self.w3.eth.estimate_gas(tx)

            signed = Account.sign_transaction(tx, private_key)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:
            raise BroadcastError(f"Broadcast failed: {exc}") from exc
        return Web3.to_hex(tx_hash)
