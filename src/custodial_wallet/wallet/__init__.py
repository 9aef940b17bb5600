"""Custodial wallet core.

Key custody (AES-256-GCM), one wallet per user with cached balances,
nonce-serialized transfer submission, background confirmation tracking,
and idempotent reconciliation of incoming transfers from chain history.
The entry point is :class:`custodial_wallet.wallet.manager.WalletService`.
"""
