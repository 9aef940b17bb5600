"""Exception hierarchy for the custodial wallet.

Every error raised to callers derives from :class:`WalletError` and carries
a stable ``code`` plus the HTTP status the API adapter answers with.
"""

from __future__ import annotations


class WalletError(Exception):
    """Base class for all custodial wallet errors."""

    code: str = "wallet_error"
    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])


class ConflictError(WalletError):
    """A wallet already exists for this user."""

    code = "conflict"
    status_code = 409


class NotFoundError(WalletError):
    """Wallet not found."""

    code = "not_found"
    status_code = 404


class InvalidAddressError(WalletError):
    """Invalid recipient address."""

    code = "invalid_address"
    status_code = 400


class InvalidAmountError(WalletError):
    """Amount must be a positive number of ether."""

    code = "invalid_amount"
    status_code = 400


class InsufficientFundsError(WalletError):
    """Insufficient balance."""

    code = "insufficient_funds"
    status_code = 400


class KeyIntegrityError(WalletError):
    """Encrypted key failed authentication (tampered bundle or wrong master key)."""

    code = "integrity_error"
    status_code = 500


class CorruptKeyStoreError(KeyIntegrityError):
    """Stored wallet key could not be decrypted."""

    code = "corrupt_key_store"


class BundleFormatError(WalletError):
    """Encrypted key bundle is malformed."""

    code = "format_error"
    status_code = 500


class ServiceUnavailableError(WalletError):
    """An upstream chain or history provider is unreachable."""

    code = "service_unavailable"
    status_code = 503


class BroadcastError(ServiceUnavailableError):
    """The signed transaction could not be broadcast."""

    code = "broadcast_failed"


class DuplicateRecordError(Exception):
    """A store insert hit a uniqueness constraint.

    Internal to the storage boundary; callers translate it into a
    :class:`ConflictError` or treat it as a benign skip.
    """
